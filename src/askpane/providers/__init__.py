"""Streaming completion providers behind a uniform gateway contract."""

from __future__ import annotations

from .base import ProviderGateway, ProviderPayload, StreamHandle
from .factory import create_gateway
from .openai_compatible import OpenAICompatibleGateway

__all__ = [
    "OpenAICompatibleGateway",
    "ProviderGateway",
    "ProviderPayload",
    "StreamHandle",
    "create_gateway",
]
