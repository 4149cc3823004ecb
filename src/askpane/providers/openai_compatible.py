"""Streaming gateway for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

from collections.abc import AsyncGenerator
import logging

import httpx

from ..exceptions import ProviderHTTPError, ProviderTransportError
from .base import ProviderGateway, ProviderPayload, StreamHandle

LOGGER = logging.getLogger(__name__)

MAX_ERROR_BODY_CHARS = 2000


class OpenAICompatibleGateway(ProviderGateway):
    """Open SSE completion streams with ``httpx``.

    Works against OpenAI, OpenRouter, Ollama's ``/v1`` endpoint and any other
    server that speaks the same protocol.
    """

    name = "openai-compatible"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = 120.0,
        extra_headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.extra_headers = dict(extra_headers or {})
        self._client = client
        self._owns_client = client is None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            **self.extra_headers,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def open(self, payload: ProviderPayload) -> StreamHandle:
        client = self._get_client()
        request = client.build_request(
            "POST",
            self.endpoint,
            json=payload.to_request_body(),
            headers=self._headers(),
        )
        LOGGER.info(
            "provider.stream.open",
            extra={
                "event": "provider.stream.open",
                "model": payload.model,
                "images": payload.image_count,
            },
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise ProviderTransportError(
                f"Unable to reach provider at {self.base_url}: {exc}"
            ) from exc

        if response.is_error:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            finally:
                await response.aclose()
            raise ProviderHTTPError(response.status_code, body[:MAX_ERROR_BODY_CHARS])

        return StreamHandle(
            self._iter_body(response),
            response.aclose,
            description=self.endpoint,
        )

    @staticmethod
    async def _iter_body(response: httpx.Response) -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as exc:
            raise ProviderTransportError(f"Stream interrupted: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
