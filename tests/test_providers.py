"""Tests for provider payloads, stream handles and the OpenAI-compatible gateway."""

from __future__ import annotations

from collections.abc import AsyncGenerator
import json
import unittest

import httpx

from askpane.credentials import ModelInfo
from askpane.exceptions import ProviderHTTPError, ProviderTransportError
from askpane.providers import (
    OpenAICompatibleGateway,
    ProviderPayload,
    StreamHandle,
    create_gateway,
)
from askpane.screenshots import ScreenshotEntry
from askpane.stream_decoder import StreamDecoder

SSE_BODY = (
    b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
    b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
    b"data: [DONE]\n\n"
)


def payload_with_images(count: int) -> ProviderPayload:
    return ProviderPayload.for_question(
        model="llava",
        system_prompt="System",
        user_text="What is this?",
        screenshots=[ScreenshotEntry(b"img%d" % i) for i in range(count)],
    )


class ProviderPayloadTests(unittest.TestCase):
    def test_for_question_builds_text_and_image_parts(self) -> None:
        payload = payload_with_images(2)

        self.assertEqual(payload.messages[0], {"role": "system", "content": "System"})
        parts = payload.messages[1]["content"]
        self.assertEqual(parts[0], {"type": "text", "text": "User Request: What is this?"})
        self.assertEqual(payload.image_count, 2)
        self.assertTrue(parts[1]["image_url"]["url"].startswith("data:image/jpeg;base64,"))

    def test_text_only_strips_images_and_keeps_text(self) -> None:
        payload = payload_with_images(1)

        stripped = payload.text_only()

        self.assertEqual(stripped.image_count, 0)
        self.assertEqual(stripped.messages[1]["content"], "User Request: What is this?")
        self.assertEqual(stripped.model, payload.model)
        self.assertEqual(payload.image_count, 1)

    def test_request_body_enables_streaming(self) -> None:
        body = payload_with_images(0).to_request_body()

        self.assertTrue(body["stream"])
        self.assertEqual(body["model"], "llava")
        self.assertEqual(body["max_tokens"], 2048)


class StreamHandleTests(unittest.IsolatedAsyncioTestCase):
    async def test_aclose_is_idempotent_and_calls_closer_once(self) -> None:
        calls = 0

        async def closer() -> None:
            nonlocal calls
            calls += 1

        async def chunks() -> AsyncGenerator[bytes, None]:
            yield b"x"

        handle = StreamHandle(chunks(), closer)
        await handle.aclose()
        await handle.aclose()

        self.assertTrue(handle.closed)
        self.assertEqual(calls, 1)


class OpenAICompatibleGatewayTests(unittest.IsolatedAsyncioTestCase):
    def make_gateway(self, handler, api_key: str = "") -> OpenAICompatibleGateway:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(client.aclose)
        return OpenAICompatibleGateway(
            "http://localhost:11434/v1/", api_key, client=client
        )

    async def test_open_posts_streaming_request_and_yields_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                content=SSE_BODY,
                headers={"content-type": "text/event-stream"},
            )

        gateway = self.make_gateway(handler, api_key="sk-test")
        handle = await gateway.open(payload_with_images(1))
        decoder = StreamDecoder()
        deltas = [delta async for delta in decoder.iter_deltas(handle)]

        self.assertEqual(deltas, ["Hel", "lo"])
        self.assertTrue(handle.closed)
        request = seen[0]
        self.assertEqual(str(request.url), "http://localhost:11434/v1/chat/completions")
        self.assertEqual(request.headers["authorization"], "Bearer sk-test")
        body = json.loads(request.content)
        self.assertTrue(body["stream"])
        self.assertEqual(body["model"], "llava")

    async def test_no_authorization_header_without_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"data: [DONE]\n\n")

        gateway = self.make_gateway(handler)
        handle = await gateway.open(payload_with_images(0))
        await handle.aclose()

        self.assertNotIn("authorization", seen[0].headers)

    async def test_error_status_raises_http_error_with_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="model does not support images")

        gateway = self.make_gateway(handler)

        with self.assertRaises(ProviderHTTPError) as ctx:
            await gateway.open(payload_with_images(1))

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("does not support images", str(ctx.exception))

    async def test_connection_failure_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = self.make_gateway(handler)

        with self.assertRaises(ProviderTransportError):
            await gateway.open(payload_with_images(0))

    async def test_cancel_closes_handle(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=SSE_BODY)

        gateway = self.make_gateway(handler)
        handle = await gateway.open(payload_with_images(0))

        await gateway.cancel(handle, "stop")

        self.assertTrue(handle.closed)


class CreateGatewayTests(unittest.IsolatedAsyncioTestCase):
    async def test_openrouter_gets_title_header(self) -> None:
        info = ModelInfo("openrouter", "m", "key", "https://openrouter.ai/api/v1")

        gateway = create_gateway(info, timeout=5.0)

        self.assertIsInstance(gateway, OpenAICompatibleGateway)
        self.assertEqual(gateway.extra_headers.get("X-Title"), "askpane")
        self.assertEqual(gateway.timeout, 5.0)
        await gateway.aclose()

    async def test_ollama_gateway_uses_base_url(self) -> None:
        info = ModelInfo("ollama", "llava", "", "http://localhost:11434/v1")

        gateway = create_gateway(info)

        self.assertEqual(gateway.endpoint, "http://localhost:11434/v1/chat/completions")
        self.assertEqual(gateway.extra_headers, {})


if __name__ == "__main__":
    unittest.main()
