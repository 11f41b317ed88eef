"""Tests for the httpx and mock transports."""

import httpx
import pytest
import respx
from httpx import Response

from restgate.exceptions import TransportError
from restgate.transport.base import RawResponse
from restgate.transport.httpx_transport import HttpxTransport, create_http_client
from restgate.transport.mock import MockTransport, json_response


class TestRawResponse:
    """Tests for RawResponse helpers."""

    def test_headers_are_case_insensitive(self):
        response = RawResponse(status=200, headers={"X-RateLimit-Bucket": "abc"})

        assert isinstance(response.headers, httpx.Headers)
        assert response.headers.get("x-ratelimit-bucket") == "abc"

    def test_json_decoding(self):
        assert RawResponse(status=200, body=b'{"a": 1}').json() == {"a": 1}
        assert RawResponse(status=204).json() is None
        assert RawResponse(status=502, body=b"<html>Bad Gateway</html>").json() is None

    def test_ok(self):
        assert RawResponse(status=204).ok is True
        assert RawResponse(status=404).ok is False


class TestCreateHttpClient:
    """Tests for create_http_client."""

    @pytest.mark.asyncio
    async def test_granular_timeouts(self):
        client = create_http_client(connect_timeout=1.0, read_timeout=2.0)
        try:
            assert client.timeout.connect == 1.0
            assert client.timeout.read == 2.0
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_single_timeout_override(self):
        client = create_http_client(timeout=3.0)
        try:
            assert client.timeout.connect == 3.0
            assert client.timeout.read == 3.0
            assert client.timeout.pool == 3.0
        finally:
            await client.aclose()


class TestHttpxTransport:
    """Tests for HttpxTransport."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_every_status(self):
        respx.get("https://api.test/v10/channels/1").mock(
            return_value=Response(
                404,
                json={"message": "Unknown Channel", "code": 10003},
                headers={"X-RateLimit-Remaining": "4"},
            )
        )
        transport = HttpxTransport()
        try:
            response = await transport.execute(
                "GET", "https://api.test/v10/channels/1", {"Authorization": "Bot t"}
            )
        finally:
            await transport.aclose()

        assert response.status == 404
        assert response.json()["code"] == 10003
        assert response.headers.get("x-ratelimit-remaining") == "4"

    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_headers_and_body(self):
        route = respx.post("https://api.test/v10/channels/1/messages").mock(
            return_value=Response(200, json={"id": "9"})
        )
        transport = HttpxTransport()
        try:
            await transport.execute(
                "POST",
                "https://api.test/v10/channels/1/messages",
                {"Authorization": "Bot t", "Content-Type": "application/json"},
                b'{"content": "hi"}',
            )
        finally:
            await transport.aclose()

        sent = route.calls.last.request
        assert sent.headers["authorization"] == "Bot t"
        assert sent.content == b'{"content": "hi"}'

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_failure_raises_transport_error(self):
        respx.get("https://api.test/down").mock(side_effect=httpx.ConnectError("refused"))
        transport = HttpxTransport()
        try:
            with pytest.raises(TransportError) as exc_info:
                await transport.execute("GET", "https://api.test/down", {})
        finally:
            await transport.aclose()

        assert "ConnectError" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_raises_transport_error(self):
        respx.get("https://api.test/slow").mock(side_effect=httpx.ReadTimeout("slow"))
        transport = HttpxTransport()
        try:
            with pytest.raises(TransportError):
                await transport.execute("GET", "https://api.test/slow", {})
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    async def test_shared_client_is_left_open(self):
        def handler(request):
            return Response(200, json={"ok": True})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpxTransport(http_client=client)

        response = await transport.execute("GET", "https://api.test/x", {})
        await transport.aclose()

        assert response.json() == {"ok": True}
        assert transport.http_client is client
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        transport = HttpxTransport(
            transport=httpx.MockTransport(lambda request: Response(204))
        )

        response = await transport.execute("DELETE", "https://api.test/x", {})
        await transport.aclose()

        assert response.status == 204
        assert transport.http_client.is_closed is True


class TestMockTransport:
    """Tests for the scripted mock transport."""

    @pytest.mark.asyncio
    async def test_script_consumed_in_order(self):
        transport = MockTransport(script=[
            json_response(429, {"retry_after": 1}),
            TransportError("reset"),
        ])
        transport.add(json_response(201, {"id": "1"}))

        first = await transport.execute("GET", "https://api.test/a", {})
        with pytest.raises(TransportError):
            await transport.execute("GET", "https://api.test/a", {})
        third = await transport.execute("GET", "https://api.test/a", {})
        fallback = await transport.execute("GET", "https://api.test/a", {})

        assert first.status == 429
        assert third.status == 201
        assert fallback.status == 200
        assert transport.call_count == 4

    @pytest.mark.asyncio
    async def test_handler_sync_and_async(self):
        async def async_handler(call):
            return json_response(200, {"url": call.url})

        sync_transport = MockTransport(handler=lambda call: json_response(202))
        async_transport = MockTransport(handler=async_handler)

        assert (await sync_transport.execute("GET", "https://api.test/a", {})).status == 202
        response = await async_transport.execute("GET", "https://api.test/b", {})
        assert response.json() == {"url": "https://api.test/b"}

    @pytest.mark.asyncio
    async def test_records_calls(self):
        transport = MockTransport()
        await transport.execute("post", "https://api.test/a", {"X-Test": "1"}, b"{}")

        call = transport.calls[0]
        assert call.method == "post"
        assert call.headers == {"X-Test": "1"}
        assert call.body == b"{}"

    @pytest.mark.asyncio
    async def test_failure_rate(self):
        transport = MockTransport(failure_rate=1.0)

        with pytest.raises(TransportError, match="Simulated"):
            await transport.execute("GET", "https://api.test/a", {})

    def test_json_response_sets_content_type(self):
        response = json_response(200, {"a": 1}, {"X-RateLimit-Bucket": "b"})

        assert response.headers["content-type"] == "application/json"
        assert response.headers["x-ratelimit-bucket"] == "b"
        assert response.json() == {"a": 1}
