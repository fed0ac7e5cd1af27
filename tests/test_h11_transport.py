"""
Tests for H11Transport over the mock network backend.
"""

import asyncio

import pytest

from http_pipeline import AsyncChunk, AsyncEnd, AsyncHeaders, AsyncStatus, Client, FormBody, StreamBody
from http_pipeline.exceptions import HandleNotFound, TransportError
from http_pipeline.transport import BodyRef, SyncResult


class TestSynchronousRequests:
    """Requests answered with a status and a body reference."""

    @pytest.mark.asyncio
    async def test_get(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("example.com", 80, raw_response(200, body=b"hello"))

        result = await h11_transport.request(
            "GET", "http://example.com/path?x=1", [("Accept", "*/*")], b"", {}
        )

        assert isinstance(result, BodyRef)
        assert result.status_code == 200
        assert ("content-length", "5") in result.headers
        assert await h11_transport.body(result) == b"hello"
        assert stream.is_closed

        written = stream.written_data.lower()
        assert written.startswith(b"get /path?x=1 http/1.1\r\n")
        assert b"host: example.com\r\n" in written
        assert b"accept: */*\r\n" in written

    @pytest.mark.asyncio
    async def test_head_returns_sync_result(self, h11_transport, network_backend) -> None:
        network_backend.add_connection(
            "example.com", 80, b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\n"
        )

        result = await h11_transport.request("HEAD", "http://example.com/", [], b"", {})

        assert result == SyncResult(200, [("content-length", "5")], b"")

    @pytest.mark.asyncio
    async def test_form_body(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("example.com", 80, raw_response(204, "No Content"))

        result = await h11_transport.request(
            "POST", "http://example.com/form", [], FormBody([("a", "1"), ("b", "x y")]), {}
        )

        assert isinstance(result, SyncResult)
        written = stream.written_data.lower()
        assert b"content-type: application/x-www-form-urlencoded\r\n" in written
        assert b"content-length: 9\r\n" in written
        assert written.endswith(b"\r\n\r\na=1&b=x+y")

    @pytest.mark.asyncio
    async def test_file_body(self, h11_transport, network_backend, raw_response, tmp_path) -> None:
        from http_pipeline import FileBody

        path = tmp_path / "data.json"
        path.write_bytes(b'{"a": 1}')
        stream = network_backend.add_connection("example.com", 80, raw_response(200))

        await h11_transport.request("PUT", "http://example.com/f", [], FileBody(str(path)), {})

        written = stream.written_data
        assert b"application/json" in written
        assert written.endswith(b'{"a": 1}')

    @pytest.mark.asyncio
    async def test_non_default_port_in_host(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("localhost", 8080, raw_response(200))

        await h11_transport.request("GET", "http://localhost:8080/", [], b"", {})

        assert b"host: localhost:8080\r\n" in stream.written_data.lower()

    @pytest.mark.asyncio
    async def test_unix_socket(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("unix:/var/run/api.sock", 0, raw_response(200, body=b"{}"))

        result = await h11_transport.request(
            "GET", "http+unix://%2Fvar%2Frun%2Fapi.sock/info", [], b"", {}
        )

        assert await h11_transport.body(result) == b"{}"
        assert stream.written_data.startswith(b"GET /info HTTP/1.1\r\n")

    @pytest.mark.asyncio
    async def test_https_upgrades_to_tls(self, h11_transport, network_backend, raw_response) -> None:
        network_backend.add_connection("secure.example.com", 443, raw_response(200))

        await h11_transport.request("GET", "https://secure.example.com/", [], b"", {})

        assert network_backend.tls_upgrades[0][0] == "secure.example.com"


class TestFailures:
    """Network failures become TransportErrors."""

    @pytest.mark.asyncio
    async def test_connection_refused(self, h11_transport, network_backend) -> None:
        network_backend.fail_connection("example.com", 80, ConnectionRefusedError())

        with pytest.raises(TransportError) as exc_info:
            await h11_transport.request("GET", "http://example.com/", [], b"", {})

        assert exc_info.value.reason == "econnrefused"

    @pytest.mark.asyncio
    async def test_recv_timeout(self, h11_transport, network_backend) -> None:
        network_backend.add_connection("example.com", 80, stall=True)

        with pytest.raises(TransportError) as exc_info:
            await h11_transport.request("GET", "http://example.com/", [], b"", {"recv_timeout": 10})

        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_peer_closes_before_response(self, h11_transport, network_backend) -> None:
        network_backend.add_connection("example.com", 80, b"")

        with pytest.raises(TransportError):
            await h11_transport.request("GET", "http://example.com/", [], b"", {})

    @pytest.mark.asyncio
    async def test_unsupported_scheme(self, h11_transport) -> None:
        with pytest.raises(TransportError):
            await h11_transport.request("GET", "ftp://example.com/", [], b"", {})

    @pytest.mark.asyncio
    async def test_unknown_body_ref(self, h11_transport) -> None:
        with pytest.raises(TransportError):
            await h11_transport.body(BodyRef(200, [], "missing"))

    @pytest.mark.asyncio
    async def test_unknown_stream_handle(self, h11_transport) -> None:
        with pytest.raises(HandleNotFound):
            await h11_transport.stream_next("missing")


class TestRedirects:
    """Redirect handling."""

    @pytest.mark.asyncio
    async def test_follow_redirect(self, h11_transport, network_backend, raw_response) -> None:
        network_backend.add_connection(
            "example.com", 80, raw_response(302, "Found", {"Location": "/next"})
        )
        second = network_backend.add_connection("example.com", 80, raw_response(200, body=b"there"))

        result = await h11_transport.request(
            "GET", "http://example.com/start", [], b"", {"follow_redirect": True}
        )

        assert result.status_code == 200
        assert await h11_transport.body(result) == b"there"
        assert second.written_data.startswith(b"GET /next HTTP/1.1\r\n")

    @pytest.mark.asyncio
    async def test_see_other_switches_to_get(self, h11_transport, network_backend, raw_response) -> None:
        network_backend.add_connection(
            "example.com", 80, raw_response(303, "See Other", {"Location": "http://example.com/result"})
        )
        second = network_backend.add_connection("example.com", 80, raw_response(200))

        await h11_transport.request(
            "POST", "http://example.com/submit", [], b"data", {"follow_redirect": True}
        )

        assert second.written_data.startswith(b"GET /result HTTP/1.1\r\n")
        assert b"data" not in second.written_data

    @pytest.mark.asyncio
    async def test_not_followed_by_default(self, h11_transport, network_backend, raw_response) -> None:
        network_backend.add_connection(
            "example.com", 80, raw_response(301, "Moved", {"Location": "/next"})
        )

        result = await h11_transport.request("GET", "http://example.com/", [], b"", {})

        assert result.status_code == 301
        assert len(network_backend.connections) == 1

    @pytest.mark.asyncio
    async def test_max_redirect_overflow(self, h11_transport, network_backend, raw_response) -> None:
        for _ in range(2):
            network_backend.add_connection(
                "example.com", 80, raw_response(302, "Found", {"Location": "/again"})
            )

        with pytest.raises(TransportError) as exc_info:
            await h11_transport.request(
                "GET", "http://example.com/", [], b"", {"follow_redirect": True, "max_redirect": 1}
            )

        assert exc_info.value.reason == "max_redirect_overflow"


class TestProxies:
    """Requests through an HTTP proxy."""

    @pytest.mark.asyncio
    async def test_http_through_proxy(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("proxy.local", 3128, raw_response(200))

        await h11_transport.request(
            "GET",
            "http://example.com/x",
            [],
            b"",
            {"proxy": "http://proxy.local:3128", "proxy_auth": ("user", "pass")},
        )

        written = stream.written_data
        assert written.startswith(b"GET http://example.com/x HTTP/1.1\r\n")
        assert b"Proxy-Authorization: Basic dXNlcjpwYXNz\r\n" in written

    @pytest.mark.asyncio
    async def test_https_tunnel(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection(
            "proxy.local",
            3128,
            b"HTTP/1.1 200 Connection established\r\n\r\n",
            tls_data=raw_response(200, body=b"secure"),
        )

        result = await h11_transport.request(
            "GET", "https://example.com/x", [], b"", {"proxy": ("proxy.local", 3128)}
        )

        assert await h11_transport.body(result) == b"secure"
        assert stream.written_data.startswith(b"CONNECT example.com:443 HTTP/1.1\r\n")
        assert b"GET /x HTTP/1.1\r\n" in stream.written_data
        assert network_backend.tls_upgrades[0][0] == "example.com"

    @pytest.mark.asyncio
    async def test_tunnel_refused(self, h11_transport, network_backend) -> None:
        network_backend.add_connection(
            "proxy.local", 3128, b"HTTP/1.1 407 Proxy Authentication Required\r\nContent-Length: 0\r\n\r\n"
        )

        with pytest.raises(TransportError):
            await h11_transport.request(
                "GET", "https://example.com/", [], b"", {"proxy": "proxy.local:3128"}
            )


class TestStreaming:
    """Streamed requests and responses."""

    @pytest.mark.asyncio
    async def test_chunked_request_body(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("example.com", 80, raw_response(201, "Created"))

        ref = await h11_transport.open_stream("POST", "http://example.com/up", [], {})
        await h11_transport.send_body(ref, b"abc")
        result = await h11_transport.start_response(ref)

        assert result.status_code == 201
        written = stream.written_data
        assert b"Transfer-Encoding: chunked\r\n" in written
        assert written.endswith(b"3\r\nabc\r\n0\r\n\r\n")

    @pytest.mark.asyncio
    async def test_streamed_response(self, h11_transport, network_backend, raw_response, collect_events) -> None:
        network_backend.add_connection("example.com", 80, raw_response(200, body=b"hello"))
        client = Client(transport=h11_transport, env_lookup={}.get)
        queue = asyncio.Queue()

        handle = await client.get_or_raise("example.com/stream", options={"stream_to": queue})
        events = await collect_events(queue)

        assert events[0] == AsyncStatus(handle.id, 200)
        assert isinstance(events[1], AsyncHeaders)
        assert events[2] == AsyncChunk(handle.id, b"hello")
        assert events[3] == AsyncEnd(handle.id)

    @pytest.mark.asyncio
    async def test_pull_gated_response(self, h11_transport, network_backend, raw_response, collect_events) -> None:
        network_backend.add_connection("example.com", 80, raw_response(200, body=b"hi"))
        client = Client(transport=h11_transport, env_lookup={}.get)
        queue = asyncio.Queue()

        handle = await client.get_or_raise(
            "example.com", options={"stream_to": queue, "async": "once"}
        )
        assert await asyncio.wait_for(queue.get(), 1.0) == AsyncStatus(handle.id, 200)
        await asyncio.sleep(0.01)
        assert queue.empty()

        for _ in range(3):
            await client.stream_next_or_raise(handle)
        events = await collect_events(queue)

        assert [type(e) for e in events] == [AsyncHeaders, AsyncChunk, AsyncEnd]

    @pytest.mark.asyncio
    async def test_streamed_failure(self, h11_transport, network_backend, collect_events) -> None:
        network_backend.add_connection(
            "example.com", 80, b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nabc"
        )
        client = Client(transport=h11_transport, env_lookup={}.get)
        queue = asyncio.Queue()

        handle = await client.get_or_raise("example.com", options={"stream_to": queue})
        events = await collect_events(queue)

        assert events[2] == AsyncChunk(handle.id, b"abc")
        assert isinstance(events[-1], TransportError)
        assert events[-1].id == handle.id


class TestAsyncioBackend:
    """End to end against a local asyncio server."""

    @pytest.mark.asyncio
    async def test_local_server(self) -> None:
        received = []

        async def handle(reader, writer):
            received.append(await reader.readuntil(b"\r\n\r\n"))
            writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 4\r\n\r\npong")
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            async with Client() as client:
                response = await client.get_or_raise(
                    f"127.0.0.1:{port}/ping", params={"n": 1}, options={"proxy": None}
                )
        finally:
            server.close()
            await server.wait_closed()

        assert response.status_code == 200
        assert response.body == b"pong"
        assert received[0].startswith(b"GET /ping?n=1 HTTP/1.1\r\n")


class TestReleasingExchanges:
    """Connections are released when an exchange is given up early."""

    @pytest.mark.asyncio
    async def test_invalid_body_element_closes_connection(self, h11_transport, network_backend, raw_response) -> None:
        stream = network_backend.add_connection("example.com", 80, raw_response(200))
        client = Client(transport=h11_transport, env_lookup={}.get)

        result = await client.post("example.com", StreamBody([b"a", 5]))

        assert isinstance(result.error, TransportError)
        assert h11_transport._pending == {}
        assert stream.is_closed

    @pytest.mark.asyncio
    async def test_abort_unknown_ref(self, h11_transport) -> None:
        await h11_transport.abort("missing")

    @pytest.mark.asyncio
    async def test_failing_hook_cancels_exchange(self, h11_transport, network_backend, raw_response, collect_events) -> None:
        class BrokenHeaders(Client):
            def process_response_headers(self, headers):
                raise ValueError("cannot parse headers")

        stream = network_backend.add_connection("example.com", 80, raw_response(200, body=b"hi"))
        client = BrokenHeaders(transport=h11_transport, env_lookup={}.get)
        queue = asyncio.Queue()

        handle = await client.get_or_raise(
            "example.com", options={"stream_to": queue, "async": "once"}
        )
        await client.stream_next_or_raise(handle)
        events = await collect_events(queue)

        assert isinstance(events[-1], TransportError)
        assert stream.is_closed
        assert h11_transport._exchanges == {}
        with pytest.raises(HandleNotFound):
            await h11_transport.stream_next(handle.id)
