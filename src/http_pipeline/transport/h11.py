"""
HTTP/1.1 transport built on h11.

H11Transport implements the Transport contract with one connection per
exchange: connect (directly, through an HTTP proxy, or over a Unix
socket), optionally upgrade to TLS, send the request with h11, and read
the response either into a body reference or as a stream of events.
"""

import asyncio
import itertools
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import urlencode, urljoin

import h11

from ..exceptions import HandleNotFound, TransportError
from ..http_primitives import ASYNC_ONCE, AsyncHandle, FileBody, FormBody, normalize_headers
from ..network import (
    AsyncioNetworkBackend,
    NetworkBackend,
    NetworkStream,
    Target,
    create_ssl_context,
    format_host_header,
    parse_proxy,
    parse_target,
    proxy_authorization,
    timeout_seconds,
)
from .base import (
    BodyRef,
    DispatchResult,
    EventSink,
    SyncResult,
    Transport,
    TransportChunk,
    TransportDone,
    TransportEvent,
    TransportFailure,
    TransportHeaders,
    TransportRedirect,
    TransportStatus,
    event_sink,
)

logger = logging.getLogger(__name__)

Headers = List[Tuple[str, str]]

# Errors raised while talking to the network that end an exchange.
NETWORK_ERRORS = (OSError, asyncio.TimeoutError, h11.ProtocolError, RuntimeError, ValueError)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)


def failure_reason(error: BaseException) -> Any:
    """Short, transport-level description of a network error."""
    if isinstance(error, TransportError):
        return error.reason
    if isinstance(error, asyncio.TimeoutError):
        return "timeout"
    if isinstance(error, ConnectionRefusedError):
        return "econnrefused"
    return str(error) or type(error).__name__


def _has_header(headers: Headers, name: str) -> bool:
    name = name.lower()
    return any(key.lower() == name for key, _ in headers)


async def encode_body(body: Any) -> Tuple[bytes, Headers]:
    """
    Encode a request body into bytes plus the headers it implies.

    Raw bytes and str are sent as is; FormBody is form-encoded and
    FileBody is read from disk.
    """
    if body is None:
        return b"", []
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body), []
    if isinstance(body, str):
        return body.encode("utf-8"), []
    if isinstance(body, FormBody):
        fields = body.fields.items() if hasattr(body.fields, "items") else body.fields
        payload = urlencode([(str(k), str(v)) for k, v in fields]).encode("ascii")
        return payload, [("Content-Type", "application/x-www-form-urlencoded")]
    if isinstance(body, FileBody):
        payload = await asyncio.to_thread(Path(body.path).read_bytes)
        content_type = mimetypes.guess_type(body.path)[0] or "application/octet-stream"
        return payload, [("Content-Type", content_type)]
    raise TransportError(f"unsupported body type {type(body).__name__}")


class H11Connection:
    """
    A single HTTP/1.1 request/response cycle over a NetworkStream.

    Reads are bounded by ``recv_timeout`` seconds (None waits forever).
    """

    def __init__(
        self,
        stream: NetworkStream,
        recv_timeout: Optional[float],
        read_size: int,
    ) -> None:
        self._stream = stream
        self._h11_connection = h11.Connection(h11.CLIENT)
        self._recv_timeout = recv_timeout
        self._read_size = read_size
        self._bytes_sent = 0
        self._bytes_received = 0

    async def send_request(self, method: str, target: str, headers: Headers) -> None:
        await self._send_event(h11.Request(method=method, target=target, headers=headers))

    async def send_data(self, data: bytes) -> None:
        if data:
            await self._send_event(h11.Data(data=data))

    async def end_request(self) -> None:
        await self._send_event(h11.EndOfMessage())

    async def _send_event(self, event: Any) -> None:
        data = self._h11_connection.send(event)
        if data:
            await self._stream.write(data)
            self._bytes_sent += len(data)

    async def _next_event(self) -> Any:
        while True:
            event = self._h11_connection.next_event()
            if event is not h11.NEED_DATA:
                return event

            data = await asyncio.wait_for(
                self._stream.read(self._read_size),
                timeout=self._recv_timeout,
            )
            # b"" tells h11 the peer closed the connection.
            self._h11_connection.receive_data(data)
            self._bytes_received += len(data)

    async def receive_response(self) -> Tuple[int, str, Headers]:
        """Wait for the final response head, skipping 1xx responses."""
        while True:
            event = await self._next_event()
            if isinstance(event, h11.InformationalResponse):
                continue
            if isinstance(event, h11.Response):
                headers = [
                    (name.decode("latin-1"), value.decode("latin-1"))
                    for name, value in event.headers
                ]
                return event.status_code, event.reason.decode("latin-1"), headers
            if isinstance(event, h11.ConnectionClosed):
                raise TransportError("closed")
            raise TransportError(f"unexpected event {type(event).__name__}")

    async def receive_chunk(self) -> Optional[bytes]:
        """Next piece of the response body, or None at the end."""
        while True:
            event = await self._next_event()
            if isinstance(event, h11.Data):
                if event.data:
                    return bytes(event.data)
                continue
            if isinstance(event, h11.EndOfMessage):
                return None
            if isinstance(event, h11.ConnectionClosed):
                raise TransportError("closed")

    async def read_body(self) -> bytes:
        chunks = []
        while True:
            chunk = await self.receive_chunk()
            if chunk is None:
                return b"".join(chunks)
            chunks.append(chunk)

    async def close(self) -> None:
        await self._stream.aclose()
        logger.debug(
            f"Connection closed ({self._bytes_sent} bytes sent, "
            f"{self._bytes_received} bytes received)"
        )

    @property
    def stream(self) -> NetworkStream:
        return self._stream


class _PendingRequest:
    """A request opened with open_stream() whose body is still being sent."""

    def __init__(self, connection: H11Connection, method: str, url: str, headers: Headers, options: Dict[str, Any]) -> None:
        self.connection = connection
        self.method = method
        self.url = url
        self.headers = headers
        self.options = options


class _StreamedExchange:
    """Delivery state of one streamed exchange."""

    def __init__(self, id: str, sink: EventSink, once: bool) -> None:
        self.id = id
        self._sink = sink
        self._gate = asyncio.Semaphore(0) if once else None
        self._emitted = 0
        self.task: Optional[asyncio.Task] = None

    async def emit(self, event: TransportEvent) -> None:
        if self._emitted and self._gate is not None:
            await self._gate.acquire()
        self._sink.feed(event)
        self._emitted += 1

    def release(self) -> None:
        if self._gate is not None:
            self._gate.release()


class H11Transport(Transport):
    """
    Transport speaking HTTP/1.1 through h11.

    Timeouts in options are milliseconds or ``"infinite"``. There is no
    connection reuse: every exchange opens and closes its own connection.
    """

    DEFAULT_CONNECT_TIMEOUT = 8000
    DEFAULT_RECV_TIMEOUT = 5000
    DEFAULT_MAX_REDIRECT = 5
    DEFAULT_READ_SIZE = 65536

    def __init__(
        self,
        backend: Optional[NetworkBackend] = None,
        read_size: Optional[int] = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            backend: Network backend used to open connections
            read_size: Maximum bytes per network read
        """
        self._backend = backend or AsyncioNetworkBackend()
        self._read_size = read_size or self.DEFAULT_READ_SIZE
        self._counter = itertools.count(1)
        self._pending: Dict[str, _PendingRequest] = {}
        self._bodies: Dict[str, H11Connection] = {}
        self._exchanges: Dict[str, _StreamedExchange] = {}
        self._tasks: Set[asyncio.Task] = set()

    ## Transport interface

    async def request(
        self,
        method: str,
        url: str,
        headers: Headers,
        body: Any,
        options: Dict[str, Any],
    ) -> DispatchResult:
        payload, body_headers = await encode_body(body)
        headers = self._with_body_headers(method, headers, body_headers, payload)

        connection = await self._connect_and_send(method, url, headers, options)
        try:
            await connection.send_data(payload)
            await connection.end_request()
        except NETWORK_ERRORS as e:
            await connection.close()
            raise TransportError(failure_reason(e), cause=e) from e

        return await self._complete(connection, method, url, headers, payload, options)

    async def open_stream(
        self,
        method: str,
        url: str,
        headers: Headers,
        options: Dict[str, Any],
    ) -> str:
        headers = normalize_headers(headers)
        if not _has_header(headers, "content-length") and not _has_header(headers, "transfer-encoding"):
            headers = headers + [("Transfer-Encoding", "chunked")]

        connection = await self._connect_and_send(method, url, headers, options)
        ref = f"stream-{next(self._counter)}"
        self._pending[ref] = _PendingRequest(connection, method, url, headers, options)
        return ref

    async def send_body(self, ref: Any, data: bytes) -> None:
        pending = self._pending.get(ref)
        if pending is None:
            raise TransportError(f"unknown stream {ref!r}")
        try:
            await pending.connection.send_data(data)
        except NETWORK_ERRORS as e:
            self._pending.pop(ref, None)
            await pending.connection.close()
            raise TransportError(failure_reason(e), cause=e) from e

    async def start_response(self, ref: Any) -> DispatchResult:
        pending = self._pending.pop(ref, None)
        if pending is None:
            raise TransportError(f"unknown stream {ref!r}")
        try:
            await pending.connection.end_request()
        except NETWORK_ERRORS as e:
            await pending.connection.close()
            raise TransportError(failure_reason(e), cause=e) from e

        # The body was streamed and cannot be replayed on a redirect.
        return await self._complete(
            pending.connection, pending.method, pending.url, pending.headers, None, pending.options
        )

    async def body(self, ref: BodyRef) -> bytes:
        connection = self._bodies.pop(ref.ref, None)
        if connection is None:
            raise TransportError(f"unknown body reference {ref.ref!r}")
        try:
            return await connection.read_body()
        except NETWORK_ERRORS as e:
            raise TransportError(failure_reason(e), cause=e) from e
        finally:
            await connection.close()

    async def stream_next(self, id: Any) -> None:
        exchange = self._exchanges.get(id)
        if exchange is None:
            raise HandleNotFound(id)
        exchange.release()

    async def abort(self, ref: Any) -> None:
        pending = self._pending.pop(ref, None)
        if pending is not None:
            logger.debug(f"Aborting streamed request body to {pending.url}")
            await pending.connection.close()

    async def cancel(self, id: Any) -> None:
        exchange = self._exchanges.pop(id, None)
        if exchange is None or exchange.task is None:
            return
        exchange.task.cancel()
        await asyncio.gather(exchange.task, return_exceptions=True)
        logger.debug(f"Streamed exchange {id} cancelled")

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        connections = [p.connection for p in self._pending.values()] + list(self._bodies.values())
        self._pending.clear()
        self._bodies.clear()
        for connection in connections:
            await connection.close()

    ## Connection setup

    async def _connect_and_send(
        self,
        method: str,
        url: str,
        headers: Headers,
        options: Dict[str, Any],
    ) -> H11Connection:
        """Open a connection for url and send the request head."""
        try:
            target = parse_target(url)
        except ValueError as e:
            raise TransportError(str(e), cause=e) from e

        headers = normalize_headers(headers)
        request_target = target.path
        proxy = options.get("proxy") if target.unix_path is None else None

        try:
            stream = await self._open_stream(target, proxy, options)
        except NETWORK_ERRORS as e:
            logger.error(f"Failed to connect to {url}: {e!r}")
            raise TransportError(failure_reason(e), cause=e) from e

        if proxy and not target.is_tls:
            # Plain http through a proxy uses the absolute url as target.
            request_target = url.split("#", 1)[0]
            if options.get("proxy_auth"):
                headers = headers + [("Proxy-Authorization", proxy_authorization(options["proxy_auth"]))]

        if not _has_header(headers, "host"):
            headers = [("Host", format_host_header(target))] + headers

        connection = H11Connection(stream, self._recv_timeout(options), self._read_size)
        try:
            await connection.send_request(method, request_target, [(k, str(v)) for k, v in headers])
        except NETWORK_ERRORS as e:
            await connection.close()
            raise TransportError(failure_reason(e), cause=e) from e
        return connection

    async def _open_stream(self, target: Target, proxy: Any, options: Dict[str, Any]) -> NetworkStream:
        connect_timeout = timeout_seconds(options.get("connect_timeout"), self.DEFAULT_CONNECT_TIMEOUT)

        if target.unix_path is not None:
            return await self._backend.connect_unix_socket(target.unix_path, connect_timeout)

        if proxy:
            proxy_host, proxy_port = parse_proxy(proxy)
            stream = await self._backend.connect_tcp(proxy_host, proxy_port, connect_timeout)
            if target.is_tls:
                await self._open_tunnel(stream, target, options)
        else:
            stream = await self._backend.connect_tcp(target.host, target.port, connect_timeout)

        if target.is_tls:
            ssl_context = create_ssl_context(options.get("tls_options"))
            stream = await self._backend.start_tls(stream, target.host, ssl_context, connect_timeout)
        return stream

    async def _open_tunnel(self, stream: NetworkStream, target: Target, options: Dict[str, Any]) -> None:
        """Ask an HTTP proxy for a CONNECT tunnel to target."""
        headers = [("Host", target.authority)]
        if options.get("proxy_auth"):
            headers.append(("Proxy-Authorization", proxy_authorization(options["proxy_auth"])))

        tunnel = H11Connection(stream, self._recv_timeout(options), self._read_size)
        await tunnel.send_request("CONNECT", target.authority, headers)
        await tunnel.end_request()
        status, reason, _ = await tunnel.receive_response()
        if not 200 <= status < 300:
            await stream.aclose()
            raise TransportError(f"proxy CONNECT failed: {status} {reason}".strip())
        logger.debug(f"Tunnel to {target.authority} established")

    def _recv_timeout(self, options: Dict[str, Any]) -> Optional[float]:
        return timeout_seconds(options.get("recv_timeout"), self.DEFAULT_RECV_TIMEOUT)

    @staticmethod
    def _with_body_headers(method: str, headers: Any, body_headers: Headers, payload: bytes) -> Headers:
        headers = normalize_headers(headers)
        for name, value in body_headers:
            if not _has_header(headers, name):
                headers.append((name, value))
        framed = _has_header(headers, "content-length") or _has_header(headers, "transfer-encoding")
        if not framed and (payload or method in ("POST", "PUT", "PATCH")):
            headers.append(("Content-Length", str(len(payload))))
        return headers

    ## Responses

    def _redirect(
        self,
        method: str,
        url: str,
        status: int,
        headers: Headers,
        payload: Optional[bytes],
        options: Dict[str, Any],
    ) -> Tuple[Optional[str], Optional[str], Optional[bytes]]:
        """
        Decide how to handle a redirect response.

        Returns:
            (location, method, payload): location is None when the response
            is not a redirect to act on; method is None when the redirect
            should not be followed automatically.
        """
        if not options.get("follow_redirect") or status not in REDIRECT_STATUSES:
            return None, None, None

        location = next((v for k, v in headers if k.lower() == "location"), None)
        if not location:
            return None, None, None
        location = urljoin(url, location)

        if status == 303 and method != "HEAD":
            return location, "GET", b""
        if method in ("GET", "HEAD") and payload is not None:
            return location, method, payload
        return location, None, None

    async def _complete(
        self,
        connection: H11Connection,
        method: str,
        url: str,
        headers: Headers,
        payload: Optional[bytes],
        options: Dict[str, Any],
    ) -> DispatchResult:
        sink = event_sink(options)
        if sink is not None:
            return self._start_streaming(connection, method, url, headers, payload, options, sink)

        max_redirect = options.get("max_redirect", self.DEFAULT_MAX_REDIRECT)
        redirects = 0
        while True:
            try:
                status, _, response_headers = await connection.receive_response()
            except NETWORK_ERRORS + (TransportError,) as e:
                await connection.close()
                raise TransportError(failure_reason(e), cause=e) from e

            location, next_method, next_payload = self._redirect(
                method, url, status, response_headers, payload, options
            )
            if next_method is None:
                break

            await connection.close()
            if redirects >= max_redirect:
                raise TransportError("max_redirect_overflow")
            redirects += 1
            logger.debug(f"Following {status} redirect from {url} to {location}")
            connection, method, url, payload = await self._resend(
                next_method, location, headers, next_payload, options
            )

        if method == "HEAD" or status in (204, 304):
            await connection.close()
            return SyncResult(status, response_headers)

        ref = f"body-{next(self._counter)}"
        self._bodies[ref] = connection
        return BodyRef(status, response_headers, ref)

    async def _resend(
        self,
        method: str,
        url: str,
        headers: Headers,
        payload: bytes,
        options: Dict[str, Any],
    ) -> Tuple[H11Connection, str, str, bytes]:
        # The Host header belongs to the previous target.
        headers = [(k, v) for k, v in headers if k.lower() not in ("host", "content-length")]
        headers = self._with_body_headers(method, headers, [], payload)
        connection = await self._connect_and_send(method, url, headers, options)
        try:
            await connection.send_data(payload)
            await connection.end_request()
        except NETWORK_ERRORS as e:
            await connection.close()
            raise TransportError(failure_reason(e), cause=e) from e
        return connection, method, url, payload

    def _start_streaming(
        self,
        connection: H11Connection,
        method: str,
        url: str,
        headers: Headers,
        payload: Optional[bytes],
        options: Dict[str, Any],
        sink: EventSink,
    ) -> AsyncHandle:
        id = f"h11-{next(self._counter)}"
        exchange = _StreamedExchange(id, sink, options.get("async") == ASYNC_ONCE)
        self._exchanges[id] = exchange

        task = asyncio.create_task(
            self._stream_response(exchange, connection, method, url, headers, payload, options)
        )
        exchange.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return AsyncHandle(id)

    async def _stream_response(
        self,
        exchange: _StreamedExchange,
        connection: H11Connection,
        method: str,
        url: str,
        headers: Headers,
        payload: Optional[bytes],
        options: Dict[str, Any],
    ) -> None:
        id = exchange.id
        max_redirect = options.get("max_redirect", self.DEFAULT_MAX_REDIRECT)
        redirects = 0
        try:
            while True:
                status, reason, response_headers = await connection.receive_response()
                location, next_method, next_payload = self._redirect(
                    method, url, status, response_headers, payload, options
                )
                if location is None:
                    break
                if next_method is None:
                    await exchange.emit(TransportRedirect(id, location, response_headers))
                    return
                if redirects >= max_redirect:
                    raise TransportError("max_redirect_overflow")

                await connection.close()
                redirects += 1
                connection, method, url, payload = await self._resend(
                    next_method, location, headers, next_payload, options
                )

            await exchange.emit(TransportStatus(id, status, reason))
            await exchange.emit(TransportHeaders(id, response_headers))
            if method != "HEAD":
                while True:
                    chunk = await connection.receive_chunk()
                    if chunk is None:
                        break
                    await exchange.emit(TransportChunk(id, chunk))
            await exchange.emit(TransportDone(id))
        except NETWORK_ERRORS + (TransportError,) as e:
            logger.error(f"Streamed exchange {id} failed: {e!r}")
            await exchange.emit(TransportFailure(id, failure_reason(e)))
        finally:
            self._exchanges.pop(id, None)
            await connection.close()
