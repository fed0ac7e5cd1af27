"""
Mock network implementations for testing.

These let the h11 transport be exercised end to end without sockets:
tests queue raw HTTP response bytes per endpoint and inspect the raw
request bytes the transport wrote.
"""

import asyncio
import ssl
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from .base import NetworkBackend, NetworkStream


class MockNetworkStream(NetworkStream):
    """
    In-memory network stream.

    Reads return the prepared data in pieces of at most ``max_bytes``,
    then b"" (peer closed). If ``stall`` is set, reads block instead of
    returning b"" once the data is exhausted. ``tls_data`` becomes
    readable only after a TLS upgrade, as it would behind a proxy tunnel.
    """

    def __init__(self, data: bytes = b"", stall: bool = False, tls_data: bytes = b"") -> None:
        self._data = data
        self.tls_data = tls_data
        self._position = 0
        self._closed = False
        self._stall = stall
        self._extra_info: Dict[str, Any] = {}
        self._write_buffer: List[bytes] = []

    async def read(self, max_bytes: int) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")

        if self._position >= len(self._data):
            if self._stall:
                await asyncio.Event().wait()
            return b""

        end = min(self._position + max_bytes, len(self._data))
        result = self._data[self._position:end]
        self._position = end
        return result

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._write_buffer.append(data)

    async def aclose(self) -> None:
        self._closed = True

    def get_extra_info(self, name: str) -> Any:
        return self._extra_info.get(name)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value

    def add_data(self, data: bytes) -> None:
        """Make more data available for reading."""
        self._data += data

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def written_data(self) -> bytes:
        """Everything written to the stream so far."""
        return b"".join(self._write_buffer)


class MockNetworkBackend(NetworkBackend):
    """
    Mock backend handing out prepared MockNetworkStreams.

    Each ``add_connection(host, port, data)`` queues one stream; every
    connect to that endpoint takes the next queued stream, or an empty
    one if none is left. Use the pseudo-host ``"unix:" + path`` for Unix
    socket connections.
    """

    def __init__(self) -> None:
        self._pending: Dict[Tuple[str, int], Deque[MockNetworkStream]] = defaultdict(deque)
        self._failures: Dict[Tuple[str, int], Exception] = {}
        self.connections: List[Tuple[str, int, MockNetworkStream]] = []
        self.tls_upgrades: List[Tuple[str, MockNetworkStream]] = []

    def add_connection(
        self,
        host: str,
        port: int,
        data: bytes = b"",
        stall: bool = False,
        tls_data: bytes = b"",
    ) -> MockNetworkStream:
        """Queue a stream that will serve data on the next connect."""
        stream = MockNetworkStream(data, stall=stall, tls_data=tls_data)
        self._pending[(host, port)].append(stream)
        return stream

    def fail_connection(self, host: str, port: int, error: Exception) -> None:
        """Make connects to host:port raise error."""
        self._failures[(host, port)] = error

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> MockNetworkStream:
        key = (host, port)
        if key in self._failures:
            raise self._failures[key]

        pending = self._pending[key]
        stream = pending.popleft() if pending else MockNetworkStream()
        stream.set_extra_info("peername", key)
        self.connections.append((host, port, stream))
        return stream

    async def start_tls(
        self,
        stream: NetworkStream,
        host: str,
        ssl_context: ssl.SSLContext,
        timeout: Optional[float] = None,
    ) -> NetworkStream:
        if isinstance(stream, MockNetworkStream):
            stream.set_extra_info("ssl_object", True)
            stream.set_extra_info("server_hostname", host)
            stream.add_data(stream.tls_data)
            stream.tls_data = b""
        self.tls_upgrades.append((host, stream))
        return stream

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
    ) -> MockNetworkStream:
        return await self.connect_tcp("unix:" + path, 0, timeout)

    def reset(self) -> None:
        """Forget all queued and recorded connections."""
        self._pending.clear()
        self._failures.clear()
        self.connections.clear()
        self.tls_upgrades.clear()
