"""
Network abstractions used by the h11 transport.

A NetworkBackend opens byte streams (TCP, TLS, Unix sockets); a
NetworkStream reads and writes them. Both are abstract so the transport
can run against real asyncio sockets or in-memory mocks.
"""

import ssl
from abc import ABC, abstractmethod
from typing import Any, Optional


class NetworkStream(ABC):
    """Bidirectional async byte stream."""

    @abstractmethod
    async def read(self, max_bytes: int) -> bytes:
        """
        Read up to max_bytes.

        Returns:
            The bytes read; b"" once the peer has closed the stream.
        """
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        pass

    @abstractmethod
    async def aclose(self) -> None:
        pass

    def get_extra_info(self, name: str) -> Any:
        """Transport details such as "peername" or "ssl_object"."""
        return None

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass


class NetworkBackend(ABC):
    """Factory for NetworkStreams. Timeouts are in seconds; None waits forever."""

    @abstractmethod
    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> NetworkStream:
        """
        Open a TCP connection.

        Raises:
            OSError: If the connection fails.
            asyncio.TimeoutError: If it is not established in time.
        """
        pass

    @abstractmethod
    async def start_tls(
        self,
        stream: NetworkStream,
        host: str,
        ssl_context: ssl.SSLContext,
        timeout: Optional[float] = None,
    ) -> NetworkStream:
        """
        Upgrade an open stream to TLS.

        Used both for direct https connections and for tunnels opened
        through a proxy with CONNECT.
        """
        pass

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
    ) -> NetworkStream:
        """Open a Unix domain socket connection (``http+unix://`` urls)."""
        raise NotImplementedError(f"{type(self).__name__} does not support Unix sockets")
