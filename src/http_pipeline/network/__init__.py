"""
Network backend components for http_pipeline.

Low-level byte streams used by the h11 transport, with an asyncio
implementation and in-memory mocks for tests.
"""

from .base import NetworkBackend, NetworkStream
from .asyncio_backend import AsyncioNetworkBackend, AsyncioNetworkStream
from .mock import MockNetworkBackend, MockNetworkStream
from .utils import (
    Target,
    create_ssl_context,
    format_host_header,
    parse_proxy,
    parse_target,
    proxy_authorization,
    timeout_seconds,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "AsyncioNetworkBackend",
    "AsyncioNetworkStream",
    "MockNetworkBackend",
    "MockNetworkStream",
    "Target",
    "create_ssl_context",
    "format_host_header",
    "parse_proxy",
    "parse_target",
    "proxy_authorization",
    "timeout_seconds",
]
