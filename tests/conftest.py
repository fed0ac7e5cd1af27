"""
Pytest configuration for http_pipeline tests.

This file contains shared fixtures and configuration
for all tests in the project.
"""

import asyncio
from typing import Any, Dict, List

import pytest

from http_pipeline import AsyncEnd, AsyncRedirect, Client, TransportError
from http_pipeline.network import MockNetworkBackend
from http_pipeline.transport import H11Transport, MockTransport

TERMINAL_EVENTS = (AsyncEnd, AsyncRedirect, TransportError)


@pytest.fixture
def mock_transport():
    """Create an empty MockTransport."""
    return MockTransport()


@pytest.fixture
def environment():
    """Mutable proxy environment used instead of os.environ."""
    return {}


@pytest.fixture
def client(mock_transport, environment):
    """Plain Client over the mock transport."""
    return Client(transport=mock_transport, env_lookup=environment.get)


@pytest.fixture
def network_backend():
    """Create a MockNetworkBackend."""
    return MockNetworkBackend()


@pytest.fixture
def h11_transport(network_backend):
    """H11Transport talking to the mock network."""
    return H11Transport(backend=network_backend)


@pytest.fixture
def collect_events():
    """Read events from a queue until a terminal event arrives."""
    async def _collect(queue: "asyncio.Queue[Any]", timeout: float = 1.0) -> List[Any]:
        events = []
        while True:
            event = await asyncio.wait_for(queue.get(), timeout)
            events.append(event)
            if isinstance(event, TERMINAL_EVENTS):
                return events
    return _collect


@pytest.fixture
def raw_response():
    """Build raw HTTP/1.1 response bytes."""
    def _build(
        status: int = 200,
        reason: str = "OK",
        headers: Dict[str, str] = None,
        body: bytes = b"",
    ) -> bytes:
        headers = dict(headers or {})
        headers.setdefault("Content-Length", str(len(body)))
        lines = [f"HTTP/1.1 {status} {reason}"]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body
    return _build


@pytest.fixture
def async_data_generator():
    """Create an async data generator for testing."""
    async def generator(data: List[bytes]):
        for chunk in data:
            yield chunk

    return generator
