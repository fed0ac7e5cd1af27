"""
Transport interface for http_pipeline.

This module defines the contract between the dispatcher and the component
that actually talks to the network, together with the result shapes and
low-level events a transport produces.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from ..http_primitives import AsyncHandle


@dataclass(frozen=True)
class SyncResult:
    """Status, headers and complete body, available at once."""
    status_code: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


@dataclass(frozen=True)
class BodyRef:
    """Status and headers; the body must be fetched with Transport.body()."""
    status_code: int
    headers: List[Tuple[str, str]]
    ref: Any


DispatchResult = Union[SyncResult, BodyRef, AsyncHandle]


# Low-level events fed to ``options["stream_to"].feed()`` for streamed
# exchanges. The transformer turns them into Async* events.

@dataclass(frozen=True)
class TransportStatus:
    id: Any
    code: int
    reason: str = ""


@dataclass(frozen=True)
class TransportHeaders:
    id: Any
    headers: List[Tuple[str, str]]


@dataclass(frozen=True)
class TransportChunk:
    id: Any
    data: bytes


@dataclass(frozen=True)
class TransportDone:
    id: Any


@dataclass(frozen=True)
class TransportFailure:
    id: Any
    reason: Any


@dataclass(frozen=True)
class TransportRedirect:
    id: Any
    to: str
    headers: List[Tuple[str, str]]


TransportEvent = Union[
    TransportStatus,
    TransportHeaders,
    TransportChunk,
    TransportDone,
    TransportFailure,
    TransportRedirect,
]


class Transport(ABC):
    """
    Interface for transport implementations.

    Methods raise ``TransportError`` on failure. ``options`` is the dict
    built by ``Dispatcher.build_transport_options``; recognised keys are
    ``connect_timeout``, ``recv_timeout``, ``tls_options``,
    ``follow_redirect``, ``max_redirect``, ``proxy``, ``proxy_auth``,
    ``stream_to`` and ``async`` plus any passthrough keys.

    When ``stream_to`` is present, ``request``/``start_response`` must
    return an AsyncHandle at once and deliver TransportEvents for that id
    by calling ``options["stream_to"].feed(event)``. With ``async`` set
    to ``"once"``, only the first event is delivered unprompted; each
    following event waits for one ``stream_next(id)`` call.
    """

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        headers: List[Tuple[str, str]],
        body: Any,
        options: Dict[str, Any],
    ) -> DispatchResult:
        """
        Issue a request whose body is fully known.

        Returns:
            SyncResult, BodyRef or AsyncHandle.

        Raises:
            TransportError: If the request could not be sent or no status
                was received.
        """
        pass

    @abstractmethod
    async def open_stream(
        self,
        method: str,
        url: str,
        headers: List[Tuple[str, str]],
        options: Dict[str, Any],
    ) -> Any:
        """Open a request whose body will be sent with send_body()."""
        pass

    @abstractmethod
    async def send_body(self, ref: Any, data: bytes) -> None:
        """Send one body element on a request opened with open_stream()."""
        pass

    @abstractmethod
    async def start_response(self, ref: Any) -> DispatchResult:
        """Finish the request body and wait for the response."""
        pass

    @abstractmethod
    async def body(self, ref: BodyRef) -> bytes:
        """Read the complete body referenced by a BodyRef."""
        pass

    @abstractmethod
    async def stream_next(self, id: Any) -> None:
        """
        Release the next event of a pull-gated exchange.

        Raises:
            HandleNotFound: If id is unknown or already terminated.
        """
        pass

    async def abort(self, ref: Any) -> None:
        """
        Give up on a request opened with open_stream().

        Called when the body cannot be sent in full; the request must not
        be completed. Unknown refs are ignored. No-op by default.
        """
        return None

    async def cancel(self, id: Any) -> None:
        """
        Stop delivering events for a streamed exchange.

        Called when the receiving side ended the exchange on its own.
        Afterwards stream_next(id) raises HandleNotFound. Unknown ids are
        ignored. No-op by default.
        """
        return None

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
        return None


class EventSink(ABC):
    """Receiver of low-level transport events (the async transformer)."""

    @abstractmethod
    def feed(self, event: TransportEvent) -> None:
        pass


def event_sink(options: Dict[str, Any]) -> Optional[EventSink]:
    """Return the event sink set in transport options, if any."""
    return options.get("stream_to")
