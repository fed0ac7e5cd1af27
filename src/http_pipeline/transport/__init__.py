"""
Transports for http_pipeline.

A Transport performs the actual HTTP exchange. H11Transport talks to the
network through h11; MockTransport replays scripted results for tests.
"""

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
from .h11 import H11Connection, H11Transport
from .mock import MockStream, MockTransport, TransportCall

__all__ = [
    "BodyRef",
    "DispatchResult",
    "EventSink",
    "SyncResult",
    "Transport",
    "TransportChunk",
    "TransportDone",
    "TransportEvent",
    "TransportFailure",
    "TransportHeaders",
    "TransportRedirect",
    "TransportStatus",
    "event_sink",
    "H11Connection",
    "H11Transport",
    "MockStream",
    "MockTransport",
    "TransportCall",
]
