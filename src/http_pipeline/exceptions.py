"""
Custom exceptions for http_pipeline.

This module defines the exception hierarchy used throughout
the library. Every failure surfaced by ``Client.request()`` is one of
these, wrapped in a ``Result``.
"""

from typing import Any, Optional


class HTTPPipelineError(Exception):
    """Base exception for all http_pipeline errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConstructionError(HTTPPipelineError):
    """Raised when a Request cannot be built (e.g. missing url)."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Construction error: {message}", cause)


class TransportError(HTTPPipelineError):
    """
    Raised (or delivered as a terminal stream event) when an exchange fails.

    ``reason`` is whatever the transport reported; it is kept opaque.
    ``id`` is set when the failure belongs to a streamed exchange.
    """

    def __init__(
        self,
        reason: Any,
        id: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(f"Transport error: {reason}", cause)
        self.reason = reason
        self.id = id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransportError):
            return NotImplemented
        return self.reason == other.reason and self.id == other.id

    def __hash__(self) -> int:
        return hash((TransportError, repr(self.reason), self.id))


class RetryExhausted(HTTPPipelineError):
    """Raised by a retrying client once its attempt bound is reached."""

    def __init__(self, attempts: int, max_tries: int) -> None:
        super().__init__(f"too many tries [{attempts} of {max_tries}]")
        self.attempts = attempts
        self.max_tries = max_tries


class HandleNotFound(HTTPPipelineError):
    """Raised when stream_next() targets an unknown or finished exchange."""

    def __init__(self, id: Any) -> None:
        super().__init__(f"stream_next failed: no exchange with id {id!r}")
        self.id = id
