"""
HTTP primitives for http_pipeline.

This module defines the core data structures for requests, responses,
streaming events and call results. All classes are immutable; hooks build
new instances rather than modifying the ones they receive.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any,
    AsyncIterable,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from .exceptions import ConstructionError, HTTPPipelineError


# Type aliases for better readability
HeaderPairs = List[Tuple[str, str]]
HeadersInput = Union[Mapping[str, str], Sequence[Tuple[str, str]]]
ParamsInput = Union[Mapping[Any, Any], Sequence[Tuple[Any, Any]]]
Options = Mapping[str, Any]

INFINITE = "infinite"
ASYNC_ONCE = "once"


class Method(Enum):
    """HTTP methods understood by the pipeline."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"

    @classmethod
    def coerce(cls, value: Union["Method", str, bytes]) -> "Method":
        """Accept a Method or a case-insensitive method name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bytes):
            value = value.decode("ascii")
        try:
            return cls(str(value).upper())
        except ValueError as e:
            raise ConstructionError(f"unsupported method {value!r}", e) from e


@dataclass(frozen=True)
class FormBody:
    """Form-encoded body: ordered key/value pairs or a mapping."""
    fields: ParamsInput


@dataclass(frozen=True)
class FileBody:
    """Body read from a file on disk by the transport."""
    path: str


@dataclass(frozen=True)
class StreamBody:
    """
    Lazy element stream body.

    ``elements`` may be a sync or async iterable of bytes or str. The
    dispatcher pushes each element to the transport in order.
    """
    elements: Union[Iterable[Union[bytes, str]], AsyncIterable[Union[bytes, str]]]


Body = Union[bytes, str, FormBody, FileBody, StreamBody]


class Params(ABC):
    """
    An object that converts to and from query parameters.

    Instances may be passed wherever params are accepted; the query merge
    calls ``to_params()``. ``from_params()`` rebuilds an instance, for
    example from ``Response.request.params``::

        @dataclass(frozen=True)
        class Search(Params):
            q: str
            page: int = 1

            def to_params(self):
                return {"q": self.q, "page": self.page}

            @classmethod
            def from_params(cls, params):
                return cls(params["q"], int(params.get("page", 1)))
    """

    @abstractmethod
    def to_params(self) -> Mapping[str, Any]:
        pass

    @classmethod
    @abstractmethod
    def from_params(cls, params: Mapping[str, Any]) -> "Params":
        pass


def normalize_headers(headers: Optional[HeadersInput]) -> HeaderPairs:
    """
    Normalize headers into an ordered list of (name, value) pairs.

    Mappings are expanded in iteration order; pair sequences are copied
    unchanged.
    """
    if headers is None:
        return []
    if isinstance(headers, Mapping):
        return [(name, value) for name, value in headers.items()]
    return [(name, value) for name, value in headers]


@dataclass(frozen=True)
class Request:
    """
    Immutable description of an HTTP request.

    A Request is built by the caller (or by a hook), processed once by the
    pipeline, and the processed copy is attached to the resulting Response.
    """

    url: str
    method: Method = Method.GET
    headers: Any = field(default_factory=list)
    body: Any = b""
    params: Any = field(default_factory=dict)
    options: Any = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate request data after initialization."""
        if not isinstance(self.url, str) or not self.url:
            raise ConstructionError("url must be a non-empty string")

        if not isinstance(self.method, Method):
            object.__setattr__(self, "method", Method.coerce(self.method))

    @classmethod
    def create(
        cls,
        method: Union[Method, str],
        url: Optional[str],
        headers: Optional[HeadersInput] = None,
        body: Body = b"",
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> "Request":
        """
        Create a Request, filling in empty defaults.

        Args:
            method: HTTP method (Method or name such as "get")
            url: Target url; absolute, or bare host/path
            headers: Mapping or list of (name, value) pairs
            body: Raw bytes/str, FormBody, FileBody or StreamBody
            params: Query parameters merged into the url at dispatch time
            options: Request options (timeouts, streaming, proxy, ...)

        Returns:
            New Request instance

        Raises:
            ConstructionError: If url is missing or method is unknown
        """
        if url is None:
            raise ConstructionError("url is required")

        return cls(
            url=url,
            method=Method.coerce(method),
            headers=[] if headers is None else headers,
            body=body,
            params={} if params is None else params,
            options={} if options is None else dict(options),
        )

    def with_url(self, url: str) -> "Request":
        return replace(self, url=url)

    def with_headers(self, headers: HeadersInput) -> "Request":
        return replace(self, headers=headers)

    def with_body(self, body: Body) -> "Request":
        return replace(self, body=body)

    def with_params(self, params: ParamsInput) -> "Request":
        return replace(self, params=params)

    def with_options(self, **options: Any) -> "Request":
        """Create a new request with the given options added or replaced."""
        return replace(self, options={**self.options, **options})

    def add_header(self, name: str, value: str) -> "Request":
        """Add a header to the request."""
        return replace(self, headers=normalize_headers(self.headers) + [(name, value)])

    @property
    def is_streaming(self) -> bool:
        """Whether this request asks for asynchronous delivery."""
        return self.options.get("stream_to") is not None


@dataclass(frozen=True)
class Response:
    """
    Immutable result of a completed synchronous exchange.

    ``status_code``, ``headers`` and ``body`` hold whatever the response
    hooks returned; with default hooks they are an int, a list of pairs
    and bytes.
    """

    status_code: Any
    headers: Any = field(default_factory=list)
    body: Any = b""
    request: Optional[Request] = None

    @property
    def ok(self) -> bool:
        return isinstance(self.status_code, int) and 200 <= self.status_code < 400

    def get_header(self, name: str) -> Optional[str]:
        """Get a header value by name (case-insensitive)."""
        name_lower = name.lower()
        for header_name, header_value in normalize_headers(self.headers):
            if header_name.lower() == name_lower:
                return header_value
        return None

    def has_header(self, name: str) -> bool:
        """Check if a header exists (case-insensitive)."""
        return self.get_header(name) is not None


@dataclass(frozen=True)
class AsyncHandle:
    """Opaque token identifying one in-flight streamed exchange."""
    id: Any


# Streaming events delivered to a ``stream_to`` destination. The error
# terminal event is a TransportError carrying the same id.

@dataclass(frozen=True)
class AsyncStatus:
    id: Any
    code: Any


@dataclass(frozen=True)
class AsyncHeaders:
    id: Any
    headers: Any


@dataclass(frozen=True)
class AsyncChunk:
    id: Any
    chunk: Any


@dataclass(frozen=True)
class AsyncRedirect:
    id: Any
    to: str
    headers: Any


@dataclass(frozen=True)
class AsyncEnd:
    id: Any


T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a pipeline call: either a value or an error.

    ``unwrap()`` returns the value or raises the error, which is how the
    ``*_or_raise`` entry points are implemented.
    """

    value: Optional[T] = None
    error: Optional[HTTPPipelineError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: HTTPPipelineError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value
