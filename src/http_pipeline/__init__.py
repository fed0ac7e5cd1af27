"""
http_pipeline - Extensible async HTTP client

An HTTP client built around overridable request and response hooks, with
synchronous and streamed (push or pull) responses over an h11 transport.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

from .http_primitives import (
    AsyncChunk,
    AsyncEnd,
    AsyncHandle,
    AsyncHeaders,
    AsyncRedirect,
    AsyncStatus,
    FileBody,
    FormBody,
    Method,
    Params,
    Request,
    Response,
    Result,
    StreamBody,
)
from .hooks import Hooks
from .client import Client
from .retry import RetryingClient
from .dispatcher import Dispatcher
from .transformer import AsyncTransformer, TransformerState
from .transport import H11Transport, MockStream, MockTransport, Transport
from .urls import default_process_url, encode_query, merge_query
from .exceptions import (
    ConstructionError,
    HandleNotFound,
    HTTPPipelineError,
    RetryExhausted,
    TransportError,
)

__all__ = [
    "AsyncChunk",
    "AsyncEnd",
    "AsyncHandle",
    "AsyncHeaders",
    "AsyncRedirect",
    "AsyncStatus",
    "FileBody",
    "FormBody",
    "Method",
    "Params",
    "Request",
    "Response",
    "Result",
    "StreamBody",
    "Hooks",
    "Client",
    "RetryingClient",
    "Dispatcher",
    "AsyncTransformer",
    "TransformerState",
    "H11Transport",
    "MockStream",
    "MockTransport",
    "Transport",
    "default_process_url",
    "encode_query",
    "merge_query",
    "ConstructionError",
    "HandleNotFound",
    "HTTPPipelineError",
    "RetryExhausted",
    "TransportError",
]
