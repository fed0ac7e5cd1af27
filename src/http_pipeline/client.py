"""
HTTP client for http_pipeline.

Client runs the hook pipeline around a Dispatcher. Used as is, it behaves
like a plain HTTP client; subclasses override hooks to build API-specific
clients without touching dispatch.
"""

import logging
from typing import Any, Mapping, Optional

from .dispatcher import Dispatcher, EnvLookup
from .exceptions import HTTPPipelineError
from .hooks import Hooks
from .http_primitives import (
    AsyncHandle,
    Body,
    HeadersInput,
    Method,
    Options,
    ParamsInput,
    Request,
    Result,
    normalize_headers,
)
from .transport.base import Transport
from .urls import merge_query

logger = logging.getLogger(__name__)


class Client(Hooks):
    """
    Hook-driven HTTP client.

    ``request()`` and the per-method helpers return a ``Result`` holding a
    Response (or whatever ``process_response`` returned), an AsyncHandle
    for streamed requests, or an HTTPPipelineError. The ``*_or_raise``
    variants return the value and raise the error instead.

    Example::

        async with Client() as client:
            result = await client.get("example.com/get", params={"foo": "bar"})
            response = result.unwrap()
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        env_lookup: Optional[EnvLookup] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            transport: Transport to dispatch through; an H11Transport is
                created when omitted
            env_lookup: Callable used to read proxy environment variables;
                defaults to ``os.environ.get``
        """
        if transport is None:
            from .transport.h11 import H11Transport
            transport = H11Transport()

        self._transport = transport
        self._dispatcher = Dispatcher(transport, self, env_lookup)

    def build_request(self, request: Request) -> Request:
        """
        Run the request hooks and return the Request that will be sent.

        The url hook result is merged with the params hook result; the
        returned Request keeps the processed params alongside the merged url.
        """
        params = self.process_request_params(request)
        url = merge_query(self.process_request_url(request), params)
        headers = self.process_request_headers(request)
        if isinstance(headers, Mapping):
            headers = normalize_headers(headers)

        return Request(
            method=request.method,
            url=url,
            headers=headers,
            body=self.process_request_body(request),
            params=params,
            options=self.process_request_options(request),
        )

    async def request(self, request: Request) -> Result:
        """
        Issue request through the pipeline.

        Returns:
            Result with the processed Response, an AsyncHandle, or the error.
        """
        try:
            processed = self.build_request(request)
            outcome = await self._dispatcher.dispatch(processed)
            if isinstance(outcome, AsyncHandle):
                return Result.success(outcome)

            value = await self.process_response(outcome)
        except HTTPPipelineError as e:
            logger.debug(f"Request to {request.url} failed: {e}")
            return Result.failure(e)

        if isinstance(value, Result):
            return value
        return Result.success(value)

    async def request_or_raise(self, request: Request) -> Any:
        """Like request(), but returns the value and raises on failure."""
        return (await self.request(request)).unwrap()

    async def stream_next(self, handle: AsyncHandle) -> Result:
        """
        Ask the transport for the next event of a pull-gated exchange.

        Returns:
            Result holding the handle, or HandleNotFound if the exchange is
            unknown or already finished.
        """
        try:
            await self._transport.stream_next(handle.id)
        except HTTPPipelineError as e:
            return Result.failure(e)
        return Result.success(handle)

    async def stream_next_or_raise(self, handle: AsyncHandle) -> AsyncHandle:
        return (await self.stream_next(handle)).unwrap()

    ## Convenience forms

    async def get(
        self,
        url: str,
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.GET, url, headers, b"", params, options))

    async def head(
        self,
        url: str,
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.HEAD, url, headers, b"", params, options))

    async def delete(
        self,
        url: str,
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.DELETE, url, headers, b"", params, options))

    async def options(
        self,
        url: str,
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.OPTIONS, url, headers, b"", params, options))

    async def post(
        self,
        url: str,
        body: Body = b"",
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.POST, url, headers, body, params, options))

    async def put(
        self,
        url: str,
        body: Body = b"",
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.PUT, url, headers, body, params, options))

    async def patch(
        self,
        url: str,
        body: Body = b"",
        headers: Optional[HeadersInput] = None,
        params: Optional[ParamsInput] = None,
        options: Optional[Options] = None,
    ) -> Result:
        return await self.request(Request.create(Method.PATCH, url, headers, body, params, options))

    async def get_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.get(url, *args, **kwargs)).unwrap()

    async def head_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.head(url, *args, **kwargs)).unwrap()

    async def delete_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.delete(url, *args, **kwargs)).unwrap()

    async def options_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.options(url, *args, **kwargs)).unwrap()

    async def post_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.post(url, *args, **kwargs)).unwrap()

    async def put_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.put(url, *args, **kwargs)).unwrap()

    async def patch_or_raise(self, url: str, *args: Any, **kwargs: Any) -> Any:
        return (await self.patch(url, *args, **kwargs)).unwrap()

    ## Lifecycle

    async def aclose(self) -> None:
        """Stop running transformers and close the transport."""
        await self._dispatcher.aclose()
        await self._transport.aclose()

    @property
    def transport(self) -> Transport:
        return self._transport

    async def __aenter__(self) -> "Client":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.aclose()
