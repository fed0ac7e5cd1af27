"""
Dispatcher for http_pipeline.

The Dispatcher turns a fully processed Request into transport call
parameters, invokes the transport, and normalizes the three result shapes
(complete body, body reference, async handle) into a Response or an
AsyncHandle.
"""

import asyncio
import logging
import os
import time
from typing import Any, Callable, Dict, Optional

from .exceptions import HTTPPipelineError, TransportError
from .hooks import Hooks
from .http_primitives import (
    ASYNC_ONCE,
    AsyncHandle,
    Request,
    Response,
    StreamBody,
)
from .streams import ElementStream
from .transformer import AsyncTransformer
from .transport.base import BodyRef, DispatchResult, SyncResult, Transport
from .urls import url_scheme

logger = logging.getLogger(__name__)

EnvLookup = Callable[[str], Optional[str]]

# (option key, transport option key)
OPTION_MAP = (
    ("timeout", "connect_timeout"),
    ("recv_timeout", "recv_timeout"),
    ("tls_options", "tls_options"),
    ("follow_redirect", "follow_redirect"),
    ("max_redirect", "max_redirect"),
)

PROXY_ENV = {
    "http": ("HTTP_PROXY", "http_proxy"),
    "https": ("HTTPS_PROXY", "https_proxy"),
}


class Dispatcher:
    """
    Bridge between the hook pipeline and a Transport.

    ``hooks`` supplies the response hooks applied to synchronous results
    and handed to the AsyncTransformer for streamed ones. ``env_lookup``
    is used for proxy environment variables.
    """

    def __init__(
        self,
        transport: Transport,
        hooks: Hooks,
        env_lookup: Optional[EnvLookup] = None,
    ) -> None:
        self._transport = transport
        self._hooks = hooks
        self._env_lookup = env_lookup or os.environ.get
        self._transformers: Dict[Any, AsyncTransformer] = {}

    def resolve_proxy(self, request: Request) -> Any:
        """
        Pick the proxy for request.

        An explicit ``proxy`` option wins, even when it is None. Otherwise
        the upper-case, then lower-case, environment variable matching
        the url scheme is used.
        """
        if "proxy" in request.options:
            return request.options["proxy"]

        for name in PROXY_ENV.get(url_scheme(request.url), ()):
            value = self._env_lookup(name)
            if value:
                return value
        return None

    def build_transport_options(
        self,
        request: Request,
        sink: Optional[AsyncTransformer] = None,
    ) -> Dict[str, Any]:
        """
        Map request options to transport options.

        Args:
            request: The processed request
            sink: Transformer receiving events when the request is streamed

        Returns:
            Dict of transport options; keys whose value is None are omitted
        """
        options = request.options
        transport_options: Dict[str, Any] = dict(options.get("transport") or {})

        for key, transport_key in OPTION_MAP:
            value = options.get(key)
            if value is not None:
                transport_options[transport_key] = value

        proxy = self.resolve_proxy(request)
        if proxy:
            transport_options["proxy"] = proxy
            proxy_auth = options.get("proxy_auth")
            if proxy_auth:
                transport_options["proxy_auth"] = proxy_auth

        if sink is not None:
            transport_options["stream_to"] = sink
            transport_options["async"] = ASYNC_ONCE if options.get("async") == ASYNC_ONCE else "push"

        return transport_options

    async def dispatch(self, request: Request) -> Any:
        """
        Send a processed request.

        Returns:
            A Response (response hooks applied, process_response not yet)
            or an AsyncHandle for streamed requests.

        Raises:
            TransportError: If the exchange fails before a complete
                response is available.
        """
        transformer: Optional[AsyncTransformer] = None
        if request.is_streaming:
            transformer = AsyncTransformer(self._hooks, request.options["stream_to"], self._transport)

        transport_options = self.build_transport_options(request, transformer)
        start_time = time.time()
        logger.debug(f"Dispatching {request.method.value} {request.url}")

        try:
            result = await self._send(request, transport_options)

            if isinstance(result, AsyncHandle):
                if transformer is None:
                    raise TransportError("transport returned an async handle for a synchronous request")
                self._transformers[result.id] = transformer
                transformer.start(result.id).add_done_callback(
                    lambda _task, id=result.id: self._transformers.pop(id, None)
                )
                logger.debug(f"Streaming {request.url} as exchange {result.id!r}")
                return result

            response = await self._build_response(request, result)
        except TransportError as e:
            logger.debug(f"{request.method.value} {request.url} failed: {e.reason}")
            raise
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"{request.method.value} {request.url} failed: {e!r}")
            raise TransportError(e, cause=e) from e

        duration = time.time() - start_time
        logger.debug(
            f"{request.method.value} {request.url} -> {result.status_code} ({duration:.3f}s)"
        )
        return response

    async def _send(self, request: Request, options: Dict[str, Any]) -> DispatchResult:
        method = request.method.value

        if not isinstance(request.body, StreamBody):
            return await self._transport.request(
                method, request.url, request.headers, request.body, options
            )

        ref = await self._transport.open_stream(method, request.url, request.headers, options)
        elements = ElementStream(request.body.elements)
        try:
            async for element in elements:
                await self._transport.send_body(ref, element)
        except TransportError:
            # A failed send or an invalid element aborts the body; no response is read.
            await self._transport.abort(ref)
            raise
        except Exception as e:
            logger.warning(f"Body producer for {request.url} failed: {e!r}")
            await self._transport.abort(ref)
            raise TransportError(e, cause=e) from e
        finally:
            await elements.aclose()
        logger.debug(f"Sent {elements.elements_sent} body elements to {request.url}")
        return await self._transport.start_response(ref)

    async def _build_response(self, request: Request, result: DispatchResult) -> Response:
        if isinstance(result, BodyRef):
            body = await self._transport.body(result)
        elif isinstance(result, SyncResult):
            body = result.body
        else:
            raise TransportError(f"unexpected transport result {result!r}")

        try:
            return Response(
                status_code=self._hooks.process_response_status_code(result.status_code),
                headers=self._hooks.process_response_headers(result.headers),
                body=self._hooks.process_response_body(body),
                request=request,
            )
        except HTTPPipelineError:
            raise
        except Exception as e:
            # Same outcome as a failing hook on a streamed exchange.
            logger.error(f"Response hook failed for {request.url}: {e}")
            raise TransportError(e, cause=e) from e

    async def aclose(self) -> None:
        """Cancel transformers still relaying events."""
        tasks = [t.task for t in self._transformers.values() if t.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._transformers.clear()

    @property
    def active_exchanges(self) -> int:
        """Number of streamed exchanges whose transformer is still running."""
        return len(self._transformers)
