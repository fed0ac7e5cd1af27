"""
Async transformer for streamed exchanges.

One AsyncTransformer runs per streamed request. The transport feeds it
low-level events for one exchange id; it applies the status, headers and
chunk hooks and relays typed Async* events to the caller's destination,
in order, ending with exactly one terminal event.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Optional

from .exceptions import HTTPPipelineError, TransportError
from .hooks import Hooks
from .http_primitives import (
    AsyncChunk,
    AsyncEnd,
    AsyncHeaders,
    AsyncRedirect,
    AsyncStatus,
)
from .transport.base import (
    EventSink,
    TransportChunk,
    TransportDone,
    TransportEvent,
    TransportFailure,
    TransportHeaders,
    TransportRedirect,
    Transport,
    TransportStatus,
)

logger = logging.getLogger(__name__)


class TransformerState(Enum):
    """States of a streamed exchange."""
    AWAITING_STATUS = "awaiting_status"
    AWAITING_HEADERS = "awaiting_headers"
    STREAMING = "streaming"
    TERMINATED = "terminated"


class AsyncTransformer(EventSink):
    """
    Per-exchange relay from transport events to Async* events.

    The destination is either an object with a ``put()`` method (such as
    ``asyncio.Queue``) or a callable; either may be a coroutine. If a
    delivery fails the destination is considered gone: the failure is
    logged and the remaining events of the exchange are consumed without
    being delivered.

    When the transformer itself ends the exchange (an out-of-order event
    or a failing hook) it cancels the exchange on ``transport`` before
    delivering the error.
    """

    def __init__(self, hooks: Hooks, destination: Any, transport: Optional[Transport] = None) -> None:
        self._hooks = hooks
        self._destination = destination
        self._transport = transport
        self._inbox: "asyncio.Queue[TransportEvent]" = asyncio.Queue()
        self._state = TransformerState.AWAITING_STATUS
        self._id: Any = None
        self._task: Optional[asyncio.Task] = None
        self._destination_gone = False
        self._delivered = 0

    def feed(self, event: TransportEvent) -> None:
        """Queue a transport event. Safe to call before start()."""
        self._inbox.put_nowait(event)

    def start(self, id: Any) -> asyncio.Task:
        """Bind the transformer to an exchange id and start relaying."""
        if self._task is not None:
            raise RuntimeError("transformer already started")
        self._id = id
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Transformer started for exchange {id!r}")
        return self._task

    async def _run(self) -> None:
        while self._state is not TransformerState.TERMINATED:
            event = await self._inbox.get()
            await self._handle(event)
        logger.debug(
            f"Transformer for exchange {self._id!r} terminated "
            f"after {self._delivered} events"
        )

    async def _handle(self, event: TransportEvent) -> None:
        if getattr(event, "id", None) != self._id:
            logger.warning(
                f"Ignoring event for exchange {getattr(event, 'id', None)!r} "
                f"in transformer bound to {self._id!r}"
            )
            return

        try:
            if isinstance(event, TransportStatus):
                await self._on_status(event)
            elif isinstance(event, TransportHeaders):
                await self._on_headers(event)
            elif isinstance(event, TransportChunk):
                await self._on_chunk(event)
            elif isinstance(event, TransportDone):
                await self._on_done()
            elif isinstance(event, TransportFailure):
                await self._terminate(TransportError(event.reason, id=self._id))
            elif isinstance(event, TransportRedirect):
                headers = self._hooks.process_response_headers(event.headers)
                await self._terminate(AsyncRedirect(id=self._id, to=event.to, headers=headers))
            else:
                await self._fail(f"unknown transport event {type(event).__name__}")
        except Exception as e:
            # A failing hook ends the exchange like any transport failure.
            logger.error(f"Hook failed for exchange {self._id!r}: {e}")
            await self._abandon(TransportError(e, id=self._id, cause=e))

    async def _on_status(self, event: TransportStatus) -> None:
        if self._state is not TransformerState.AWAITING_STATUS:
            await self._fail(f"unexpected status in state {self._state.value}")
            return
        code = self._hooks.process_response_status_code(event.code)
        await self._deliver(AsyncStatus(id=self._id, code=code))
        self._state = TransformerState.AWAITING_HEADERS

    async def _on_headers(self, event: TransportHeaders) -> None:
        if self._state is not TransformerState.AWAITING_HEADERS:
            await self._fail(f"unexpected headers in state {self._state.value}")
            return
        headers = self._hooks.process_response_headers(event.headers)
        await self._deliver(AsyncHeaders(id=self._id, headers=headers))
        self._state = TransformerState.STREAMING

    async def _on_chunk(self, event: TransportChunk) -> None:
        if self._state is not TransformerState.STREAMING:
            await self._fail(f"unexpected chunk in state {self._state.value}")
            return
        chunk = self._hooks.process_response_chunk(event.data)
        await self._deliver(AsyncChunk(id=self._id, chunk=chunk))

    async def _on_done(self) -> None:
        if self._state is not TransformerState.STREAMING:
            await self._fail(f"exchange ended in state {self._state.value}")
            return
        await self._terminate(AsyncEnd(id=self._id))

    async def _fail(self, reason: str) -> None:
        logger.warning(f"Exchange {self._id!r}: {reason}")
        await self._abandon(TransportError(reason, id=self._id))

    async def _abandon(self, error: TransportError) -> None:
        """End the exchange from this side; the transport stops producing events."""
        self._state = TransformerState.TERMINATED
        if self._transport is not None:
            try:
                await self._transport.cancel(self._id)
            except HTTPPipelineError as e:
                logger.warning(f"Could not cancel exchange {self._id!r}: {e}")
        await self._deliver(error)

    async def _terminate(self, event: Any) -> None:
        self._state = TransformerState.TERMINATED
        await self._deliver(event)

    async def _deliver(self, event: Any) -> None:
        if self._destination_gone:
            return
        try:
            put = getattr(self._destination, "put", None)
            result = put(event) if put is not None else self._destination(event)
            if inspect.isawaitable(result):
                await result
            self._delivered += 1
        except Exception as e:
            self._destination_gone = True
            logger.warning(
                f"Destination for exchange {self._id!r} is unreachable, "
                f"dropping remaining events: {e}"
            )

    @property
    def id(self) -> Any:
        return self._id

    @property
    def state(self) -> TransformerState:
        return self._state

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task
