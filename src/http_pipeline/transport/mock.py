"""
Scripted transport for testing.

MockTransport replays a queue of prepared results instead of talking to
the network, records every call it receives, and plays scripted event
sequences for streamed exchanges, honoring ``async: "once"`` gating.
"""

import asyncio
import itertools
import logging
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple, Union

from ..exceptions import HandleNotFound, TransportError
from ..http_primitives import ASYNC_ONCE, AsyncHandle
from .base import (
    BodyRef,
    DispatchResult,
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

logger = logging.getLogger(__name__)

STREAM = "stream"


class TransportCall(NamedTuple):
    """One recorded call to request() or open_stream()."""
    method: str
    url: str
    headers: Any
    body: Any
    options: Dict[str, Any]


class MockStream:
    """
    Scripted streamed exchange.

    ``events`` is a list of steps, each one of::

        ("status", 200)            ("status", 200, "OK")
        ("headers", [("a", "b")])  ("chunk", b"data")
        "done"                     ("error", reason)
        ("redirect", "http://to", [("location", "http://to")])
    """

    def __init__(self, events: Iterable[Any], id: Optional[str] = None) -> None:
        self.events = list(events)
        self.id = id

    @classmethod
    def simple(
        cls,
        status: int = 200,
        headers: Optional[List[Tuple[str, str]]] = None,
        chunks: Iterable[bytes] = (),
        id: Optional[str] = None,
    ) -> "MockStream":
        """A well-formed exchange: status, headers, chunks, done."""
        events: List[Any] = [("status", status), ("headers", headers or [])]
        events.extend(("chunk", chunk) for chunk in chunks)
        events.append("done")
        return cls(events, id=id)


Scripted = Union[SyncResult, BodyRef, MockStream, Exception]


def _to_event(id: Any, step: Any) -> TransportEvent:
    if step == "done":
        return TransportDone(id)

    kind, *args = step
    if kind == "status":
        return TransportStatus(id, *args)
    if kind == "headers":
        return TransportHeaders(id, *args)
    if kind == "chunk":
        return TransportChunk(id, *args)
    if kind == "error":
        return TransportFailure(id, *args)
    if kind == "redirect":
        return TransportRedirect(id, *args)
    raise ValueError(f"unknown mock stream step {step!r}")


class MockTransport(Transport):
    """
    In-memory Transport for tests.

    Results are returned in the order they were queued. Bodies for
    BodyRef results are looked up in ``bodies`` by ``ref``; an Exception
    stored there is raised from body(). Set ``fail_send_at`` to make the
    n-th (0-based) send_body() call of a stream fail. Refs passed to
    abort() and ids passed to cancel() are recorded in ``aborted`` and
    ``cancelled``.
    """

    def __init__(self, responses: Optional[Iterable[Scripted]] = None) -> None:
        self._responses: Deque[Scripted] = deque(responses or [])
        self.calls: List[TransportCall] = []
        self.bodies: Dict[Any, Union[bytes, Exception]] = {}
        self.sent: Dict[str, List[bytes]] = {}
        self.started: List[str] = []
        self.fail_send_at: Optional[int] = None
        self.body_calls = 0
        self.stream_next_calls = 0
        self.aborted: List[str] = []
        self.cancelled: List[Any] = []

        self._stream_options: Dict[str, Dict[str, Any]] = {}
        self._active: Set[Any] = set()
        self._gates: Dict[Any, asyncio.Semaphore] = {}
        self._emitters: Dict[Any, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._counter = itertools.count(1)

    def add_response(self, response: Scripted) -> None:
        """Queue a result for the next request."""
        self._responses.append(response)

    async def request(
        self,
        method: str,
        url: str,
        headers: Any,
        body: Any,
        options: Dict[str, Any],
    ) -> DispatchResult:
        self.calls.append(TransportCall(method, url, headers, body, dict(options)))
        return self._respond(options)

    async def open_stream(self, method: str, url: str, headers: Any, options: Dict[str, Any]) -> str:
        self.calls.append(TransportCall(method, url, headers, STREAM, dict(options)))
        ref = f"stream-{next(self._counter)}"
        self.sent[ref] = []
        self._stream_options[ref] = options
        return ref

    async def send_body(self, ref: Any, data: bytes) -> None:
        if ref not in self.sent:
            raise TransportError(f"unknown stream {ref!r}")
        if self.fail_send_at is not None and len(self.sent[ref]) == self.fail_send_at:
            raise TransportError("send_body failed")
        self.sent[ref].append(data)

    async def start_response(self, ref: Any) -> DispatchResult:
        self.started.append(ref)
        return self._respond(self._stream_options.pop(ref))

    async def body(self, ref: BodyRef) -> bytes:
        self.body_calls += 1
        body = self.bodies.get(ref.ref, b"")
        if isinstance(body, Exception):
            raise body
        return body

    async def stream_next(self, id: Any) -> None:
        self.stream_next_calls += 1
        if id not in self._active:
            raise HandleNotFound(id)
        gate = self._gates.get(id)
        if gate is not None:
            gate.release()

    async def abort(self, ref: Any) -> None:
        self.aborted.append(ref)
        self._stream_options.pop(ref, None)

    async def cancel(self, id: Any) -> None:
        self.cancelled.append(id)
        self._active.discard(id)
        task = self._emitters.pop(id, None)
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _respond(self, options: Dict[str, Any]) -> DispatchResult:
        if not self._responses:
            raise TransportError("no scripted response left")

        scripted = self._responses.popleft()
        if isinstance(scripted, Exception):
            raise scripted
        if isinstance(scripted, MockStream):
            return self._start_stream(scripted, options)
        return scripted

    def _start_stream(self, scripted: MockStream, options: Dict[str, Any]) -> AsyncHandle:
        sink = event_sink(options)
        if sink is None:
            raise TransportError("streamed response scripted for a synchronous request")

        id = scripted.id or f"mock-{next(self._counter)}"
        gate = asyncio.Semaphore(0) if options.get("async") == ASYNC_ONCE else None
        self._active.add(id)
        if gate is not None:
            self._gates[id] = gate

        task = asyncio.create_task(self._emit(id, scripted.events, sink, gate))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._emitters[id] = task
        return AsyncHandle(id)

    async def _emit(self, id: Any, steps: List[Any], sink: Any, gate: Optional[asyncio.Semaphore]) -> None:
        try:
            for index, step in enumerate(steps):
                if index > 0 and gate is not None:
                    await gate.acquire()
                sink.feed(_to_event(id, step))
                await asyncio.sleep(0)
        finally:
            self._active.discard(id)
            self._gates.pop(id, None)
            self._emitters.pop(id, None)
            logger.debug(f"Mock exchange {id!r} finished")

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of scripted results not consumed yet."""
        return len(self._responses)
