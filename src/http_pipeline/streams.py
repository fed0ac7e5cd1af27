"""
Element streams for http_pipeline.

Lazy request bodies (``StreamBody``) may be built from plain iterables,
generators or async generators. ElementStream gives the dispatcher one
async iteration interface over all of them.
"""

from typing import AsyncIterable, AsyncIterator, Iterable, Optional, Union

from .exceptions import TransportError

Element = Union[bytes, str]


class ElementStream:
    """
    Async iterator over the elements of a lazy request body.

    Each element is yielded as bytes; ``str`` elements are UTF-8 encoded.
    Empty elements are skipped.
    """

    def __init__(
        self,
        elements: Union[Iterable[Element], AsyncIterable[Element]],
    ) -> None:
        self._elements = elements
        self._iterator: Optional[AsyncIterator[Element]] = None
        self._closed = False
        self._count = 0

    async def _iter_sync(self, elements: Iterable[Element]) -> AsyncIterator[Element]:
        for element in elements:
            yield element

    def __aiter__(self) -> "ElementStream":
        if self._closed:
            raise TransportError("cannot iterate over closed element stream")

        if hasattr(self._elements, "__aiter__"):
            self._iterator = self._elements.__aiter__()
        else:
            self._iterator = self._iter_sync(self._elements)
        return self

    async def __anext__(self) -> bytes:
        if self._closed or self._iterator is None:
            raise StopAsyncIteration

        while True:
            element = await self._iterator.__anext__()
            if isinstance(element, str):
                element = element.encode("utf-8")
            if not isinstance(element, (bytes, bytearray, memoryview)):
                raise TransportError(
                    f"stream elements must be bytes or str, got {type(element).__name__}"
                )
            if element:
                self._count += 1
                return bytes(element)

    async def aclose(self) -> None:
        """Stop iteration and close the underlying async generator, if any."""
        self._closed = True
        aclose = getattr(self._iterator, "aclose", None)
        self._iterator = None
        if aclose is not None:
            await aclose()

    @property
    def elements_sent(self) -> int:
        """Number of elements yielded so far."""
        return self._count

    @property
    def closed(self) -> bool:
        return self._closed
