import threading
from queue import Queue
from typing import Generic, Iterator, TypeVar

_CLOSED = object()

T = TypeVar('T')


class Stream(Queue, Generic[T]):
    """
    Unbounded hand-off between producer and consumer threads.

    Producers `put` items and the owner calls `close` once. Items put after `close` are dropped.
    Iterating the stream yields every item put before `close` and then stops.
    """

    def __init__(self):
        super().__init__(maxsize=0)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, item: T, block: bool = True, timeout: float | None = None) -> None:
        if self._closed.is_set():
            return
        super().put(item, block, timeout)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        super().put(_CLOSED)

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self.get()
            if item is _CLOSED:
                # Wake up the next consumer of the same stream
                super().put(_CLOSED)
                return
            yield item
