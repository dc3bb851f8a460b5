from __future__ import annotations

from queue import Empty, SimpleQueue
from typing import Generic, List, TypeVar

T = TypeVar("T")


class ProcessingQueue(Generic[T]):
    """Unbounded FIFO, many producers and a single consumer.

    ``enqueue`` never blocks. ``drain`` returns everything queued so far
    without waiting. Duplicates are kept.
    """

    def __init__(self) -> None:
        self._queue: "SimpleQueue[T]" = SimpleQueue()

    def enqueue(self, item: T) -> None:
        self._queue.put_nowait(item)

    def drain(self) -> List[T]:
        items: List[T] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except Empty:
                return items
