"""Bounded-parallelism task dispatch shared by both pipeline stages."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Generic, Iterator, List, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AtomicCounter:
    """Integer counter safe to increment from any thread or task."""

    __slots__ = ("_value", "_lock")

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class ResultSink(Generic[T]):
    """Append-only result collection shared by every worker of a stage.

    Appends are serialized; reads are meant to happen after the stage's
    dispatcher has been joined.
    """

    def __init__(self) -> None:
        self._items: List[T] = []
        self._lock = threading.Lock()

    def append(self, item: T) -> None:
        with self._lock:
            self._items.append(item)

    def snapshot(self) -> List[T]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())


class BoundedDispatcher:
    """Runs independent coroutines with at most ``width`` in flight.

    ``submit`` waits for a free slot (backpressure) before starting the task.
    ``await_all`` is the join barrier and may only be called once. Failures
    inside a task are the task's own business; the dispatcher only tracks
    completion.
    """

    def __init__(
        self,
        width: int,
        on_complete: Optional[Callable[[int], None]] = None,
        name: str = "dispatcher",
    ) -> None:
        if width < 1:
            raise ValueError("width must be at least 1")
        self.width = width
        self.name = name
        self._gate = asyncio.Semaphore(width)
        self._tasks: Set[asyncio.Task[None]] = set()
        self._on_complete = on_complete
        self._completed = AtomicCounter()
        self._submitted = 0
        self._joined = False
        self._in_flight = 0
        self.peak_in_flight = 0

    @property
    def completed(self) -> int:
        """Number of finished tasks; advisory, for progress reporting only."""
        return self._completed.value

    @property
    def submitted(self) -> int:
        return self._submitted

    async def submit(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Start ``func(*args)`` once fewer than ``width`` tasks are running."""
        if self._joined:
            raise RuntimeError(f"{self.name} already joined; no further submissions")
        await self._gate.acquire()
        self._submitted += 1
        self._in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        task = asyncio.create_task(self._run(func, *args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            await func(*args)
        except Exception:
            logger.exception("%s: task %r raised unexpectedly", self.name, func)
        finally:
            self._in_flight -= 1
            self._gate.release()
            done = self._completed.increment()
            if self._on_complete is not None:
                self._on_complete(done)

    async def await_all(self) -> int:
        """Block until every submitted task has finished; returns the completion count."""
        if self._joined:
            raise RuntimeError(f"{self.name} already joined")
        self._joined = True
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self.completed
