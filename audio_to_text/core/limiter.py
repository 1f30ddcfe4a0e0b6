"""Bounded-parallelism gate for async tasks.

WHY: A batch may contain dozens of files, but the backend (and the local
network) should only see a handful of pipelines at once. The limiter caps
how many tasks are in flight while guaranteeing every task eventually runs.

HOW: A fixed pool of min(K, N) worker coroutines pulls task indices from a
shared FIFO queue. A worker takes the next waiting index only after its
current task finishes, so admission follows input order and at most K tasks
execute simultaneously. Each task's return value or exception is stored in
a TaskOutcome at the task's original index.

RULES:
- At most `limit` tasks in flight at any instant (tracked in `peak`)
- Admission is strict FIFO over the input order
- A failing task never cancels or blocks another task
- run() returns only when every task is terminal and never raises a task's
  exception; cancellation of run() itself still propagates
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Deque, Generic, List, Optional, TypeVar

from audio_to_text import config

logger = logging.getLogger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class TaskOutcome(Generic[T]):
    """Terminal result of one task: a value or the exception it raised."""

    index: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyLimiter:
    """Run async task factories with at most `limit` in flight."""

    def __init__(self, limit: int = config.DEFAULT_CONCURRENCY) -> None:
        if limit < 1:
            raise ValueError("concurrency limit must be >= 1")
        self.limit = limit
        self.active = 0
        self.peak = 0

    async def run(self, tasks: Sequence[TaskFactory[Any]]) -> List[TaskOutcome[Any]]:
        """Execute every task and return outcomes aligned with the input."""
        outcomes: List[Optional[TaskOutcome[Any]]] = [None] * len(tasks)
        waiting: Deque[int] = deque(range(len(tasks)))

        async def worker() -> None:
            while waiting:
                index = waiting.popleft()
                outcomes[index] = await self._run_one(index, tasks[index])

        workers = min(self.limit, len(tasks))
        if workers:
            await asyncio.gather(*(worker() for _ in range(workers)))

        return [outcome for outcome in outcomes if outcome is not None]

    async def _run_one(self, index: int, task: TaskFactory[Any]) -> TaskOutcome[Any]:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            value = await task()
        except Exception as exc:
            logger.debug("Task %d failed: %s", index, exc)
            return TaskOutcome(index=index, error=exc)
        finally:
            self.active -= 1
        return TaskOutcome(index=index, value=value)
