"""Bounded scheduling of per-host work."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import TypeVar

from .config import DEFAULT_MAX_CONCURRENCY
from .models import NodeTarget

T = TypeVar("T")


class WorkerPool:
    """Runs per-target work with at most ``max_concurrency`` tasks active."""

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency

    async def run(
        self,
        targets: Iterable[NodeTarget],
        work: Callable[[NodeTarget], Awaitable[T]],
    ) -> AsyncIterator[tuple[NodeTarget, T]]:
        """Yield ``(target, outcome)`` pairs in completion order.

        The first ``max_concurrency`` targets start immediately. Each time an
        active task finishes, the next queued target is started before the
        finished one is yielded.
        """
        pending = deque(targets)
        active: dict[asyncio.Task, NodeTarget] = {}

        def fill() -> None:
            while pending and len(active) < self.max_concurrency:
                target = pending.popleft()
                active[asyncio.ensure_future(work(target))] = target

        fill()
        try:
            while active:
                done, _ = await asyncio.wait(active, return_when=asyncio.FIRST_COMPLETED)
                finished = [(task, active.pop(task)) for task in done]
                fill()
                for task, target in finished:
                    yield target, task.result()
        finally:
            for task in active:
                task.cancel()
            if active:
                await asyncio.gather(*active, return_exceptions=True)
