"""Hand-off of work to the host's authoritative execution context."""
from __future__ import annotations

import asyncio
from concurrent.futures import Executor
from typing import Any, Callable, Protocol, TypeVar

T = TypeVar("T")


class Dispatcher(Protocol):
    """Runs callables on the context that owns live simulated objects."""

    async def submit(self, fn: Callable[..., T], *args: Any) -> T:
        ...

    async def next_tick(self) -> None:
        ...


class InlineDispatcher:
    """Host context is the event loop itself; ticks are loop iterations."""

    async def submit(self, fn: Callable[..., T], *args: Any) -> T:
        return fn(*args)

    async def next_tick(self) -> None:
        await asyncio.sleep(0)


class ExecutorDispatcher:
    """Host context is an executor, typically a single game thread.

    A callable that has started on the host runs to completion even if the
    awaiting coroutine is cancelled.
    """

    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    async def submit(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.wrap_future(self._executor.submit(fn, *args))

    async def next_tick(self) -> None:
        await self.submit(_noop)


def _noop() -> None:
    return None


__all__ = ["Dispatcher", "ExecutorDispatcher", "InlineDispatcher"]
