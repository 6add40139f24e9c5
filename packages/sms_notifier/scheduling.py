"""Cancellable deferred calls owned by a single component.

Goals
-----
- Components never touch ambient timers directly; they receive a
  :class:`Scheduler` and keep every handle they create in a
  :class:`DeferredGroup` so teardown can cancel all outstanding work.
- The production scheduler is a thin adapter over the running asyncio loop's
  ``call_later``. Tests inject a manual clock with the same shape.

Non-goals
---------
- Thread safety. All callbacks run on the owning event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run ``callback`` once after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class LoopScheduler:
    """:class:`Scheduler` backed by an asyncio event loop.

    When no loop is given, the running loop is looked up on every call, so the
    instance can be created before the loop starts.
    """

    __slots__ = ("_loop",)

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class Deferred:
    """A scheduled one-shot call that can be cancelled any number of times."""

    __slots__ = ("_handle", "_group", "_done")

    def __init__(self, group: DeferredGroup) -> None:
        self._handle: Cancellable | None = None
        self._group = group
        self._done = False

    @property
    def pending(self) -> bool:
        return not self._done

    def cancel(self) -> None:
        if self._done:
            return
        self._done = True
        self._group._forget(self)
        if self._handle is not None:
            self._handle.cancel()

    def _fire(self, callback: Callable[[], None]) -> None:
        if self._done:
            return
        self._done = True
        self._group._forget(self)
        callback()


class DeferredGroup:
    """Owns the deferred calls of one component.

    ``schedule`` returns a :class:`Deferred`; fired or cancelled entries drop
    out of the group automatically. ``cancel_all`` is idempotent.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._pending: set[Deferred] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def schedule(self, delay: float, callback: Callable[[], None]) -> Deferred:
        deferred = Deferred(self)
        self._pending.add(deferred)
        deferred._handle = self._scheduler.call_later(delay, lambda: deferred._fire(callback))
        return deferred

    def cancel_all(self) -> int:
        """Cancel everything still pending; returns how many were cancelled."""

        victims = list(self._pending)
        for d in victims:
            d.cancel()
        return len(victims)

    def _forget(self, deferred: Deferred) -> None:
        self._pending.discard(deferred)


__all__ = ["Cancellable", "Scheduler", "LoopScheduler", "Deferred", "DeferredGroup"]
