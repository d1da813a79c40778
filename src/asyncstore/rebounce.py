"""Rebounce — trailing-edge debounce that hands back a result.

A rebounced function returns a future for every call. Calling it again
while an earlier future is still pending rejects that earlier future with
CancellationSignal right away and restarts the delay, so only the last call
in a burst ever runs the wrapped function and only its future resolves to
a value.

An already-running invocation is not interrupted when superseded. Its
result is simply discarded. If the task running it is cancelled, its future
rejects with CancellationSignal as well.
"""

from __future__ import annotations

import asyncio
import inspect
import math
from typing import Any, Callable, Generic, ParamSpec, TypeVar

from asyncstore.errors import CancellationSignal

P = ParamSpec("P")
R = TypeVar("R")


class Rebounced(Generic[P, R]):
    """Callable wrapper returned by rebounce()."""

    __slots__ = ("fn", "delay_ms", "_pending", "_timer", "_tasks")

    def __init__(self, fn: Callable[P, R], delay_ms: float = 0) -> None:
        self.fn = fn
        self.delay_ms = delay_ms
        self._pending: asyncio.Future | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        self._cancel_pending()
        result: asyncio.Future = loop.create_future()
        self._pending = result
        self._timer = loop.call_later(self.delay_ms / 1000.0, self._run, result, args, kwargs)
        return result

    def abort(self) -> None:
        """Reject the pending call, if any, without scheduling a new one."""
        self._cancel_pending()

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(CancellationSignal())
        self._pending = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _run(self, result: asyncio.Future, args: tuple, kwargs: dict[str, Any]) -> None:
        self._timer = None
        if result.done():
            return
        try:
            value = self.fn(*args, **kwargs)
        except Exception as exc:
            result.set_exception(exc)
            return
        if not inspect.isawaitable(value):
            result.set_result(value)
            return

        task = asyncio.ensure_future(value)
        self._tasks.add(task)

        def _settle(t: asyncio.Future) -> None:
            self._tasks.discard(t)
            if result.done():
                # superseded while running, drop the outcome
                if not t.cancelled():
                    t.exception()
                return
            if t.cancelled():
                result.set_exception(CancellationSignal("The function was cancelled."))
            elif t.exception() is not None:
                result.set_exception(t.exception())
            else:
                result.set_result(t.result())

        task.add_done_callback(_settle)


def rebounce(fn: Callable[P, R], delay_ms: int | float = 0) -> Rebounced[P, R]:
    """Wrap fn so that only the most recent call's result is honored.

    Usage:
        search = rebounce(fetch_results, 250)

        first = search("a")
        second = search("ab")   # first now raises CancellationSignal
        await second            # fetch_results("ab") ran once, after 250ms

    search.abort() rejects the pending call without starting another.
    """
    if not callable(fn):
        raise TypeError("rebounce() requires a callable")
    if isinstance(delay_ms, bool) or not isinstance(delay_ms, (int, float)):
        raise TypeError("rebounce() delay must be a number (ms)")
    if not math.isfinite(delay_ms) or delay_ms < 0:
        raise ValueError("rebounce() delay must be finite and >= 0")
    return Rebounced(fn, float(delay_ms))
