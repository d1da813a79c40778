"""Reactive containers — values with change notification via subscription.

A container holds one value and a list of subscribers. Subscribing calls the
callback immediately with the current value, then again on every change.

Containers start lazily: an optional start function runs when the first
subscriber arrives and receives a setter. Whatever it returns is called when
the last subscriber leaves.

All state lives in _anchor; instances are thin handles holding an _id.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from asyncstore import _anchor

T = TypeVar("T")

Subscriber = Callable[[T], None]
Unsubscriber = Callable[[], None]
StartNotifier = Callable[[Callable[[T], None]], "Unsubscriber | None"]


def _noop(*_args) -> None:
    pass


class Readable(Generic[T]):
    """A value that can be read and subscribed to, but not set from outside."""

    def __init__(self, value: T | None = None, start: StartNotifier | None = None) -> None:
        self._id = _anchor.new_id()
        _anchor.values[self._id] = value
        _anchor.subscribers[self._id] = []
        self._start = start
        self._stop: Unsubscriber | None = None

    @property
    def store(self) -> Readable[T]:
        """Self reference, so destructured return values still expose the container."""
        return self

    def get(self) -> T:
        """Read the current value without subscribing."""
        return _anchor.values[self._id]

    def subscribe(self, callback: Subscriber) -> Unsubscriber:
        """Register a callback. Returns a function that removes it.

        The first subscriber runs the start function. Values it sets while
        starting reach the new subscriber once, through the initial call.
        """
        subs = _anchor.subscribers[self._id]
        if not subs and self._start is not None:
            # no callbacks registered yet, so start-time sets only store the value
            self._stop = self._start(self._set) or _noop
        subs.append(callback)
        callback(_anchor.values[self._id])

        def _unsubscribe() -> None:
            try:
                subs.remove(callback)
            except ValueError:
                return  # already removed
            if not subs and self._stop is not None:
                stop, self._stop = self._stop, None
                stop()

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(_anchor.subscribers[self._id])

    def _set(self, value: T) -> None:
        """Set value and notify, unless the value did not change."""
        old = _anchor.values[self._id]
        if old is not value and old != value:
            _anchor.values[self._id] = value
            self._notify(value)

    def _notify(self, value: T) -> None:
        for callback in list(_anchor.subscribers[self._id]):
            callback(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({_anchor.values[self._id]!r})"


class Writable(Readable[T]):
    """A container that can also be set from outside."""

    def set(self, value: T) -> None:
        self._set(value)

    def update(self, updater: Callable[[T], T]) -> None:
        self._set(updater(self.get()))


def get(store: Readable[T]) -> T:
    """Read a container's value the way a subscriber would see it.

    Holds a subscription for the duration of the read, so lazy containers
    run their start function first.
    """
    value = []
    unsubscribe = store.subscribe(value.append)
    unsubscribe()
    return value[-1]
