"""Standard containers that also speak the Loadable protocol.

writable() and readable() are plain containers whose load() resolves once
they have held a value. derived() maps its parents' values, either by
returning the new value or through a setter it is handed, and loads once
every parent has loaded, so plain and async containers can be mixed freely
in one dependency graph.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, TypeVar

from asyncstore import container
from asyncstore.capabilities import Loadable, Reloadable, VisitedMap
from asyncstore.container import Readable, StartNotifier, Unsubscriber
from asyncstore.loading import any_reloadable, get_all, get_stores_list, load_all, reload_all

T = TypeVar("T")


def _noop(_value) -> None:
    pass


class LoadableReadable(Readable[T], Loadable[T]):
    """A container that counts as loaded once it holds a value other than None."""

    def __init__(self, value: T | None = None, start: StartNotifier | None = None) -> None:
        super().__init__(value, start)
        self._has_value = asyncio.Event()
        if value is not None:
            self._has_value.set()

    def _set(self, value: T) -> None:
        super()._set(value)
        if value is not None:
            self._has_value.set()

    async def load(self) -> T:
        unsubscribe = self.subscribe(_noop)
        try:
            await self._has_value.wait()
            return self.get()
        finally:
            unsubscribe()


class LoadableWritable(LoadableReadable[T]):
    def set(self, value: T) -> None:
        self._set(value)

    def update(self, updater: Callable[[T], T]) -> None:
        self._set(updater(self.get()))


def _takes_setter(fn: Callable) -> bool:
    """True for fn(values, set_value); mappers of one argument return the value."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = [
        param
        for param in params
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
        and param.default is param.empty
    ]
    return len(positional) >= 2


class Derived(Readable[T], Loadable[T]):
    """A container derived from its parents' values, kept current while subscribed.

    fn(values) returns the value. fn(values, set_value) sets it instead, as
    often and as late as it likes, and may return a cleanup function that
    runs before the next derivation and when the last subscriber leaves.
    """

    def __init__(self, parents: Any, fn: Callable[..., Any], initial: T | None = None) -> None:
        super().__init__(initial, self._activate)
        self._parents = parents
        self._parents_list = get_stores_list(parents)
        self._is_array = isinstance(parents, (list, tuple))
        self._fn = fn
        self._takes_setter = _takes_setter(fn)

    def get(self) -> T:
        if self.subscriber_count == 0:
            if self._takes_setter:
                return container.get(self)
            # not tracking parents, so compute from their current values
            return self._fn(get_all(self._parents))
        return super().get()

    def _activate(self, set_value) -> Unsubscriber:
        values = get_all(self._parents)
        started = False
        cleanup: Callable[[], None] | None = None

        def _derive() -> None:
            nonlocal cleanup
            current = list(values) if self._is_array else values
            if not self._takes_setter:
                set_value(self._fn(current))
                return
            if cleanup is not None:
                cleanup()
            result = self._fn(current, set_value)
            cleanup = result if callable(result) else None

        def _on_change(index: int, value: Any) -> None:
            nonlocal values
            if self._is_array:
                values[index] = value
            else:
                values = value
            if started:
                _derive()

        unsubscribers = [
            parent.subscribe(lambda value, index=index: _on_change(index, value))
            for index, parent in enumerate(self._parents_list)
        ]
        started = True
        _derive()

        def _deactivate() -> None:
            nonlocal cleanup
            for unsubscribe in unsubscribers:
                unsubscribe()
            if cleanup is not None:
                cleanup()
                cleanup = None

        return _deactivate

    async def _load_with(self, loader) -> T:
        unsubscribe = self.subscribe(_noop)
        try:
            await loader()
            return self.get()
        finally:
            unsubscribe()

    async def load(self) -> T:
        """Load every parent, then return the derived value."""
        return await self._load_with(lambda: load_all(self._parents))


class ReloadableDerived(Derived[T], Reloadable[T]):
    async def reload(self, visited: VisitedMap | None = None) -> T:
        return await self._load_with(lambda: reload_all(self._parents, visited))


def writable(value: T | None = None, start: StartNotifier | None = None) -> LoadableWritable[T]:
    """Create a settable container.

    Usage:
        count = writable(0)
        count.subscribe(print)   # prints 0
        count.set(1)             # prints 1
        await count.load()       # 1
    """
    return LoadableWritable(value, start)


def readable(value: T | None = None, start: StartNotifier | None = None) -> LoadableReadable[T]:
    """Create a container that only its start function can set."""
    return LoadableReadable(value, start)


def derived(parents: Any, fn: Callable[..., Any], initial: T | None = None) -> Derived[T]:
    """Create a container derived from one or more parents.

    Usage:
        first = writable("Ada")
        last = writable("Lovelace")
        full = derived([first, last], lambda names: " ".join(names))

    A mapper taking two arguments gets a setter instead, for values that
    arrive later or more than once; initial holds until it is called:

        def ticker(interval, set_value):
            handle = loop.call_later(interval, set_value, "tick")
            return handle.cancel

        ticks = derived(interval_store, ticker, initial="waiting")

    The result has reload() (a ReloadableDerived) when any parent does.
    """
    cls = ReloadableDerived if any_reloadable(parents) else Derived
    return cls(parents, fn, initial)
