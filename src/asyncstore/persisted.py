"""Persisted containers — writable containers mirrored into a storage adapter.

On first subscription the container reads its key from storage. A stored
value wins; otherwise the initial value is used (loading it first if it is
itself a Loadable) and written back to storage. Every later set() writes
through.

Storage is pluggable: adapters are registered by name, and "MEMORY" is
built in.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from asyncstore.capabilities import Loadable, Reloadable, VisitedMap
from asyncstore.container import Unsubscriber, Writable
from asyncstore.loading import reload_all

logger = logging.getLogger("asyncstore.persisted")

T = TypeVar("T")


class StorageAdapter(Protocol):
    def get_item(self, key: str) -> Any | None: ...

    def set_item(self, key: str, value: Any) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage backed by a dict."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}

    def get_item(self, key: str) -> Any | None:
        return self._items.get(key)

    def set_item(self, key: str, value: Any) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()


_builtin_storage: dict[str, StorageAdapter] = {"MEMORY": MemoryStorage()}
_custom_storage: dict[str, StorageAdapter] = {}

ConsentChecker = Callable[[Any], bool]
_check_consent: ConsentChecker | None = None


def configure_custom_storage_type(name: str, adapter: StorageAdapter) -> None:
    """Register a storage adapter under name, replacing any previous one."""
    _custom_storage[name] = adapter


def configure_persisted_consent(checker: ConsentChecker | None) -> None:
    """Only write to storage when checker(consent_level) is true."""
    global _check_consent
    _check_consent = checker


def get_storage(name: str) -> StorageAdapter:
    adapter = _custom_storage.get(name) or _builtin_storage.get(name)
    if adapter is None:
        raise ValueError(f"'{name}' is not a valid storage type")
    return adapter


class Persisted(Loadable[T]):
    """Writable container synchronized with one storage key.

    Built by persisted().
    """

    def __init__(
        self,
        initial: T | Loadable[T] | None,
        key: str | Callable[[], Awaitable[str]],
        storage: StorageAdapter,
        consent_level: Any = None,
    ) -> None:
        self._initial = initial
        self._key = key
        self._storage = storage
        self._consent_level = consent_level
        self._store: Writable[T] = Writable(None, self._activate)
        self._id = self._store._id
        self._initial_sync: asyncio.Task | None = None

    @property
    def store(self) -> Persisted[T]:
        return self

    def get(self) -> T:
        return self._store.get()

    def subscribe(self, callback) -> Unsubscriber:
        return self._store.subscribe(callback)

    def _activate(self, set_value) -> None:
        self._initial_sync = asyncio.get_running_loop().create_task(self._synchronize(set_value))

    async def _get_key(self) -> str:
        if callable(self._key):
            key = self._key()
            return await key if inspect.isawaitable(key) else key
        return self._key

    async def _set_and_persist(self, value: T, set_value: Callable[[T], None]) -> None:
        if _check_consent is None or _check_consent(self._consent_level):
            self._storage.set_item(await self._get_key(), value)
        else:
            logger.debug("No consent for level %r, not persisting", self._consent_level)
        set_value(value)

    async def _synchronize(self, set_value: Callable[[T], None]) -> T | None:
        stored = self._storage.get_item(await self._get_key())
        if stored is not None:
            set_value(stored)
            return stored
        if self._initial is None:
            set_value(None)
            return None
        if isinstance(self._initial, Loadable):
            value = await self._initial.load()
        else:
            value = self._initial
        await self._set_and_persist(value, set_value)
        return value

    async def load(self) -> T:
        unsubscribe = self._store.subscribe(lambda _value: None)
        try:
            await asyncio.shield(self._initial_sync)
            return self.get()
        finally:
            unsubscribe()

    async def set(self, value: T) -> None:
        if self._initial_sync is not None:
            await self._initial_sync
        await self._set_and_persist(value, self._store.set)

    async def update(self, updater: Callable[[T], T]) -> None:
        if self._initial_sync is not None:
            await self._initial_sync
        else:
            await self._synchronize(self._store.set)
        await self._set_and_persist(updater(self.get()), self._store.set)

    async def resync(self) -> T | None:
        """Re-read the value from storage."""
        if self._initial_sync is not None:
            await self._initial_sync
        return await self._synchronize(self._store.set)

    async def clear(self) -> None:
        """Remove the stored item and empty the container."""
        self._storage.remove_item(await self._get_key())
        self._store.set(None)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get()!r})"


class ReloadablePersisted(Persisted[T], Reloadable[T]):
    async def reload(self, visited: VisitedMap | None = None) -> T:
        """Re-derive the initial value and store it, ignoring what is stored."""
        if isinstance(self._initial, Loadable):
            [value] = await reload_all([self._initial], visited)
        else:
            value = self._initial
        await self._set_and_persist(value, self._store.set)
        return value


def persisted(
    initial: T | Loadable[T] | None,
    key: str | Callable[[], Awaitable[str]],
    *,
    storage_type: str = "MEMORY",
    reloadable: bool = False,
    consent_level: Any = None,
) -> Persisted[T]:
    """Create a writable container synchronized with a storage item.

    Usage:
        theme = persisted("light", "theme")
        await theme.load()         # stored value, or "light" (now stored)
        await theme.set("dark")    # written through to storage

    initial may be a Loadable, e.g. an async_readable fetching a server
    default; it is only loaded when nothing is stored yet.
    """
    storage = get_storage(storage_type)
    cls = ReloadablePersisted if reloadable else Persisted
    return cls(initial, key, storage, consent_level)
