"""Loading and reloading groups of containers.

get_all() reads a group synchronously. load_all() waits for every Loadable
in a group and reads the rest directly.
reload_all() does the same but forces Reloadables to re-derive, reloading
each one at most once per pass even when several children share it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from asyncstore.capabilities import Loadable, Reloadable, VisitedMap

logger = logging.getLogger("asyncstore")

Stores = Any  # one container, or a list/tuple of containers


def get_stores_list(stores: Stores) -> list:
    return list(stores) if isinstance(stores, (list, tuple)) else [stores]


def is_loadable(obj: object) -> bool:
    return isinstance(obj, Loadable)


def is_reloadable(obj: object) -> bool:
    return isinstance(obj, Reloadable)


def any_loadable(stores: Stores) -> bool:
    return any(is_loadable(store) for store in get_stores_list(stores))


def any_reloadable(stores: Stores) -> bool:
    return any(is_reloadable(store) for store in get_stores_list(stores))


def get_all(stores: Stores) -> Any:
    """Read the current value of one container, or a list of values for many."""
    if isinstance(stores, (list, tuple)):
        return [store.get() for store in stores]
    return stores.get()


async def _value_of(store) -> Any:
    return store.get()


def _unwrap(stores: Stores, values: Sequence) -> Any:
    if isinstance(stores, (list, tuple)):
        return list(values)
    return values[0]


async def load_all(stores: Stores) -> Any:
    """Load every container; return the value of one or a list of values.

    Non-loadable containers resolve to their current value. The first
    failure fails the whole call.
    """
    awaitables = [
        store.load() if isinstance(store, Loadable) else _value_of(store)
        for store in get_stores_list(stores)
    ]
    values = await asyncio.gather(*awaitables)
    return _unwrap(stores, values)


async def reload_all(stores: Stores, visited: VisitedMap | None = None) -> Any:
    """Reload every container, sharing one reload per ancestor per pass.

    Reloadables are looked up in ``visited`` by identity token. A container
    already there is awaited rather than reloaded again. Loadables are
    loaded; anything else resolves to its current value.
    """
    if visited is None:
        visited = {}
    awaitables = []
    for store in get_stores_list(stores):
        if isinstance(store, Reloadable):
            if store._id not in visited:
                visited[store._id] = asyncio.ensure_future(store.reload(visited))
            else:
                logger.debug("Reload of %r already in flight, sharing it", store)
            awaitables.append(visited[store._id])
        elif isinstance(store, Loadable):
            awaitables.append(store.load())
        else:
            awaitables.append(_value_of(store))
    values = await asyncio.gather(*awaitables)
    return _unwrap(stores, values)


async def safe_load(stores: Stores) -> bool:
    """Load stores, returning False instead of raising on failure."""
    try:
        await load_all(stores)
    except Exception:
        return False
    return True
