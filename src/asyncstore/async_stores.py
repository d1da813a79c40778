"""Async stores — containers whose value is produced by async work.

An async store derives its value from zero or more parent containers
through a load function that may be slow. It waits for its parents to load
before loading itself, re-runs the load function whenever a parent changes,
and can be forced to re-derive with reload().

Ordering: the value a store ends up with always comes from the most
recently *started* load, never the most recently *finished* one. Load
functions are rebounced, so starting a load synchronously cancels the
previous one, and an attempt token tells a superseded load apart from the
latest one.

Writable async stores also accept set()/update(): the new value is applied
immediately, then handed to the write function to persist it.

All transitions that decide ordering happen synchronously inside
subscription callbacks. Only waiting on parents, the load function and the
write function suspends.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Callable, TypeVar

from asyncstore import config as _config
from asyncstore.capabilities import Loadable, Reloadable, VisitedMap
from asyncstore.config import DEFAULT_CONFIG, StoreConfig
from asyncstore.container import Readable, Unsubscriber
from asyncstore.errors import CancellationSignal
from asyncstore.loading import any_reloadable, get_all, get_stores_list, load_all, reload_all
from asyncstore.rebounce import rebounce
from asyncstore.state import LoadState, State

logger = logging.getLogger("asyncstore")

T = TypeVar("T")

_UNSET = object()

LoadFunction = Callable[[Any], Any]  # parent values -> T or awaitable T
WriteFunction = Callable[[Any, Any, Any], Any]  # (new, parent values, old) -> T | None


def _noop(_value) -> None:
    pass


def _mark_retrieved(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


def _forward(target: asyncio.Future, source: asyncio.Future) -> None:
    if target.done():
        return
    if source.cancelled():
        target.cancel()
    elif source.exception() is not None:
        target.set_exception(source.exception())
    else:
        target.set_result(source.result())


class AsyncWritable(Readable[T], Loadable[T]):
    """A writable container loaded from its parents by an async function.

    Built by async_writable(). Activation is lazy: nothing loads until the
    first subscriber arrives, or until load() subscribes on the caller's
    behalf. Requires a running event loop from then on.

    Only the first activation enters LOADING. A store subscribed again after
    it has loaded keeps its state and value, and re-runs the load function
    only if its parents now load to different values.
    """

    def __init__(
        self,
        parents: Any,
        load_fn: LoadFunction,
        write_fn: WriteFunction | None = None,
        *,
        reloadable: bool = False,
        track_state: bool = False,
        initial: T | None = None,
        rebounce_delay: float = 0,
        config: StoreConfig | None = None,
    ) -> None:
        super().__init__(initial, self._activate)
        _config.flag_store_created()
        self._parents = parents
        self._parents_list = get_stores_list(parents)
        self._is_array = isinstance(parents, (list, tuple))
        self._load_fn = load_fn
        self._write_fn = write_fn
        self._reloadable = reloadable
        self._initial = initial
        self._rebounce_delay = rebounce_delay
        self._config = config or DEFAULT_CONFIG
        self._testing = _config.is_testing_mode()
        self._rebounced_load = rebounce(load_fn, rebounce_delay)

        self._state = State.LOADING
        self._load_state: Readable[LoadState] | None = (
            Readable(LoadState.of(State.LOADING)) if track_state else None
        )

        # ready: parents have loaded once, so parent changes trigger loads
        self._ready = False
        self._change_received = False
        self._parent_values: Any = None
        self._loaded_parent_values: Any = _UNSET  # parent values of the latest load
        self._current: asyncio.Future | None = None  # the pending operation
        self._latest_attempt: object | None = None
        self._initial_token: object | None = None
        self._tasks: set[asyncio.Task] = set()

    # --- Public API ---

    @property
    def state(self) -> Readable[LoadState] | None:
        """Read-only LoadState container, or None unless built with track_state."""
        return self._load_state

    @property
    def load_state(self) -> LoadState:
        return LoadState.of(self._state)

    async def load(self) -> T:
        """Wait for the current production and return its value.

        Subscribes for the duration of the call, so an idle store activates.
        Raises whatever the production failed with.
        """
        unsubscribe = self.subscribe(_noop)
        try:
            return await asyncio.shield(self._current)
        finally:
            unsubscribe()

    async def set(self, value: T, persist: bool = True) -> None:
        """Set the value now, then persist it through the write function."""
        await self.update(lambda _old: value, persist)

    async def update(self, updater: Callable[[T], T], persist: bool = True) -> None:
        """Compute a new value from the old one, set it now, then persist it.

        The new value stays even if persisting fails. A write function that
        returns something other than None replaces it.
        """
        pending = self._current
        self._set_state(State.WRITING)
        if pending is not None and pending.done() and not pending.cancelled() and pending.exception() is None:
            old_value = pending.result()
        else:
            old_value = self.get()

        try:
            new_value = updater(old_value)
        except Exception as exc:
            self._write_failed(exc)
            raise
        self._set(new_value)
        self._resolve(new_value)

        if persist and self._write_fn is not None:
            try:
                parent_values = await load_all(self._parents)
                response = self._write_fn(new_value, parent_values, old_value)
                if inspect.isawaitable(response):
                    response = await response
            except Exception as exc:
                self._write_failed(exc)
                raise
            if response is not None:
                self._set(response)
                self._resolve(response)

        self._set_state(State.LOADED)

    def abort(self) -> None:
        """Cancel the in-flight load. The store settles on its current value."""
        self._rebounced_load.abort()

    def reset(self) -> None:
        """Return to the pre-load state. Testing mode only.

        A store that still has subscribers starts loading again, which needs
        a running event loop.
        """
        if not self._testing:
            raise RuntimeError(
                "reset() requires testing mode; call enable_testing_mode() before creating stores"
            )
        self._rebounced_load.abort()
        self._rebounced_load = rebounce(self._load_fn, self._rebounce_delay)
        self._latest_attempt = None
        self._initial_token = None
        self._current = None
        self._loaded_parent_values = _UNSET
        self._ready = False
        self._change_received = False
        self._set(self._initial)
        self._set_state(State.LOADING)
        if self.subscriber_count:
            self._begin_load()

    # --- Activation ---

    def _activate(self, _set_value) -> Unsubscriber:
        """Start function: runs on the first subscriber."""
        self._ready = False
        self._change_received = False
        self._parent_values = get_all(self._parents)
        self._begin_load()
        unsubscribers = [
            parent.subscribe(partial(self._on_parent_change, index))
            for index, parent in enumerate(self._parents_list)
        ]

        def _deactivate() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()
            self._initial_token = None
            self._ready = False
            self._change_received = False

        return _deactivate

    def _begin_load(self) -> None:
        token = self._initial_token = object()
        if self._current is None:
            self._new_pending()
            self._set_state(State.LOADING)
        self._spawn(self._initial_load(token))

    async def _initial_load(self, token: object) -> None:
        try:
            values = await load_all(self._parents)
        except Exception as exc:
            if token is self._initial_token:
                self._fail(exc)
            return
        if token is not self._initial_token:
            return  # deactivated, reset or reloaded meanwhile
        self._ready = True
        self._change_received = False
        if self._loaded_parent_values is not _UNSET and values == self._loaded_parent_values:
            return  # the production for these parent values is already started
        self._parent_values = values
        self._load_then_set()

    def _on_parent_change(self, index: int, value: Any) -> None:
        self._change_received = True
        if self._is_array:
            self._parent_values[index] = value
        else:
            self._parent_values = value
        if self._ready:
            self._load_then_set()

    # --- Production ---

    def _load_then_set(self) -> None:
        """Start a production from the current parent values."""
        attempt = self._latest_attempt = object()
        if self._state.is_settled or self._current is None or self._current.done():
            self._new_pending()
        if self._state.is_settled:
            self._set_state(State.RELOADING)
        values = list(self._parent_values) if self._is_array else self._parent_values
        self._loaded_parent_values = values
        handle = self._rebounced_load(values)
        self._spawn(self._settle_load(attempt, handle))

    async def _settle_load(self, attempt: object, handle: asyncio.Future) -> None:
        try:
            value = await handle
        except CancellationSignal:
            if attempt is self._latest_attempt:
                # the newest attempt itself was aborted: settle on what we have
                if self._state is not State.WRITING:
                    self._set_state(State.LOADED)
                self._resolve(self.get())
            return
        except Exception as exc:
            if attempt is self._latest_attempt:
                self._fail(exc)
            return
        if attempt is not self._latest_attempt:
            return  # started before a reset
        self._set(value)
        if self._state is not State.WRITING:
            self._set_state(State.LOADED)
        self._resolve(value)

    async def _reload(self, visited: VisitedMap | None = None) -> T:
        prior = self._state
        self._initial_token = None
        self._ready = False
        self._change_received = False
        pending = self._new_pending()
        self._set_state(State.RELOADING)

        try:
            values = await reload_all(self._parents, {} if visited is None else visited)
        except Exception as exc:
            self._ready = True
            self._fail(exc)
            raise
        self._ready = True
        changed = self._change_received or values != self._loaded_parent_values
        self._parent_values = values
        if changed or self._reloadable or prior is State.ERROR:
            self._load_then_set()
        else:
            logger.debug("Reload of %r skipped, parents unchanged", self)
            self._set_state(State.LOADED)
            self._resolve(self.get())
        return await asyncio.shield(pending)

    # --- Pending operation ---

    def _new_pending(self) -> asyncio.Future:
        pending = asyncio.get_running_loop().create_future()
        pending.add_done_callback(_mark_retrieved)
        previous = self._current
        if previous is not None and not previous.done():
            # anyone still waiting on the old operation gets the newer result
            pending.add_done_callback(partial(_forward, previous))
        self._current = pending
        return pending

    def _resolve(self, value: Any) -> None:
        pending = self._current
        if pending is None or pending.done():
            pending = self._new_pending()
        pending.set_result(value)

    def _reject(self, error: BaseException) -> None:
        pending = self._current
        if pending is None or pending.done():
            pending = self._new_pending()
        pending.set_exception(error)

    def _fail(self, error: BaseException) -> None:
        self._config.report(error)
        self._set_state(State.ERROR, error)
        self._reject(error)

    def _write_failed(self, error: BaseException) -> None:
        self._config.report(error)
        self._set_state(State.ERROR, error)

    def _set_state(self, state: State, error: BaseException | None = None) -> None:
        self._state = state
        if self._load_state is not None:
            self._load_state._set(LoadState.of(state, error))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get()!r}, {self._state.value})"


class ReloadableAsyncWritable(AsyncWritable[T], Reloadable[T]):
    """AsyncWritable that is reloadable itself or has a reloadable parent."""

    async def reload(self, visited: VisitedMap | None = None) -> T:
        """Reload the parents, then re-run the load function if anything changed.

        Always re-runs when built with reloadable=True or after an error.
        """
        return await self._reload(visited)


class AsyncDerived(Loadable[T]):
    """Read-only view of an async store. Built by async_derived()/async_readable()."""

    def __init__(self, engine: AsyncWritable[T]) -> None:
        self._engine = engine
        self._id = engine._id

    @property
    def store(self) -> AsyncDerived[T]:
        return self

    @property
    def state(self) -> Readable[LoadState] | None:
        return self._engine.state

    @property
    def load_state(self) -> LoadState:
        return self._engine.load_state

    @property
    def subscriber_count(self) -> int:
        return self._engine.subscriber_count

    def get(self) -> T:
        return self._engine.get()

    def subscribe(self, callback) -> Unsubscriber:
        return self._engine.subscribe(callback)

    async def load(self) -> T:
        return await self._engine.load()

    def abort(self) -> None:
        self._engine.abort()

    def reset(self) -> None:
        self._engine.reset()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get()!r}, {self._engine._state.value})"


class ReloadableAsyncDerived(AsyncDerived[T], Reloadable[T]):
    async def reload(self, visited: VisitedMap | None = None) -> T:
        return await self._engine._reload(visited)


def async_writable(
    parents: Any,
    load_fn: LoadFunction,
    write_fn: WriteFunction | None = None,
    *,
    reloadable: bool = False,
    track_state: bool = False,
    initial: T | None = None,
    rebounce_delay: float = 0,
    config: StoreConfig | None = None,
) -> AsyncWritable[T]:
    """Create a writable store whose value is loaded from its parents.

    load_fn(parent_values) produces the value, sync or async. parent_values
    is the parent's value for a single parent and a list for a list of
    parents. write_fn(new_value, parent_values, old_value) persists a set();
    if it returns something other than None, that becomes the value.

    Usage:
        user_id = writable(1)

        async def fetch(uid):
            return await api.get_user(uid)

        async def save(user, uid, old_user):
            return await api.put_user(uid, user)

        user = async_writable(user_id, fetch, save, track_state=True)
        await user.load()             # fetch(1)
        await user.set(new_user)      # value is new_user at once, then saved
        user_id.set(2)                # triggers fetch(2) while subscribed

    The result has reload() (a ReloadableAsyncWritable) when reloadable=True
    or any parent is reloadable.
    """
    cls = ReloadableAsyncWritable if reloadable or any_reloadable(parents) else AsyncWritable
    return cls(
        parents,
        load_fn,
        write_fn,
        reloadable=reloadable,
        track_state=track_state,
        initial=initial,
        rebounce_delay=rebounce_delay,
        config=config,
    )


def async_derived(
    parents: Any,
    load_fn: LoadFunction,
    *,
    reloadable: bool = False,
    track_state: bool = False,
    initial: T | None = None,
    rebounce_delay: float = 0,
    config: StoreConfig | None = None,
) -> AsyncDerived[T]:
    """Create a read-only store whose value is loaded from its parents.

    Same loading behavior as async_writable(), without set()/update().
    """
    engine = async_writable(
        parents,
        load_fn,
        reloadable=reloadable,
        track_state=track_state,
        initial=initial,
        rebounce_delay=rebounce_delay,
        config=config,
    )
    if isinstance(engine, Reloadable):
        return ReloadableAsyncDerived(engine)
    return AsyncDerived(engine)


def async_readable(
    initial: T | None,
    load_fn: Callable[[], Any],
    *,
    reloadable: bool = False,
    track_state: bool = False,
    rebounce_delay: float = 0,
    config: StoreConfig | None = None,
) -> AsyncDerived[T]:
    """Create a store with no parents, loaded by load_fn() on first subscribe.

    Usage:
        settings = async_readable({}, fetch_settings, reloadable=True)
        await settings.load()
        await settings.reload()   # fetch_settings() again
    """
    return async_derived(
        [],
        lambda _values: load_fn(),
        reloadable=reloadable,
        track_state=track_state,
        initial=initial,
        rebounce_delay=rebounce_delay,
        config=config,
    )
