"""Load states — the observable lifecycle of an async store.

A store is always in exactly one State. LoadState is the snapshot published
on a store's ``state`` container, with one boolean per state plus the two
derived predicates ``is_pending`` and ``is_settled``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class State(Enum):
    LOADING = "LOADING"
    LOADED = "LOADED"
    RELOADING = "RELOADING"
    ERROR = "ERROR"
    WRITING = "WRITING"

    @property
    def is_pending(self) -> bool:
        return self in (State.LOADING, State.RELOADING)

    @property
    def is_settled(self) -> bool:
        return self in (State.LOADED, State.ERROR)


@dataclass(frozen=True)
class LoadState:
    """Immutable snapshot of a store's State."""

    state: State
    error: BaseException | None = None

    @classmethod
    def of(cls, state: State, error: BaseException | None = None) -> LoadState:
        # error only rides along with ERROR
        return cls(state, error if state is State.ERROR else None)

    @property
    def is_loading(self) -> bool:
        return self.state is State.LOADING

    @property
    def is_reloading(self) -> bool:
        return self.state is State.RELOADING

    @property
    def is_loaded(self) -> bool:
        return self.state is State.LOADED

    @property
    def is_writing(self) -> bool:
        return self.state is State.WRITING

    @property
    def is_error(self) -> bool:
        return self.state is State.ERROR

    @property
    def is_pending(self) -> bool:
        return self.state.is_pending

    @property
    def is_settled(self) -> bool:
        return self.state.is_settled
