"""Capabilities — what a container can do beyond being read.

A Loadable can be awaited for a settled value. A Reloadable can be forced
to produce its value again. Both are explicit base classes: the loaders
dispatch on isinstance(), never on attribute lookup.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

T = TypeVar("T")

# identity token -> the in-flight reload of that container, for one reload pass
VisitedMap = dict[int, "asyncio.Future"]


class Loadable(ABC, Generic[T]):
    """A container whose value becomes available asynchronously."""

    _id: int

    @abstractmethod
    async def load(self) -> T:
        """Resolve once the container holds a settled value."""


class Reloadable(ABC, Generic[T]):
    """A container that can re-derive its value on request."""

    _id: int

    @abstractmethod
    async def reload(self, visited: VisitedMap | None = None) -> T:
        """Force re-derivation. ``visited`` dedups shared ancestors within one pass."""
