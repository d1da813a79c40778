"""Configuration — the error hook and the testing-mode switch.

Error reporting is explicit: each store is built with a StoreConfig, and
DEFAULT_CONFIG is used when none is given. The default hook logs through
the "asyncstore" logger.

Testing mode is the one process-wide switch. It unlocks reset() on stores
and must be enabled before the first store is created.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger("asyncstore")

ErrorLogger = Callable[[BaseException], None]

_REPORTED = "_asyncstore_reported"


def _log_to_logger(error: BaseException) -> None:
    logger.error("Async store failed: %r", error, exc_info=error)


@dataclass(frozen=True)
class StoreConfig:
    """Per-store configuration."""

    log_error: ErrorLogger = field(default=_log_to_logger)

    def report(self, error: BaseException) -> None:
        """Pass error to the hook, at most once per exception object.

        A failure travels through every store that depends on the one that
        failed; only the first store to see it reports it.
        """
        if getattr(error, _REPORTED, False):
            return
        try:
            setattr(error, _REPORTED, True)
        except AttributeError:
            pass  # exceptions without a __dict__ can't be tagged
        self.log_error(error)


DEFAULT_CONFIG = StoreConfig()

# ─── Testing mode ────────────────────────────────────────────────────────────
_testing_mode = False
_any_store_created = False


def flag_store_created(created: bool = True) -> None:
    global _any_store_created
    _any_store_created = created


def is_testing_mode() -> bool:
    return _testing_mode


def enable_testing_mode() -> None:
    """Unlock reset() on every store created from now on.

    Raises RuntimeError if any store already exists.
    """
    global _testing_mode
    if _any_store_created:
        raise RuntimeError("Testing mode MUST be enabled before store creation")
    _testing_mode = True
