"""asyncstore: reactive containers with coordinated async loading."""

from importlib.metadata import version as _version

__version__ = _version("asyncstore")

from asyncstore.container import Readable, Writable, get
from asyncstore.capabilities import Loadable, Reloadable, VisitedMap
from asyncstore.errors import CancellationSignal
from asyncstore.state import LoadState, State
from asyncstore.rebounce import Rebounced, rebounce
from asyncstore.loading import (
    any_loadable,
    any_reloadable,
    get_all,
    is_loadable,
    is_reloadable,
    load_all,
    reload_all,
    safe_load,
)
from asyncstore.config import DEFAULT_CONFIG, StoreConfig, enable_testing_mode, is_testing_mode
from asyncstore.async_stores import (
    AsyncDerived,
    AsyncWritable,
    ReloadableAsyncDerived,
    ReloadableAsyncWritable,
    async_derived,
    async_readable,
    async_writable,
)
from asyncstore.standard import derived, readable, writable
from asyncstore.persisted import (
    MemoryStorage,
    configure_custom_storage_type,
    configure_persisted_consent,
    persisted,
)

__all__ = [
    "Readable",
    "Writable",
    "get",
    "Loadable",
    "Reloadable",
    "VisitedMap",
    "CancellationSignal",
    "LoadState",
    "State",
    "Rebounced",
    "rebounce",
    "any_loadable",
    "any_reloadable",
    "get_all",
    "is_loadable",
    "is_reloadable",
    "load_all",
    "reload_all",
    "safe_load",
    "DEFAULT_CONFIG",
    "StoreConfig",
    "enable_testing_mode",
    "is_testing_mode",
    "AsyncDerived",
    "AsyncWritable",
    "ReloadableAsyncDerived",
    "ReloadableAsyncWritable",
    "async_derived",
    "async_readable",
    "async_writable",
    "derived",
    "readable",
    "writable",
    "MemoryStorage",
    "configure_custom_storage_type",
    "configure_persisted_consent",
    "persisted",
]
