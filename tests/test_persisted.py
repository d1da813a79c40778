"""Tests for persisted containers and storage configuration."""

import pytest

from asyncstore import (
    MemoryStorage,
    async_readable,
    configure_custom_storage_type,
    configure_persisted_consent,
    is_reloadable,
    persisted,
)


@pytest.fixture
def storage():
    adapter = MemoryStorage()
    configure_custom_storage_type("TEST", adapter)
    return adapter


@pytest.fixture
def consent():
    yield configure_persisted_consent
    configure_persisted_consent(None)


class TestLoad:
    @pytest.mark.asyncio
    async def test_writes_initial_value(self, storage):
        theme = persisted("light", "theme", storage_type="TEST")
        assert await theme.load() == "light"
        assert storage.get_item("theme") == "light"

    @pytest.mark.asyncio
    async def test_stored_value_wins(self, storage):
        storage.set_item("theme", "dark")
        theme = persisted("light", "theme", storage_type="TEST")
        assert await theme.load() == "dark"

    @pytest.mark.asyncio
    async def test_loadable_initial(self, storage):
        calls = []

        async def fetch():
            calls.append(True)
            return "from server"

        theme = persisted(async_readable(None, fetch), "theme", storage_type="TEST")
        assert await theme.load() == "from server"
        assert storage.get_item("theme") == "from server"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_loadable_initial_not_loaded_when_stored(self, storage):
        calls = []

        async def fetch():
            calls.append(True)
            return "from server"

        storage.set_item("theme", "stored")
        theme = persisted(async_readable(None, fetch), "theme", storage_type="TEST")
        assert await theme.load() == "stored"
        assert calls == []

    @pytest.mark.asyncio
    async def test_async_key(self, storage):
        async def key():
            return "user-42"

        setting = persisted("on", key, storage_type="TEST")
        await setting.load()
        assert storage.get_item("user-42") == "on"

    @pytest.mark.asyncio
    async def test_memory_storage_is_builtin(self):
        counter = persisted(0, "builtin-counter")
        assert await counter.load() == 0


class TestWrite:
    @pytest.mark.asyncio
    async def test_set_writes_through(self, storage):
        theme = persisted("light", "theme", storage_type="TEST")
        log = []
        theme.subscribe(log.append)
        await theme.load()

        await theme.set("dark")
        assert theme.get() == "dark"
        assert storage.get_item("theme") == "dark"
        assert log[-1] == "dark"

    @pytest.mark.asyncio
    async def test_update(self, storage):
        counter = persisted(1, "counter", storage_type="TEST")
        await counter.update(lambda value: value + 1)
        assert counter.get() == 2
        assert storage.get_item("counter") == 2

    @pytest.mark.asyncio
    async def test_clear(self, storage):
        theme = persisted("light", "theme", storage_type="TEST")
        await theme.load()
        await theme.clear()
        assert storage.get_item("theme") is None
        assert theme.get() is None

    @pytest.mark.asyncio
    async def test_resync_reads_storage(self, storage):
        theme = persisted("light", "theme", storage_type="TEST")
        theme.subscribe(lambda _value: None)
        await theme.load()

        storage.set_item("theme", "changed elsewhere")
        assert await theme.resync() == "changed elsewhere"
        assert theme.get() == "changed elsewhere"

    @pytest.mark.asyncio
    async def test_no_write_without_consent(self, storage, consent):
        consent(lambda level: level == "functional")
        tracking = persisted("yes", "tracking", storage_type="TEST", consent_level="marketing")
        assert await tracking.load() == "yes"
        assert storage.get_item("tracking") is None

        prefs = persisted("compact", "prefs", storage_type="TEST", consent_level="functional")
        await prefs.load()
        assert storage.get_item("prefs") == "compact"


class TestReload:
    @pytest.mark.asyncio
    async def test_reload_rederives_initial(self, storage):
        calls = []

        async def fetch():
            calls.append(True)
            return f"version {len(calls)}"

        source = async_readable(None, fetch, reloadable=True)
        cached = persisted(source, "cached", storage_type="TEST", reloadable=True)
        assert is_reloadable(cached)

        assert await cached.load() == "version 1"
        assert await cached.reload() == "version 2"
        assert storage.get_item("cached") == "version 2"

    def test_not_reloadable_by_default(self, storage):
        assert not is_reloadable(persisted("x", "key", storage_type="TEST"))


class TestStorageTypes:
    def test_unknown_storage_type(self):
        with pytest.raises(ValueError, match="not a valid storage type"):
            persisted("x", "key", storage_type="NOPE")

    def test_custom_storage_replaces_previous(self, storage):
        replacement = MemoryStorage()
        configure_custom_storage_type("TEST", replacement)
        assert persisted("x", "key", storage_type="TEST")._storage is replacement
