"""
cipherbet/tests/test_storage.py

Tests for local bet record persistence.
"""

import pytest

from cipherbet.protocol.storage import (
    BetRecordStore,
    FileBackend,
    MemoryBackend,
    bet_record_key,
)


ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
OTHER = "0xD503e539e1250e13006446dAbBFe461998FB285f"


class TestMemoryBackend:
    """Test MemoryBackend class."""

    @pytest.fixture
    def backend(self):
        return MemoryBackend()

    @pytest.mark.trio
    async def test_put_and_get(self, backend):
        """Test basic put and get."""
        await backend.put("key1", b"value1")
        assert await backend.get("key1") == b"value1"

    @pytest.mark.trio
    async def test_get_nonexistent(self, backend):
        assert await backend.get("nonexistent") is None

    @pytest.mark.trio
    async def test_delete(self, backend):
        await backend.put("key1", b"value1")
        assert await backend.delete("key1") is True
        assert await backend.get("key1") is None
        assert await backend.delete("key1") is False

    @pytest.mark.trio
    async def test_list_keys_with_prefix(self, backend):
        await backend.put("bet_1_a", b"1")
        await backend.put("bet_2_a", b"2")
        await backend.put("other", b"3")

        assert sorted(await backend.list_keys("bet_")) == ["bet_1_a", "bet_2_a"]


class TestFileBackend:
    """Test FileBackend class."""

    @pytest.mark.trio
    async def test_put_and_get(self, tmp_path):
        backend = FileBackend(tmp_path)
        assert await backend.put("key1", b"value1")
        assert await backend.get("key1") == b"value1"

    @pytest.mark.trio
    async def test_persists_across_instances(self, tmp_path):
        await FileBackend(tmp_path).put("key1", b"value1")

        reopened = FileBackend(tmp_path)
        assert await reopened.get("key1") == b"value1"
        assert await reopened.list_keys() == ["key1"]

    @pytest.mark.trio
    async def test_delete_removes_file(self, tmp_path):
        backend = FileBackend(tmp_path)
        await backend.put("key1", b"value1")

        assert await backend.delete("key1")
        assert await backend.get("key1") is None
        assert list(tmp_path.glob("*.json")) == [tmp_path / "index.json"]

    @pytest.mark.trio
    async def test_creates_directory(self, tmp_path):
        target = tmp_path / "nested" / "bets"
        FileBackend(target)
        assert target.is_dir()


class TestBetRecordStore:
    """Test typed record access."""

    def test_key_format(self):
        assert bet_record_key(3, ADDRESS) == f"bet_3_{ADDRESS.lower()}"

    @pytest.mark.trio
    async def test_missing_record(self):
        assert await BetRecordStore().get(0, ADDRESS) is None

    @pytest.mark.trio
    async def test_record_bet_accumulates(self):
        store = BetRecordStore()
        await store.record_bet(0, ADDRESS, 100, True, 10 ** 17)
        record = await store.record_bet(0, ADDRESS, 50, False, 5 * 10 ** 16)

        assert record.yes_units == 100
        assert record.no_units == 50
        assert record.value_wei == 15 * 10 ** 16

        loaded = await store.get(0, ADDRESS)
        assert loaded.total_units == 150

    @pytest.mark.trio
    async def test_lookup_ignores_address_case(self):
        store = BetRecordStore()
        await store.record_bet(0, ADDRESS, 100, True, 10 ** 17)

        assert (await store.get(0, ADDRESS.lower())).yes_units == 100

    @pytest.mark.trio
    async def test_corrupt_record_discarded(self, caplog):
        backend = MemoryBackend()
        await backend.put(bet_record_key(0, ADDRESS), b"{not json")
        store = BetRecordStore(backend)

        assert await store.get(0, ADDRESS) is None
        assert "corrupt" in caplog.text

    @pytest.mark.trio
    async def test_list_records(self):
        store = BetRecordStore()
        await store.record_bet(2, ADDRESS, 10, True, 1)
        await store.record_bet(0, ADDRESS, 20, False, 1)
        await store.record_bet(1, OTHER, 30, True, 1)

        assert [r.round_id for r in await store.list_records()] == [0, 1, 2]
        assert [r.round_id for r in await store.list_records(ADDRESS)] == [0, 2]

    @pytest.mark.trio
    async def test_delete(self):
        store = BetRecordStore()
        await store.record_bet(0, ADDRESS, 10, True, 1)

        assert await store.delete(0, ADDRESS)
        assert await store.get(0, ADDRESS) is None

    @pytest.mark.trio
    async def test_on_disk_survives_restart(self, tmp_path):
        await BetRecordStore.on_disk(tmp_path).record_bet(4, ADDRESS, 500, True, 5 * 10 ** 17)

        record = await BetRecordStore.on_disk(tmp_path).get(4, ADDRESS)
        assert record.choice is True
        assert record.yes_units == 500
