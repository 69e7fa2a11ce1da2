"""
Tests for the local mirror.

Covers the JSON file backend and the RecordStore contract: reads never
raise, failed writes degrade to memory-only without losing earlier values.
"""

import pytest
from datetime import date

from conftest import make_asset, make_entry, make_liability
from homeledger.models import Household
from homeledger.storage import (
    InMemoryBackend,
    JSONFileBackend,
    LocalStorageUnavailableError,
    MirrorKey,
    RecordStore,
)


class TestJSONFileBackend:
    """Tests for the on-disk backend."""

    def test_write_then_read(self, tmp_path):
        """Test a written value reads back from its JSON file."""
        backend = JSONFileBackend(tmp_path)
        backend.write("houseapp_assets", "[]")
        assert backend.read("houseapp_assets") == "[]"
        assert (tmp_path / "houseapp_assets.json").exists()

    def test_missing_key_reads_none(self, tmp_path):
        """Test a key with no file reads as None."""
        assert JSONFileBackend(tmp_path).read("nothing") is None

    def test_write_leaves_no_temp_file(self, tmp_path):
        """Test the temporary file is replaced, not left behind."""
        backend = JSONFileBackend(tmp_path)
        backend.write("k", '{"a": 1}')
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k.json"]

    def test_delete(self, tmp_path):
        """Test delete removes the file and tolerates a missing one."""
        backend = JSONFileBackend(tmp_path)
        backend.write("k", "1")
        backend.delete("k")
        backend.delete("k")
        assert backend.read("k") is None

    def test_unwritable_directory_raises(self, tmp_path):
        """Test an unusable directory raises LocalStorageUnavailableError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        backend = JSONFileBackend(blocker / "mirror")
        with pytest.raises(LocalStorageUnavailableError):
            backend.write("k", "1")


class TestRecordStoreContract:
    """Tests for get/set/remove semantics."""

    def test_get_absent_key(self, record_store):
        """Test an absent key reads as None."""
        assert record_store.get(MirrorKey.ASSETS) is None

    def test_set_then_get(self, record_store):
        """Test a durable set reads back the same value."""
        assert record_store.set(MirrorKey.CATEGORIES, [{"id": "1"}]) is True
        assert record_store.get(MirrorKey.CATEGORIES) == [{"id": "1"}]

    def test_corrupt_value_reads_as_absent(self, tmp_path):
        """Test unparseable JSON reads as absent."""
        (tmp_path / "houseapp_transactions.json").write_text("{not json", encoding="utf-8")
        store = RecordStore(JSONFileBackend(tmp_path))
        assert store.get(MirrorKey.TRANSACTIONS) is None
        assert store.load_entries() == []

    def test_undecodable_bytes_read_as_absent(self, tmp_path):
        """Test a file that is not valid UTF-8 reads as absent."""
        (tmp_path / "houseapp_transactions.json").write_bytes(b'["\xff\xfe"]')
        with pytest.raises(LocalStorageUnavailableError, match="not valid UTF-8"):
            JSONFileBackend(tmp_path).read("houseapp_transactions")

        store = RecordStore(JSONFileBackend(tmp_path))
        assert store.get(MirrorKey.TRANSACTIONS) is None
        assert store.load_entries() == []
        assert store.has_migrated() is False

    def test_remove(self, record_store):
        """Test a removed key reads as None."""
        record_store.set(MirrorKey.ASSETS, [])
        record_store.remove(MirrorKey.ASSETS)
        assert record_store.get(MirrorKey.ASSETS) is None

    def test_clear(self, record_store):
        """Test clear removes every mirror key, including the flag."""
        record_store.set(MirrorKey.ASSETS, [])
        record_store.mark_migrated()
        record_store.clear()
        assert record_store.get(MirrorKey.ASSETS) is None
        assert record_store.has_migrated() is False

    def test_survives_new_store_on_same_directory(self, tmp_path):
        """Test values persist across store instances."""
        RecordStore(JSONFileBackend(tmp_path)).save_records(
            MirrorKey.ASSETS, [make_asset(1000)]
        )
        assets = RecordStore(JSONFileBackend(tmp_path)).load_assets()
        assert len(assets) == 1
        assert assets[0].value == 1000.0


class TestDegradedWrites:
    """Tests for quota and write failures."""

    def test_failed_write_keeps_previous_durable_value(self):
        """Test a quota failure keeps the old durable value and degrades."""
        backend = InMemoryBackend(max_bytes=40)
        store = RecordStore(backend)
        assert store.set(MirrorKey.CATEGORIES, ["small"]) is True

        assert store.set(MirrorKey.CATEGORIES, ["x" * 100]) is False
        assert store.is_degraded is True
        # Durable copy untouched, session sees the new value
        assert backend.read(MirrorKey.CATEGORIES.value) == '["small"]'
        assert store.get(MirrorKey.CATEGORIES) == ["x" * 100]

    def test_degraded_store_stops_writing_durably(self):
        """Test later writes stay in memory once degraded."""
        backend = InMemoryBackend(max_bytes=10)
        store = RecordStore(backend)
        store.set(MirrorKey.ASSETS, ["x" * 50])
        assert store.set(MirrorKey.LIABILITIES, []) is False
        assert backend.keys() == []
        assert store.get(MirrorKey.LIABILITIES) == []

    def test_remove_while_degraded_hides_durable_value(self):
        """Test a removal while degraded hides the stale durable value."""
        backend = InMemoryBackend(max_bytes=20)
        store = RecordStore(backend)
        store.set(MirrorKey.ASSETS, [1])
        store.set(MirrorKey.LIABILITIES, ["y" * 50])
        store.remove(MirrorKey.ASSETS)
        assert store.get(MirrorKey.ASSETS) is None
        assert backend.read(MirrorKey.ASSETS.value) == "[1]"


class TestTypedHelpers:
    """Tests for model loading and saving."""

    def test_records_round_trip_with_identity(self, record_store):
        """Test mirrored records keep their local identity."""
        entry = make_entry(42, on=date(2024, 12, 31), entry_id="local-7")
        record_store.save_records(MirrorKey.TRANSACTIONS, [entry])
        stored = record_store.get(MirrorKey.TRANSACTIONS)
        assert stored[0]["id"] == "local-7"
        assert stored[0]["date"] == "2024-12-31"
        assert record_store.load_entries()[0].entry_date == date(2024, 12, 31)

    def test_lenient_load_skips_invalid_records(self, record_store):
        """Test invalid records are skipped by default."""
        record_store.set(MirrorKey.LIABILITIES, [
            make_liability(500).to_wire(include_id=True),
            {"type": "LOAN", "name": "missing amounts"},
        ])
        assert len(record_store.load_liabilities()) == 1

    def test_strict_load_raises(self, record_store):
        """Test strict loading raises on the first invalid record."""
        record_store.set(MirrorKey.ASSETS, [{"type": "CAR"}])
        with pytest.raises(ValueError):
            record_store.load_records(MirrorKey.ASSETS, strict=True)

    def test_non_list_value_loads_empty(self, record_store):
        """Test a collection key holding a non-list loads as empty."""
        record_store.set(MirrorKey.ASSETS, {"oops": True})
        assert record_store.load_assets() == []

    def test_household(self, record_store):
        """Test the household profile round-trips."""
        assert record_store.load_household() is None
        record_store.save_household(Household(id="h1", name="Home", initial_balance=250.0))
        household = record_store.load_household()
        assert household.id == "h1"
        assert household.initial_balance == 250.0

    def test_invalid_household_reads_none(self, record_store):
        """Test an invalid household profile reads as None."""
        record_store.set(MirrorKey.HOUSEHOLD, {"monthStartDay": 99})
        assert record_store.load_household() is None

    def test_legacy_timestamp_dates(self, record_store):
        """Test older timestamp-form dates load as calendar dates."""
        record_store.set(MirrorKey.TRANSACTIONS, [{
            "id": "1",
            "type": "EXPENSE",
            "amount": 80,
            "category": "FUEL",
            "date": "2024-11-03T00:00:00.000Z",
        }])
        assert record_store.load_entries()[0].entry_date == date(2024, 11, 3)


class TestMigratedFlag:
    """Tests for the migration flag."""

    def test_flag_defaults_false(self, record_store):
        """Test a fresh mirror is not migrated."""
        assert record_store.has_migrated() is False

    def test_mark_migrated(self, record_store):
        """Test mark_migrated sets the flag."""
        record_store.mark_migrated()
        assert record_store.has_migrated() is True

    def test_only_true_counts(self, record_store):
        """Test only a boolean true counts as migrated."""
        record_store.set(MirrorKey.MIGRATED_TO_REMOTE, "true")
        assert record_store.has_migrated() is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
