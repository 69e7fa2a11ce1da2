"""
Tests for the Firestore channel that need no network.

Snapshots, references and clients are replaced with small fakes; only the
mapping between Firestore and the engine is exercised.
"""

import asyncio

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from homeledger.storage import NotFoundError, RecordKind, WriteFailedError
from homeledger.storage.firestore import (
    FirestoreRemoteChannel,
    await_acknowledgment,
    household_from_snapshot,
    records_from_snapshots,
)


# =============================================================================
# Fakes
# =============================================================================

class FakeSnapshot:
    def __init__(self, doc_id, data=None, exists=True):
        self.id = doc_id
        self._data = data
        self.exists = exists

    def to_dict(self):
        return self._data


class FakeWatch:
    def __init__(self):
        self.unsubscribed = 0

    def unsubscribe(self):
        self.unsubscribed += 1


class FakeRef:
    """Document, collection and query reference in one."""

    def __init__(self, path=""):
        self.path = path
        self.id = path.rsplit("/", 1)[-1] or "generated-id"
        self.callback = None
        self.watch = FakeWatch()
        self.calls = []

    def collection(self, name):
        return FakeRef(f"{self.path}/{name}".lstrip("/"))

    def document(self, doc_id=None):
        return FakeRef(f"{self.path}/{doc_id or 'generated-id'}")

    def on_snapshot(self, callback):
        self.callback = callback
        return self.watch

    async def add(self, data):
        self.calls.append(("add", data))
        return None, FakeRef(f"{self.path}/new-doc")

    async def update(self, fields):
        self.calls.append(("update", fields))
        raise google_exceptions.NotFound("no document to update")


class FakeClient:
    def __init__(self):
        self.refs = {}

    def collection(self, name):
        return self.refs.setdefault(name, _RecordingRef(name, self.refs))

    @staticmethod
    def write_option(**kwargs):
        return kwargs


class _RecordingRef(FakeRef):
    """Collection reference that remembers every child it hands out."""

    def __init__(self, path, registry):
        super().__init__(path)
        self._registry = registry

    def document(self, doc_id=None):
        path = f"{self.path}/{doc_id or 'generated-id'}"
        return self._registry.setdefault(path, _RecordingRef(path, self._registry))

    def collection(self, name):
        path = f"{self.path}/{name}"
        return self._registry.setdefault(path, _RecordingRef(path, self._registry))


class FakeFirestoreClient:
    """Stands in for FirestoreClient; one fake serves both clients."""

    def __init__(self):
        self.client = FakeClient()

    @property
    def async_client(self):
        return self.client

    @property
    def sync_client(self):
        return self.client


@pytest.fixture
def fake_client():
    return FakeFirestoreClient()


@pytest.fixture
def channel(fake_client):
    return FirestoreRemoteChannel(client=fake_client, write_timeout_seconds=1.0)


# =============================================================================
# Tests
# =============================================================================

class TestSnapshotMapping:
    """Tests for snapshot to model conversion."""

    def test_household_from_snapshot(self):
        """Test a household document maps to the model with its identity."""
        household = household_from_snapshot(
            FakeSnapshot("h1", {"name": "Home", "initialBalance": 100, "ownerIds": ["u1"]})
        )
        assert household.id == "h1"
        assert household.initial_balance == 100.0

    def test_missing_household_document(self):
        """Test a deleted household document maps to None."""
        assert household_from_snapshot(FakeSnapshot("h1", exists=False)) is None

    def test_records_skip_malformed(self):
        """Test documents that fail validation are left out of the list."""
        records = records_from_snapshots(RecordKind.ASSETS, [
            FakeSnapshot("a1", {"type": "CAR", "name": "Car", "value": 1000}),
            FakeSnapshot("a2", {"type": "SPACESHIP", "name": "?", "value": 1}),
        ])
        assert [r.id for r in records] == ["a1"]

    def test_entries_keep_document_identity(self):
        """Test entries take their identity from the document path."""
        records = records_from_snapshots(RecordKind.TRANSACTIONS, [
            FakeSnapshot("e1", {
                "type": "EXPENSE",
                "amount": 12,
                "category": "FUEL",
                "date": "2024-12-31T00:00:00.000Z",
            }),
        ])
        assert records[0].id == "e1"
        assert str(records[0].entry_date) == "2024-12-31"

    def test_mismatched_category_is_delivered(self):
        """Test an income entry left with an expense category is still listed."""
        records = records_from_snapshots(RecordKind.TRANSACTIONS, [
            FakeSnapshot("e1", {
                "type": "INCOME",
                "amount": 100,
                "category": "GROCERIES",
                "date": "2024-12-01",
            }),
        ])
        assert [r.id for r in records] == ["e1"]
        assert records[0].is_income

    def test_long_text_is_delivered(self):
        """Test names and notes of any length are not filtered out."""
        records = records_from_snapshots(RecordKind.ASSETS, [
            FakeSnapshot("a1", {"type": "CAR", "name": "n" * 300, "value": 1}),
        ])
        assert len(records[0].name) == 300


class TestAcknowledgment:
    """Tests for write failure mapping."""

    @pytest.mark.asyncio
    async def test_success_passes_result_through(self):
        """Test an acknowledged write returns its result."""
        async def write():
            return "ok"
        assert await await_acknowledgment(write(), "create", "p", 1.0) == "ok"

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Test a missing document surfaces as NotFoundError."""
        async def write():
            raise google_exceptions.NotFound("gone")
        with pytest.raises(NotFoundError):
            await await_acknowledgment(write(), "update", "assets/h/items/x", 1.0)

    @pytest.mark.asyncio
    async def test_rejected(self):
        """Test any other API error surfaces as WriteFailedError."""
        async def write():
            raise google_exceptions.ServiceUnavailable("offline")
        with pytest.raises(WriteFailedError):
            await await_acknowledgment(write(), "create", "assets/h", 1.0)

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test a write not acknowledged in time surfaces as WriteFailedError."""
        with pytest.raises(WriteFailedError, match="not acknowledged"):
            await await_acknowledgment(asyncio.sleep(5), "create", "assets/h", 0.01)


class TestWatch:
    """Tests for listener wiring."""

    def test_subscribe_without_loop_delivers_inline(self, channel, fake_client):
        """Test listener callbacks are delivered directly when no loop runs."""
        delivered = []
        unsubscribe = channel.subscribe_household("h1", delivered.append)

        ref = fake_client.client.refs["households/h1"]
        ref.callback([FakeSnapshot("h1", {"name": "Home"})], [], None)
        assert delivered[0].name == "Home"

        # Deleted document produces no delivery
        ref.callback([FakeSnapshot("h1", exists=False)], [], None)
        assert len(delivered) == 1

        unsubscribe()
        unsubscribe()
        assert ref.watch.unsubscribed == 1
        ref.callback([FakeSnapshot("h1", {"name": "Late"})], [], None)
        assert len(delivered) == 1

    @pytest.mark.asyncio
    async def test_subscribe_with_loop_delivers_on_loop(self, channel, fake_client):
        """Test listener callbacks are handed to the running loop."""
        delivered = []
        channel.subscribe_entries("h1", delivered.append)
        ref = fake_client.client.refs["transactions/h1/items"]

        ref.callback([], [], None)
        assert delivered == []
        await asyncio.sleep(0)
        assert delivered == [[]]

    @pytest.mark.asyncio
    async def test_queued_delivery_dropped_after_unsubscribe(self, channel, fake_client):
        """Test a delivery queued before unsubscribe never arrives."""
        delivered = []
        unsubscribe = channel.subscribe_assets("h1", delivered.append)
        ref = fake_client.client.refs["assets/h1/items"]

        ref.callback([], [], None)
        unsubscribe()
        await asyncio.sleep(0)
        assert delivered == []


class TestWrites:
    """Tests for write translation."""

    @pytest.mark.asyncio
    async def test_create_strips_identity_and_stamps_server_time(self, channel, fake_client):
        """Test create drops the local id and asks for a server timestamp."""
        record_id = await channel.create(
            RecordKind.ASSETS,
            "h1",
            {"id": "local", "type": "CAR", "name": "Car", "value": 5},
        )
        assert record_id == "new-doc"
        operation, data = fake_client.client.refs["assets/h1/items"].calls[0]
        assert operation == "add"
        assert "id" not in data
        assert data["createdAt"] is firestore.SERVER_TIMESTAMP

    @pytest.mark.asyncio
    async def test_update_missing_document(self, channel):
        """Test updating a missing document raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await channel.update(RecordKind.ASSETS, "h1", "gone", {"value": 1.0})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
