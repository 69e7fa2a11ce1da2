"""
In-Memory Remote Channel

An in-process stand-in for the authoritative store. It keeps the same
document layout as the real backend and delivers subscription callbacks
synchronously, in write order, on the caller's thread.

Used by the test suite and for running the engine without a network.
Write failures can be injected to exercise abort paths.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from homeledger.audit import get_logger
from homeledger.models.finance import WireModel
from homeledger.models.household import Household
from homeledger.storage.interface import (
    MODEL_BY_KIND,
    AssetsCallback,
    EntriesCallback,
    HouseholdCallback,
    LiabilitiesCallback,
    NotFoundError,
    RecordKind,
    RemoteChannel,
    Unsubscribe,
    WriteFailedError,
)


_HOUSEHOLD_STREAM = "households"


def _new_document_id() -> str:
    """20-character identity, the same shape the hosted store assigns."""
    return uuid4().hex[:20]


class _Subscription:
    """One standing subscription; inactive subscriptions receive nothing."""

    def __init__(self, stream: tuple[str, str], callback: Callable[[Any], None]):
        self.stream = stream
        self.callback = callback
        self.active = True


class InMemoryRemoteChannel(RemoteChannel):
    """Authoritative store held in process memory."""

    def __init__(self):
        self._households: dict[str, dict[str, Any]] = {}
        self._items: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[_Subscription] = []
        self._fail_countdown: Optional[int] = None
        self._logger = get_logger(__name__)

    # =========================================================================
    # Test controls
    # =========================================================================

    def fail_writes(self, after: int = 0) -> None:
        """Make the write after the next `after` successful ones fail."""
        self._fail_countdown = after

    def records(self, kind: RecordKind, household_id: str) -> dict[str, dict[str, Any]]:
        """Raw stored documents for a household collection, keyed by id."""
        return dict(self._items.get((kind.value, household_id), {}))

    def household_document(self, household_id: str) -> Optional[dict[str, Any]]:
        doc = self._households.get(household_id)
        return dict(doc) if doc is not None else None

    def active_subscriptions(self, household_id: Optional[str] = None) -> int:
        """Number of live subscriptions, optionally for one household."""
        return sum(
            1 for sub in self._subscriptions
            if sub.active and (household_id is None or sub.stream[1] == household_id)
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _acknowledge(self) -> None:
        """Suspend like a network round trip, then apply any injected failure."""
        await asyncio.sleep(0)
        if self._fail_countdown is None:
            return
        if self._fail_countdown == 0:
            self._fail_countdown = None
            raise WriteFailedError("Remote store rejected the write")
        self._fail_countdown -= 1

    def _household_state(self, household_id: str) -> Optional[Household]:
        doc = self._households.get(household_id)
        if doc is None:
            return None
        return Household.model_validate({**doc, "id": household_id})

    def _collection_state(self, kind: RecordKind, household_id: str) -> list:
        model = MODEL_BY_KIND[kind]
        records = []
        for record_id, doc in self._items.get((kind.value, household_id), {}).items():
            try:
                records.append(model.model_validate({**doc, "id": record_id}))
            except ValidationError as e:
                # Skip malformed documents rather than breaking the stream
                self._logger.warning(
                    "remote_document_invalid",
                    kind=kind.value,
                    household_id=household_id,
                    record_id=record_id,
                    error=str(e),
                )
        return records

    def _state(self, stream: tuple[str, str]) -> Any:
        name, household_id = stream
        if name == _HOUSEHOLD_STREAM:
            return self._household_state(household_id)
        return self._collection_state(RecordKind(name), household_id)

    def _publish(self, stream: tuple[str, str]) -> None:
        state = self._state(stream)
        if state is None:
            return
        for sub in list(self._subscriptions):
            if sub.active and sub.stream == stream:
                sub.callback(state)

    def _subscribe(self, stream: tuple[str, str], callback: Callable[[Any], None]) -> Unsubscribe:
        sub = _Subscription(stream, callback)
        self._subscriptions.append(sub)

        state = self._state(stream)
        if state is not None:
            callback(state)

        def unsubscribe() -> None:
            if sub.active:
                sub.active = False
                self._subscriptions.remove(sub)

        return unsubscribe

    def _collection(self, kind: RecordKind, household_id: str) -> dict[str, dict[str, Any]]:
        return self._items.setdefault((kind.value, household_id), {})

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe_household(self, household_id: str, on_change: HouseholdCallback) -> Unsubscribe:
        return self._subscribe((_HOUSEHOLD_STREAM, household_id), on_change)

    def subscribe_entries(self, household_id: str, on_change: EntriesCallback) -> Unsubscribe:
        return self._subscribe((RecordKind.TRANSACTIONS.value, household_id), on_change)

    def subscribe_assets(self, household_id: str, on_change: AssetsCallback) -> Unsubscribe:
        return self._subscribe((RecordKind.ASSETS.value, household_id), on_change)

    def subscribe_liabilities(self, household_id: str, on_change: LiabilitiesCallback) -> Unsubscribe:
        return self._subscribe((RecordKind.LIABILITIES.value, household_id), on_change)

    # =========================================================================
    # Record writes
    # =========================================================================

    async def create(
        self,
        kind: RecordKind,
        household_id: str,
        record: Union[WireModel, dict[str, Any]],
    ) -> str:
        data = record.to_wire() if isinstance(record, WireModel) else dict(record)
        data.pop("id", None)
        data["createdAt"] = datetime.now(timezone.utc).isoformat()

        await self._acknowledge()

        record_id = _new_document_id()
        self._collection(kind, household_id)[record_id] = data
        self._publish((kind.value, household_id))
        return record_id

    async def update(
        self,
        kind: RecordKind,
        household_id: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        await self._acknowledge()

        collection = self._collection(kind, household_id)
        if record_id not in collection:
            raise NotFoundError(f"{kind.value}/{household_id}/items/{record_id} not found")
        collection[record_id] = {**collection[record_id], **fields}
        self._publish((kind.value, household_id))

    async def delete(self, kind: RecordKind, household_id: str, record_id: str) -> None:
        await self._acknowledge()

        collection = self._collection(kind, household_id)
        if record_id not in collection:
            raise NotFoundError(f"{kind.value}/{household_id}/items/{record_id} not found")
        del collection[record_id]
        self._publish((kind.value, household_id))

    # =========================================================================
    # Household documents
    # =========================================================================

    async def update_household_fields(self, household_id: str, fields: dict[str, Any]) -> None:
        await self._acknowledge()

        if household_id not in self._households:
            raise NotFoundError(f"households/{household_id} not found")
        self._households[household_id] = {**self._households[household_id], **fields}
        self._publish((_HOUSEHOLD_STREAM, household_id))

    async def create_household(self, household: Household) -> str:
        await self._acknowledge()

        household_id = household.id or _new_document_id()
        self._households[household_id] = household.to_wire()
        self._publish((_HOUSEHOLD_STREAM, household_id))
        return household_id

    async def get_household(self, household_id: str) -> Optional[Household]:
        await asyncio.sleep(0)
        return self._household_state(household_id)

    async def find_households_by_code(self, code: str) -> list[str]:
        await asyncio.sleep(0)
        return [
            household_id
            for household_id, doc in self._households.items()
            if doc.get("householdCode") == code
        ]

    async def add_household_member(self, household_id: str, user_id: str) -> None:
        await self._acknowledge()

        doc = self._households.get(household_id)
        if doc is None:
            raise NotFoundError(f"households/{household_id} not found")
        owner_ids = list(doc.get("ownerIds", []))
        if user_id not in owner_ids:
            owner_ids.append(user_id)
        self._households[household_id] = {**doc, "ownerIds": owner_ids}
        self._publish((_HOUSEHOLD_STREAM, household_id))
