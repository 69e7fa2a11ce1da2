"""
Household Session

Owns the in-memory snapshot of one attached household and wires the
remote subscriptions into it.

DESIGN DECISION: The snapshot has exactly one writer - the session's own
subscription callbacks. Mutation calls only talk to the remote store; a
client sees its own write when it comes back through the subscription.
This means:
1. A failed write never touches the snapshot
2. Every client converges on what the remote store holds
3. Derived metrics can read the snapshot at any time without locking

Sessions are plain objects. Create one per attached client (or per test);
nothing here is global.
"""

from datetime import date, datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from homeledger import metrics
from homeledger.audit import get_logger
from homeledger.config import get_settings
from homeledger.models.finance import (
    Asset,
    FinancialOverview,
    LedgerEntry,
    Liability,
    MonthlySummary,
    WireModel,
)
from homeledger.models.household import Household
from homeledger.storage.interface import (
    MODEL_BY_KIND,
    RecordKind,
    RemoteChannel,
    StorageError,
    Unsubscribe,
)
from homeledger.storage.local_mirror import MirrorKey, RecordStore


SnapshotListener = Callable[["SessionSnapshot"], None]


class NoActiveHouseholdError(StorageError):
    """A mutation was issued while no household is attached."""
    pass


class SessionSnapshot(BaseModel):
    """Current view of the attached household."""

    household: Optional[Household] = None
    entries: list[LedgerEntry] = Field(default_factory=list)
    assets: list[Asset] = Field(default_factory=list)
    liabilities: list[Liability] = Field(default_factory=list)
    # True until the household document has been delivered
    loading: bool = True


class HouseholdSession:
    """
    Session coordinator for one client.

    Args:
        remote: Remote channel implementation
        mirror: Optional local mirror. Once the mirror has been migrated,
                every delivered slice is copied into it so the next start
                can show data before the first delivery arrives.
    """

    def __init__(self, remote: RemoteChannel, mirror: Optional[RecordStore] = None):
        self._remote = remote
        self._mirror = mirror
        self._household_id: Optional[str] = None
        self._unsubscribers: list[Unsubscribe] = []
        self._listeners: list[SnapshotListener] = []
        self._snapshot = SessionSnapshot()
        self._logger = get_logger(__name__)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def household_id(self) -> Optional[str]:
        return self._household_id

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def is_attached(self) -> bool:
        return self._household_id is not None

    def add_listener(self, listener: SnapshotListener) -> Unsubscribe:
        """Call listener with the snapshot after every change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _replace(self, **changes: Any) -> None:
        self._snapshot = self._snapshot.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self._snapshot)

    # =========================================================================
    # Attach / detach
    # =========================================================================

    def attach(self, household_id: str) -> None:
        """
        Follow a household, replacing any current subscriptions.

        Attaching the same household again re-opens its subscriptions;
        there is never more than one active set.
        """
        switching = household_id != self._household_id
        self._close_subscriptions()
        if switching:
            self._snapshot = SessionSnapshot()
            self._restore_from_mirror(household_id)

        self._household_id = household_id
        try:
            for subscribe, on_change in (
                (self._remote.subscribe_household, self._on_household),
                (self._remote.subscribe_entries, self._on_entries),
                (self._remote.subscribe_assets, self._on_assets),
                (self._remote.subscribe_liabilities, self._on_liabilities),
            ):
                # Stored one by one so a later failure can still close it
                self._unsubscribers.append(subscribe(household_id, on_change))
        except Exception as e:
            self._logger.error(
                "session_attach_failed",
                household_id=household_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._close_subscriptions()
            self._household_id = None
            raise
        self._logger.info("session_attached", household_id=household_id)

    def detach(self) -> None:
        """Stop all subscriptions and reset the snapshot to empty."""
        household_id = self._household_id
        self._close_subscriptions()
        self._household_id = None
        self._replace(household=None, entries=[], assets=[], liabilities=[], loading=True)
        if household_id is not None:
            self._logger.info("session_detached", household_id=household_id)

    def _close_subscriptions(self) -> None:
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()

    # =========================================================================
    # Subscription callbacks (the only snapshot writers)
    # =========================================================================

    def _on_household(self, household: Household) -> None:
        self._replace(household=household, loading=False)
        self._mirror_write(MirrorKey.HOUSEHOLD, household)

    def _on_entries(self, entries: list[LedgerEntry]) -> None:
        self._replace(entries=entries)
        self._mirror_write(MirrorKey.TRANSACTIONS, entries)

    def _on_assets(self, assets: list[Asset]) -> None:
        self._replace(assets=assets)
        self._mirror_write(MirrorKey.ASSETS, assets)

    def _on_liabilities(self, liabilities: list[Liability]) -> None:
        self._replace(liabilities=liabilities)
        self._mirror_write(MirrorKey.LIABILITIES, liabilities)

    # =========================================================================
    # Local mirror
    # =========================================================================

    def _mirror_enabled(self) -> bool:
        # An unmigrated mirror still holds offline data awaiting migration
        return self._mirror is not None and self._mirror.has_migrated()

    def _mirror_write(self, key: MirrorKey, value: Any) -> None:
        if not self._mirror_enabled():
            return
        if isinstance(value, WireModel):
            self._mirror.save_household(value)
        else:
            self._mirror.save_records(key, value)

    def _restore_from_mirror(self, household_id: str) -> None:
        """Seed the snapshot from the mirror if it holds this household."""
        if not self._mirror_enabled():
            return
        household = self._mirror.load_household()
        if household is None or household.id != household_id:
            return
        self._snapshot = SessionSnapshot(
            household=household,
            entries=self._mirror.load_entries(),
            assets=self._mirror.load_assets(),
            liabilities=self._mirror.load_liabilities(),
            loading=True,
        )

    # =========================================================================
    # Mutations (remote only)
    # =========================================================================

    def _require_household(self) -> str:
        if self._household_id is None:
            raise NoActiveHouseholdError("No household is attached to this session")
        return self._household_id

    @staticmethod
    def _delivered(records: list[WireModel], record_id: str) -> Optional[WireModel]:
        return next((record for record in records if record.id == record_id), None)

    async def _create(self, kind: RecordKind, record: WireModel) -> str:
        household_id = self._require_household()
        record.check_write()
        return await self._remote.create(kind, household_id, record)

    async def _update(
        self,
        kind: RecordKind,
        records: list[WireModel],
        record_id: str,
        changes: dict[str, Any],
    ) -> None:
        """
        Validate changes against the delivered record, then send them.

        A record not delivered yet is checked field by field; the remote
        store decides whether it exists.
        """
        household_id = self._require_household()
        model = MODEL_BY_KIND[kind]
        fields = model.wire_fields(changes, current=self._delivered(records, record_id))
        await self._remote.update(kind, household_id, record_id, fields)

    async def add_entry(self, entry: LedgerEntry) -> str:
        return await self._create(RecordKind.TRANSACTIONS, entry)

    async def update_entry(self, entry_id: str, changes: dict[str, Any]) -> None:
        await self._update(RecordKind.TRANSACTIONS, self._snapshot.entries, entry_id, changes)

    async def delete_entry(self, entry_id: str) -> None:
        await self._remote.delete(RecordKind.TRANSACTIONS, self._require_household(), entry_id)

    async def add_asset(self, asset: Asset) -> str:
        return await self._create(RecordKind.ASSETS, asset)

    async def update_asset(self, asset_id: str, changes: dict[str, Any]) -> None:
        await self._update(RecordKind.ASSETS, self._snapshot.assets, asset_id, changes)

    async def delete_asset(self, asset_id: str) -> None:
        await self._remote.delete(RecordKind.ASSETS, self._require_household(), asset_id)

    async def add_liability(self, liability: Liability) -> str:
        return await self._create(RecordKind.LIABILITIES, liability)

    async def update_liability(self, liability_id: str, changes: dict[str, Any]) -> None:
        await self._update(RecordKind.LIABILITIES, self._snapshot.liabilities, liability_id, changes)

    async def delete_liability(self, liability_id: str) -> None:
        await self._remote.delete(RecordKind.LIABILITIES, self._require_household(), liability_id)

    async def _update_household(self, changes: dict[str, Any]) -> None:
        household_id = self._require_household()
        await self._remote.update_household_fields(
            household_id,
            Household.wire_fields(changes, current=self._snapshot.household),
        )

    async def set_initial_balance(self, balance: float) -> None:
        """Set the starting balance and stamp when it was set."""
        await self._update_household({
            "initial_balance": balance,
            "balance_updated_at": datetime.utcnow(),
        })

    async def set_credential(self, api_key: str) -> None:
        """Store the assistant credential; its contents are never checked."""
        await self._update_household({"assistant_api_key": api_key})

    # =========================================================================
    # Derived views
    # =========================================================================

    def current_balance(self) -> float:
        household = self._snapshot.household
        initial = household.initial_balance if household else 0.0
        return metrics.current_balance(initial, self._snapshot.entries)

    def net_worth(self) -> float:
        return metrics.net_worth(
            self.current_balance(),
            self._snapshot.assets,
            self._snapshot.liabilities,
        )

    def monthly_summary(self, month: int, year: int) -> MonthlySummary:
        return metrics.monthly_summary(self._snapshot.entries, month, year)

    def recent_entries(self, limit: Optional[int] = None) -> list[LedgerEntry]:
        if limit is None:
            limit = get_settings().app.recent_entries_limit
        return metrics.recent_entries(self._snapshot.entries, limit)

    def overview(self, today: Optional[date] = None) -> FinancialOverview:
        return metrics.financial_overview(
            self._snapshot.household,
            self._snapshot.entries,
            self._snapshot.assets,
            self._snapshot.liabilities,
            today,
        )
