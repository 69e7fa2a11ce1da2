"""
Local Mirror Migration

One-shot copy of everything held in the local mirror into the remote
store for a household.

DESIGN DECISION: The copy is a sequential loop of awaited writes.
1. No parallel fan-out, to bound load on the remote store
2. A failure stops the loop at a deterministic point
3. Records already copied stay copied; there is no rollback

The "migrated" flag is the only guard against a second run. Callers check
has_migrated() and ask the user before calling migrate(). The process
itself never deduplicates: running it twice copies everything twice.
"""

from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from homeledger.audit import create_correlation_id, get_logger
from homeledger.models.finance import Asset, LedgerEntry, Liability
from homeledger.models.household import Household
from homeledger.storage.interface import MigrationError, RecordKind, RemoteChannel
from homeledger.storage.local_mirror import MirrorKey, RecordStore


# Household settings that move to the remote household; name and currency stay
_HOUSEHOLD_FIELDS = ("initial_balance", "balance_updated_at", "assistant_api_key")


class MigrationReport(BaseModel):
    """What one successful migration run transferred."""

    household_id: str
    household_settings_merged: bool = False
    entries: int = 0
    assets: int = 0
    liabilities: int = 0

    @property
    def total_records(self) -> int:
        return self.entries + self.assets + self.liabilities


class LocalMirrorMigrator:
    """
    Copies the local mirror into the remote store.

    Usage:
        migrator = LocalMirrorMigrator(record_store, remote)
        if not migrator.has_migrated():
            report = await migrator.migrate(household_id)
    """

    def __init__(self, record_store: RecordStore, remote: RemoteChannel):
        self._store = record_store
        self._remote = remote
        self._logger = get_logger(__name__)

    def has_migrated(self) -> bool:
        return self._store.has_migrated()

    def _read_mirror(
        self,
    ) -> tuple[Optional[Household], list[LedgerEntry], list[Asset], list[Liability]]:
        """
        Load and validate the whole mirror before anything is written.

        Raises:
            MigrationError: If any mirrored record is invalid
        """
        try:
            entries = self._store.load_records(MirrorKey.TRANSACTIONS, strict=True)
            assets = self._store.load_records(MirrorKey.ASSETS, strict=True)
            liabilities = self._store.load_records(MirrorKey.LIABILITIES, strict=True)
        except ValidationError as e:
            raise MigrationError(f"Local mirror holds an invalid record: {e}") from e
        return self._store.load_household(), entries, assets, liabilities

    @staticmethod
    def _household_fields(household: Household) -> dict[str, Any]:
        changes = {
            name: getattr(household, name)
            for name in _HOUSEHOLD_FIELDS
            if getattr(household, name) is not None
        }
        return Household.wire_fields(changes)

    async def migrate(self, household_id: str) -> MigrationReport:
        """
        Copy the local mirror into the remote household.

        Raises:
            MigrationError: If the mirror holds invalid records (nothing is written)
            NotFoundError: If the remote household or path is gone
            WriteFailedError: If a remote write is not acknowledged

        On a remote failure the records already copied remain, and the
        migrated flag stays unset so the run can be retried.
        """
        log = self._logger.bind(
            household_id=household_id,
            correlation_id=str(create_correlation_id()),
        )
        log.info("migration_started")

        household, entries, assets, liabilities = self._read_mirror()
        report = MigrationReport(household_id=household_id)

        try:
            if household is not None:
                await self._remote.update_household_fields(
                    household_id, self._household_fields(household)
                )
                report.household_settings_merged = True
                log.info("migration_household_merged")

            for kind, records, counter in (
                (RecordKind.TRANSACTIONS, entries, "entries"),
                (RecordKind.ASSETS, assets, "assets"),
                (RecordKind.LIABILITIES, liabilities, "liabilities"),
            ):
                if records:
                    log.info("migration_collection_started", kind=kind.value, count=len(records))
                for record in records:
                    # create() strips the local identity; the store assigns a new one
                    await self._remote.create(kind, household_id, record)
                    setattr(report, counter, getattr(report, counter) + 1)
        except Exception as e:
            log.error(
                "migration_failed",
                error=str(e),
                error_type=type(e).__name__,
                transferred=report.total_records,
            )
            raise

        self._store.mark_migrated()
        log.info(
            "migration_completed",
            entries=report.entries,
            assets=report.assets,
            liabilities=report.liabilities,
        )
        return report
