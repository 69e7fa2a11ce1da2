"""
Abstract Storage Interfaces

DESIGN DECISION: The engine talks to two storage tiers, and both sit
behind abstract interfaces:
1. KeyValueBackend - the durable local mirror (offline copy)
2. RemoteChannel - the authoritative remote store shared by every client

This allows us to:
1. Swap Firestore for another document store later
2. Use in-memory storage for testing
3. Keep the session and migration logic decoupled from any backend

The interfaces are intentionally small - just the operations the
engine needs, nothing more.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional, Union

from homeledger.models.finance import Asset, LedgerEntry, Liability, WireModel
from homeledger.models.household import Household


# Stops delivery of a standing subscription. Safe to call more than once.
Unsubscribe = Callable[[], None]

HouseholdCallback = Callable[[Household], None]
EntriesCallback = Callable[[list[LedgerEntry]], None]
AssetsCallback = Callable[[list[Asset]], None]
LiabilitiesCallback = Callable[[list[Liability]], None]


class RecordKind(str, Enum):
    """
    Record collections kept per household.

    The value is the top-level remote collection name; items live under
    `{kind}/{householdId}/items/{id}`.
    """
    TRANSACTIONS = "transactions"
    ASSETS = "assets"
    LIABILITIES = "liabilities"


MODEL_BY_KIND: dict[RecordKind, type[WireModel]] = {
    RecordKind.TRANSACTIONS: LedgerEntry,
    RecordKind.ASSETS: Asset,
    RecordKind.LIABILITIES: Liability,
}

HOUSEHOLDS_COLLECTION = "households"
ITEMS_SUBCOLLECTION = "items"


class KeyValueBackend(ABC):
    """
    Raw durable key/value storage under the local mirror.

    Backends may raise LocalStorageUnavailableError from any method;
    RecordStore turns those into graceful degradation.
    """

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the stored text for key, or None if absent."""
        pass

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """
        Store text under key.

        A failed write must leave any previously stored value intact.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Missing keys are not an error."""
        pass


class RemoteChannel(ABC):
    """
    Abstract interface to the authoritative remote store.

    Subscriptions deliver full current state: once immediately, then again
    after every remote mutation, in arrival order per stream. There is no
    ordering guarantee between two different streams.

    Writes are coroutines that resolve only once the store acknowledges.
    """

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @abstractmethod
    def subscribe_household(
        self,
        household_id: str,
        on_change: HouseholdCallback,
    ) -> Unsubscribe:
        """Follow the household document. Missing documents produce no callback."""
        pass

    @abstractmethod
    def subscribe_entries(
        self,
        household_id: str,
        on_change: EntriesCallback,
    ) -> Unsubscribe:
        """Follow all ledger entries of a household."""
        pass

    @abstractmethod
    def subscribe_assets(
        self,
        household_id: str,
        on_change: AssetsCallback,
    ) -> Unsubscribe:
        """Follow all assets of a household."""
        pass

    @abstractmethod
    def subscribe_liabilities(
        self,
        household_id: str,
        on_change: LiabilitiesCallback,
    ) -> Unsubscribe:
        """Follow all liabilities of a household."""
        pass

    # =========================================================================
    # Record writes
    # =========================================================================

    @abstractmethod
    async def create(
        self,
        kind: RecordKind,
        household_id: str,
        record: Union[WireModel, dict[str, Any]],
    ) -> str:
        """
        Create a record with a store-assigned identity.

        Any identity on the given record is ignored. The store stamps a
        server-side creation timestamp.

        Returns:
            The new record's identity

        Raises:
            WriteFailedError: If the store does not acknowledge the write
        """
        pass

    @abstractmethod
    async def update(
        self,
        kind: RecordKind,
        household_id: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Merge wire-form fields into an existing record.

        Raises:
            NotFoundError: If the record no longer exists
            WriteFailedError: If the store does not acknowledge the write
        """
        pass

    @abstractmethod
    async def delete(
        self,
        kind: RecordKind,
        household_id: str,
        record_id: str,
    ) -> None:
        """
        Delete an existing record.

        Raises:
            NotFoundError: If the record no longer exists
            WriteFailedError: If the store does not acknowledge the write
        """
        pass

    # =========================================================================
    # Household documents
    # =========================================================================

    @abstractmethod
    async def update_household_fields(
        self,
        household_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Merge wire-form fields into the household document.

        Raises:
            NotFoundError: If the household does not exist
            WriteFailedError: If the store does not acknowledge the write
        """
        pass

    @abstractmethod
    async def create_household(self, household: Household) -> str:
        """
        Store a new household document.

        Uses household.id when set, otherwise assigns one.

        Returns:
            The household identity
        """
        pass

    @abstractmethod
    async def get_household(self, household_id: str) -> Optional[Household]:
        """One-off read of a household document, None if absent."""
        pass

    @abstractmethod
    async def find_households_by_code(self, code: str) -> list[str]:
        """Identities of every household whose join code equals code exactly."""
        pass

    @abstractmethod
    async def add_household_member(self, household_id: str, user_id: str) -> None:
        """
        Add user_id to the household's member set.

        Adding an existing member leaves the set unchanged.

        Raises:
            NotFoundError: If the household does not exist
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Referenced remote record or household is absent."""
    pass


class InvalidCodeError(NotFoundError):
    """Join code is malformed or matches no (single) household."""
    pass


class WriteFailedError(StorageError):
    """Remote acknowledgment was rejected or never arrived."""
    pass


class RemoteConnectionError(StorageError):
    """Could not connect to the remote store backend."""
    pass


class LocalStorageUnavailableError(StorageError):
    """The local mirror cannot be read or written (quota, permissions)."""
    pass


class MigrationError(StorageError):
    """The local mirror holds records that cannot be migrated."""
    pass
