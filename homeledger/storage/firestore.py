"""
Cloud Firestore Remote Channel

DESIGN DECISION: Firestore is the authoritative store because:
1. Standing listeners push every change to all connected clients
2. Document paths map directly onto the household-scoped layout
3. Server timestamps and array-union updates are built in

Document layout:
    households/{householdId}
    transactions/{householdId}/items/{entryId}
    assets/{householdId}/items/{assetId}
    liabilities/{householdId}/items/{liabilityId}

TRADEOFFS:
- Listener callbacks arrive on a Firestore background thread; we hand them
  to the asyncio loop that opened the subscription so the session keeps a
  single writer
- No transactions across documents (migration is a sequential copy)
- Writes are never retried here; a failed write surfaces to the caller
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from homeledger.audit import get_logger
from homeledger.config import FirestoreSettings, get_settings
from homeledger.models.finance import WireModel
from homeledger.models.household import Household
from homeledger.storage.interface import (
    HOUSEHOLDS_COLLECTION,
    ITEMS_SUBCOLLECTION,
    MODEL_BY_KIND,
    AssetsCallback,
    EntriesCallback,
    HouseholdCallback,
    LiabilitiesCallback,
    NotFoundError,
    RecordKind,
    RemoteChannel,
    RemoteConnectionError,
    Unsubscribe,
    WriteFailedError,
)


T = TypeVar("T")

logger = get_logger(__name__)


# =============================================================================
# Snapshot mapping
# =============================================================================

def household_from_snapshot(snapshot: Any) -> Optional[Household]:
    """Household model from a document snapshot, None if the document is gone."""
    if not snapshot.exists:
        return None
    return Household.model_validate({**(snapshot.to_dict() or {}), "id": snapshot.id})


def records_from_snapshots(kind: RecordKind, snapshots: list[Any]) -> list:
    """
    Record models from a collection snapshot.

    Malformed documents are skipped and logged rather than breaking the stream.
    """
    model = MODEL_BY_KIND[kind]
    records = []
    for snapshot in snapshots:
        try:
            records.append(model.model_validate({**(snapshot.to_dict() or {}), "id": snapshot.id}))
        except ValidationError as e:
            logger.warning(
                "remote_document_invalid",
                kind=kind.value,
                record_id=snapshot.id,
                error=str(e),
            )
    return records


async def await_acknowledgment(
    awaitable: Awaitable[T],
    operation: str,
    path: str,
    timeout: float,
) -> T:
    """
    Wait for the store to acknowledge a write, mapping failures.

    Raises:
        NotFoundError: The target document does not exist
        WriteFailedError: Rejected, or no acknowledgment within timeout
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except google_exceptions.NotFound as e:
        logger.warning("remote_write_not_found", operation=operation, path=path)
        raise NotFoundError(f"{path} not found") from e
    except asyncio.TimeoutError as e:
        logger.error("remote_write_timeout", operation=operation, path=path, timeout=timeout)
        raise WriteFailedError(
            f"{operation} on {path} was not acknowledged within {timeout}s"
        ) from e
    except google_exceptions.GoogleAPICallError as e:
        logger.error("remote_write_rejected", operation=operation, path=path, error=str(e))
        raise WriteFailedError(f"{operation} on {path} failed: {e}") from e


# =============================================================================
# Client
# =============================================================================

class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Holds an async client for writes and a sync client for listeners
    (on_snapshot is only available on the sync client).
    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[FirestoreSettings] = None):
        self._settings = settings or get_settings().firestore
        self._async_client: Optional[firestore.AsyncClient] = None
        self._sync_client: Optional[firestore.Client] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> None:
        """
        Create both clients.

        Uses service account credentials when a path is configured,
        application default credentials otherwise.
        """
        if self._async_client is not None:
            return

        try:
            credentials = None
            if self._settings.credentials_path:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=["https://www.googleapis.com/auth/datastore"],
                )
            self._async_client = firestore.AsyncClient(
                project=self._settings.project_id,
                credentials=credentials,
                database=self._settings.database,
            )
            self._sync_client = firestore.Client(
                project=self._settings.project_id,
                credentials=credentials,
                database=self._settings.database,
            )
        except FileNotFoundError:
            raise RemoteConnectionError(
                f"Firestore credentials file not found: {self._settings.credentials_path}"
            )
        except Exception as e:
            raise RemoteConnectionError(f"Failed to connect to Firestore: {e}")

    @property
    def async_client(self) -> firestore.AsyncClient:
        self.connect()
        return self._async_client

    @property
    def sync_client(self) -> firestore.Client:
        self.connect()
        return self._sync_client


# =============================================================================
# Channel
# =============================================================================

class FirestoreRemoteChannel(RemoteChannel):
    """Firestore implementation of the remote channel."""

    def __init__(
        self,
        client: Optional[FirestoreClient] = None,
        write_timeout_seconds: Optional[float] = None,
    ):
        self._client = client or FirestoreClient()
        self._timeout = write_timeout_seconds or get_settings().app.write_timeout_seconds

    # =========================================================================
    # Paths
    # =========================================================================

    def _items(self, kind: RecordKind, household_id: str, sync: bool = False):
        client = self._client.sync_client if sync else self._client.async_client
        return (
            client.collection(kind.value)
            .document(household_id)
            .collection(ITEMS_SUBCOLLECTION)
        )

    def _household(self, household_id: str, sync: bool = False):
        client = self._client.sync_client if sync else self._client.async_client
        return client.collection(HOUSEHOLDS_COLLECTION).document(household_id)

    @staticmethod
    def _item_path(kind: RecordKind, household_id: str, record_id: str) -> str:
        return f"{kind.value}/{household_id}/{ITEMS_SUBCOLLECTION}/{record_id}"

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def _watch(
        self,
        ref: Any,
        to_state: Callable[[list[Any]], Any],
        on_change: Callable[[Any], None],
        stream: str,
    ) -> Unsubscribe:
        """
        Attach a Firestore listener and return its unsubscribe handle.

        Deliveries are re-scheduled onto the running loop (when there is one)
        and dropped once unsubscribed, including ones already queued.
        """
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        active = True

        def deliver(state: Any) -> None:
            if active and state is not None:
                on_change(state)

        def on_snapshot(snapshots, changes, read_time) -> None:
            state = to_state(snapshots)
            if loop is not None:
                loop.call_soon_threadsafe(deliver, state)
            else:
                deliver(state)

        watch = ref.on_snapshot(on_snapshot)
        logger.debug("remote_subscription_opened", stream=stream)

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            watch.unsubscribe()
            logger.debug("remote_subscription_closed", stream=stream)

        return unsubscribe

    def subscribe_household(self, household_id: str, on_change: HouseholdCallback) -> Unsubscribe:
        def to_state(snapshots: list[Any]) -> Optional[Household]:
            return household_from_snapshot(snapshots[0]) if snapshots else None

        return self._watch(
            self._household(household_id, sync=True),
            to_state,
            on_change,
            f"{HOUSEHOLDS_COLLECTION}/{household_id}",
        )

    def _subscribe_items(self, kind: RecordKind, household_id: str, on_change) -> Unsubscribe:
        return self._watch(
            self._items(kind, household_id, sync=True),
            lambda snapshots: records_from_snapshots(kind, snapshots),
            on_change,
            f"{kind.value}/{household_id}",
        )

    def subscribe_entries(self, household_id: str, on_change: EntriesCallback) -> Unsubscribe:
        return self._subscribe_items(RecordKind.TRANSACTIONS, household_id, on_change)

    def subscribe_assets(self, household_id: str, on_change: AssetsCallback) -> Unsubscribe:
        return self._subscribe_items(RecordKind.ASSETS, household_id, on_change)

    def subscribe_liabilities(self, household_id: str, on_change: LiabilitiesCallback) -> Unsubscribe:
        return self._subscribe_items(RecordKind.LIABILITIES, household_id, on_change)

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
        data["createdAt"] = firestore.SERVER_TIMESTAMP

        _, doc_ref = await await_acknowledgment(
            self._items(kind, household_id).add(data),
            "create",
            f"{kind.value}/{household_id}",
            self._timeout,
        )
        logger.info("remote_record_created", kind=kind.value, household_id=household_id, record_id=doc_ref.id)
        return doc_ref.id

    async def update(
        self,
        kind: RecordKind,
        household_id: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        await await_acknowledgment(
            self._items(kind, household_id).document(record_id).update(fields),
            "update",
            self._item_path(kind, household_id, record_id),
            self._timeout,
        )
        logger.info("remote_record_updated", kind=kind.value, household_id=household_id, record_id=record_id)

    async def delete(self, kind: RecordKind, household_id: str, record_id: str) -> None:
        # Firestore deletes are silent on missing documents unless preconditioned
        await await_acknowledgment(
            self._items(kind, household_id).document(record_id).delete(
                option=self._client.async_client.write_option(exists=True)
            ),
            "delete",
            self._item_path(kind, household_id, record_id),
            self._timeout,
        )
        logger.info("remote_record_deleted", kind=kind.value, household_id=household_id, record_id=record_id)

    # =========================================================================
    # Household documents
    # =========================================================================

    async def update_household_fields(self, household_id: str, fields: dict[str, Any]) -> None:
        await await_acknowledgment(
            self._household(household_id).update(fields),
            "update",
            f"{HOUSEHOLDS_COLLECTION}/{household_id}",
            self._timeout,
        )
        logger.info("remote_household_updated", household_id=household_id, fields=sorted(fields))

    async def create_household(self, household: Household) -> str:
        collection = self._client.async_client.collection(HOUSEHOLDS_COLLECTION)
        doc_ref = collection.document(household.id) if household.id else collection.document()
        await await_acknowledgment(
            doc_ref.set(household.to_wire()),
            "create",
            f"{HOUSEHOLDS_COLLECTION}/{doc_ref.id}",
            self._timeout,
        )
        logger.info("remote_household_created", household_id=doc_ref.id)
        return doc_ref.id

    async def get_household(self, household_id: str) -> Optional[Household]:
        snapshot = await self._household(household_id).get()
        return household_from_snapshot(snapshot)

    async def find_households_by_code(self, code: str) -> list[str]:
        query = self._client.async_client.collection(HOUSEHOLDS_COLLECTION).where(
            filter=FieldFilter("householdCode", "==", code)
        )
        snapshots = await query.get()
        return [snapshot.id for snapshot in snapshots]

    async def add_household_member(self, household_id: str, user_id: str) -> None:
        await await_acknowledgment(
            self._household(household_id).update({"ownerIds": firestore.ArrayUnion([user_id])}),
            "update",
            f"{HOUSEHOLDS_COLLECTION}/{household_id}",
            self._timeout,
        )
        logger.info("remote_household_member_added", household_id=household_id, user_id=user_id)
