"""
Storage Package

Provides abstract interfaces and concrete implementations for both storage
tiers: the local mirror (JSON files) and the authoritative remote store
(Cloud Firestore, or an in-memory stand-in).
"""

from homeledger.storage.interface import (
    KeyValueBackend,
    InvalidCodeError,
    LocalStorageUnavailableError,
    MigrationError,
    NotFoundError,
    RecordKind,
    RemoteChannel,
    RemoteConnectionError,
    StorageError,
    Unsubscribe,
    WriteFailedError,
)
from homeledger.storage.local_mirror import (
    InMemoryBackend,
    JSONFileBackend,
    MirrorKey,
    RecordStore,
)
from homeledger.storage.memory import InMemoryRemoteChannel
from homeledger.storage.firestore import (
    FirestoreClient,
    FirestoreRemoteChannel,
)

__all__ = [
    # Interfaces
    "KeyValueBackend",
    "RecordKind",
    "RemoteChannel",
    "Unsubscribe",
    # Exceptions
    "InvalidCodeError",
    "LocalStorageUnavailableError",
    "MigrationError",
    "NotFoundError",
    "RemoteConnectionError",
    "StorageError",
    "WriteFailedError",
    # Local mirror
    "InMemoryBackend",
    "JSONFileBackend",
    "MirrorKey",
    "RecordStore",
    # Remote implementations
    "FirestoreClient",
    "FirestoreRemoteChannel",
    "InMemoryRemoteChannel",
]
