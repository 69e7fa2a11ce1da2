"""
Local Mirror (Record Store)

The offline copy of a household's records, kept in a small durable
key/value store on the client machine.

DESIGN DECISION: The local mirror must never take the engine down.
1. Reads never raise - unreadable or corrupt values read as absent
2. Failed writes are reported (set() returns False) and logged
3. After the first failed write the store degrades to memory-only
   for the rest of the session; earlier durable values stay intact

TRADEOFFS:
- A degraded session loses its mirror writes on exit
- One JSON document per key, rewritten whole on every set
"""

import contextlib
import json
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from homeledger.audit import get_logger
from homeledger.models.finance import (
    Asset,
    CategoryConfig,
    LedgerEntry,
    Liability,
    WireModel,
)
from homeledger.models.household import Household
from homeledger.storage.interface import (
    KeyValueBackend,
    LocalStorageUnavailableError,
)


class MirrorKey(str, Enum):
    """The closed set of keys kept in the local mirror."""
    HOUSEHOLD = "houseapp_household"
    TRANSACTIONS = "houseapp_transactions"
    ASSETS = "houseapp_assets"
    LIABILITIES = "houseapp_liabilities"
    CATEGORIES = "houseapp_categories"
    MIGRATED_TO_REMOTE = "houseapp_migrated_to_firebase"


RECORD_MODELS: dict[MirrorKey, type[WireModel]] = {
    MirrorKey.TRANSACTIONS: LedgerEntry,
    MirrorKey.ASSETS: Asset,
    MirrorKey.LIABILITIES: Liability,
    MirrorKey.CATEGORIES: CategoryConfig,
}

# Marks a key removed while degraded, so stale durable values stay hidden
_REMOVED = object()


class JSONFileBackend(KeyValueBackend):
    """One JSON file per key with crash-safe writes."""

    def __init__(self, base_path: Path):
        self._base_path = Path(base_path)

    def _path(self, key: str) -> Path:
        return self._base_path / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise LocalStorageUnavailableError(f"Unable to read from {path}") from exc
        except UnicodeDecodeError as exc:
            raise LocalStorageUnavailableError(f"{path} is not valid UTF-8") from exc

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
            # Atomic on POSIX: the old file survives any failure above
            temp_path.replace(path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise LocalStorageUnavailableError(f"Unable to write to {path}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise LocalStorageUnavailableError(f"Unable to delete {path}") from exc

    @property
    def base_path(self) -> Path:
        return self._base_path


class InMemoryBackend(KeyValueBackend):
    """
    Dict-backed backend for tests and memory-only sessions.

    An optional byte quota mimics browser storage limits.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self._data: dict[str, str] = {}
        self._max_bytes = max_bytes

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        if self._max_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self._max_bytes:
                raise LocalStorageUnavailableError(
                    f"Quota exceeded writing {key} ({used + len(value)} > {self._max_bytes} bytes)"
                )
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class RecordStore:
    """
    Typed access to the local mirror.

    All operations are synchronous. Values are JSON-compatible Python data;
    the typed helpers convert to and from models.
    """

    def __init__(self, backend: KeyValueBackend):
        self._backend = backend
        self._overlay: dict[MirrorKey, Any] = {}
        self._degraded = False
        self._logger = get_logger(__name__)

    @property
    def is_degraded(self) -> bool:
        """True once a write failed and the session went memory-only."""
        return self._degraded

    # =========================================================================
    # Raw contract
    # =========================================================================

    def get(self, key: MirrorKey) -> Any:
        """Stored value for key, or None if absent or unreadable."""
        if key in self._overlay:
            value = self._overlay[key]
            return None if value is _REMOVED else value

        try:
            raw = self._backend.read(key.value)
        except LocalStorageUnavailableError as e:
            self._logger.warning("local_mirror_read_failed", key=key.value, error=str(e))
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self._logger.warning("local_mirror_corrupt_value", key=key.value, error=str(e))
            return None

    def set(self, key: MirrorKey, value: Any) -> bool:
        """
        Store value under key.

        Returns:
            True if the value was written durably, False if it is only
            held in memory for this session
        """
        raw = json.dumps(value, ensure_ascii=False)

        if self._degraded:
            self._overlay[key] = value
            return False

        try:
            self._backend.write(key.value, raw)
        except LocalStorageUnavailableError as e:
            self._degraded = True
            self._overlay[key] = value
            self._logger.error(
                "local_mirror_write_failed",
                key=key.value,
                error=str(e),
                degraded=True,
            )
            return False

        self._overlay.pop(key, None)
        return True

    def remove(self, key: MirrorKey) -> None:
        """Remove key. Failures are logged and ignored."""
        if self._degraded:
            self._overlay[key] = _REMOVED
            return

        self._overlay.pop(key, None)
        try:
            self._backend.delete(key.value)
        except LocalStorageUnavailableError as e:
            self._logger.warning("local_mirror_remove_failed", key=key.value, error=str(e))

    def clear(self) -> None:
        """Remove every mirror key."""
        for key in MirrorKey:
            self.remove(key)

    # =========================================================================
    # Typed helpers
    # =========================================================================

    def load_household(self) -> Optional[Household]:
        """Mirrored household profile, None if absent or invalid."""
        data = self.get(MirrorKey.HOUSEHOLD)
        if not isinstance(data, dict):
            return None
        try:
            return Household.model_validate(data)
        except ValidationError as e:
            self._logger.warning("local_mirror_invalid_household", error=str(e))
            return None

    def load_records(self, key: MirrorKey, strict: bool = False) -> list:
        """
        Mirrored records under a collection key.

        Args:
            key: One of the collection keys (not HOUSEHOLD or the flag)
            strict: Raise on the first invalid record instead of skipping it

        Raises:
            ValidationError: In strict mode, for an invalid record
        """
        model = RECORD_MODELS[key]
        data = self.get(key)
        if not isinstance(data, list):
            return []

        records = []
        for item in data:
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                if strict:
                    raise
                self._logger.warning(
                    "local_mirror_invalid_record",
                    key=key.value,
                    error=str(e),
                )
        return records

    def load_entries(self) -> list[LedgerEntry]:
        return self.load_records(MirrorKey.TRANSACTIONS)

    def load_assets(self) -> list[Asset]:
        return self.load_records(MirrorKey.ASSETS)

    def load_liabilities(self) -> list[Liability]:
        return self.load_records(MirrorKey.LIABILITIES)

    def load_categories(self) -> list[CategoryConfig]:
        return self.load_records(MirrorKey.CATEGORIES)

    def save_household(self, household: Household) -> bool:
        return self.set(MirrorKey.HOUSEHOLD, household.to_wire(include_id=True))

    def save_records(self, key: MirrorKey, records: list[WireModel]) -> bool:
        return self.set(key, [record.to_wire(include_id=True) for record in records])

    def has_migrated(self) -> bool:
        """Whether the mirror has already been copied to the remote store."""
        return self.get(MirrorKey.MIGRATED_TO_REMOTE) is True

    def mark_migrated(self) -> bool:
        return self.set(MirrorKey.MIGRATED_TO_REMOTE, True)
