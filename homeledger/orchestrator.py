"""
Application Wiring for Home Ledger

This module ties the components together for external collaborators
(UI forms, the auth flow). They receive one AppComponents bundle and
only ever call:
- session.attach / session.detach and the session mutation methods
- the metrics functions (directly or through the session)
- resolver.find_by_code / resolver.generate_code
- migrator.migrate / migrator.has_migrated

DESIGN DECISION: If the local mirror directory cannot be used, the app
still starts with a memory-only mirror. Losing the offline copy is
acceptable; refusing to start is not.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from homeledger.audit import configure_logging, get_logger
from homeledger.config import Settings, get_settings, validate_all_settings
from homeledger.households import HouseholdResolver
from homeledger.migration import LocalMirrorMigrator
from homeledger.session import HouseholdSession
from homeledger.storage import (
    FirestoreClient,
    FirestoreRemoteChannel,
    InMemoryBackend,
    InMemoryRemoteChannel,
    JSONFileBackend,
    RecordStore,
    RemoteChannel,
    RemoteConnectionError,
)


class AppComponents(BaseModel):
    """Everything a client process needs, built once at startup."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    record_store: RecordStore
    remote: RemoteChannel
    resolver: HouseholdResolver
    migrator: LocalMirrorMigrator
    session: HouseholdSession
    # validate_all_settings() result at startup, for status displays
    settings_status: dict[str, Any] = {}


def create_record_store(settings: Optional[Settings] = None) -> RecordStore:
    """Local mirror on disk, or in memory if the directory is unusable."""
    settings = settings or get_settings()
    directory = Path(settings.local_mirror.directory).expanduser()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        return RecordStore(JSONFileBackend(directory))
    except OSError as e:
        get_logger(__name__).warning(
            "local_mirror_unavailable",
            directory=str(directory),
            error=str(e),
        )
        return RecordStore(InMemoryBackend())


def create_app_components(
    use_remote: bool = True,
    remote: Optional[RemoteChannel] = None,
    record_store: Optional[RecordStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_remote: Connect to Firestore. Set to False to run against an
                    in-memory remote store (local demos, tests).
        remote: Explicit remote channel; overrides use_remote
        record_store: Explicit local mirror

    Returns:
        AppComponents bundle
    """
    settings = get_settings()
    app_settings = settings.app
    configure_logging("DEBUG" if app_settings.debug_mode else app_settings.log_level)

    status = validate_all_settings()
    logger = get_logger(__name__, environment=app_settings.app_environment)
    logger.info(
        "app_starting",
        configured=sorted(k for k, v in status.items() if v is True),
        debug_mode=app_settings.debug_mode,
    )

    if remote is None:
        if use_remote:
            if not status["firestore"]:
                raise RemoteConnectionError(
                    f"Firestore is not configured: {status.get('firestore_error')}"
                )
            remote = FirestoreRemoteChannel(
                FirestoreClient(settings.firestore),
                write_timeout_seconds=app_settings.write_timeout_seconds,
            )
        else:
            remote = InMemoryRemoteChannel()

    record_store = record_store or create_record_store(settings)

    return AppComponents(
        record_store=record_store,
        remote=remote,
        resolver=HouseholdResolver(remote),
        migrator=LocalMirrorMigrator(record_store, remote),
        session=HouseholdSession(remote, mirror=record_store),
        settings_status=status,
    )
