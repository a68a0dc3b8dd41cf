"""Sync module for the remote store.

Handles offline-first delta sync between the local SQLite database and the
remote multi-tenant store, including photo migration to object storage.
"""

from .assets import AssetMigrator, AssetState, MigrationReport, classify_asset
from .cancellation import CancellationToken
from .conflict import ConflictDecision, is_true_conflict, resolve
from .cursor import CursorStore, effective_cursor
from .errors import (
    BusyError,
    NetworkError,
    NoTenantSelectedError,
    NotAuthenticatedError,
    RateLimitError,
    RemoteConfigError,
    SerializationError,
    SyncCancelledError,
    SyncError,
)
from .events import EventChannel, SyncCompleted, SyncProgress
from .fetcher import DeltaFetcher, PullReport
from .orchestrator import SyncMode, SyncOrchestrator, SyncResult, SyncState
from .pusher import DeltaPusher
from .remote import RemoteClient, UpsertResult
from .storage import ObjectStorage, is_remote_url

__all__ = [
    # Remote store
    "RemoteClient",
    "UpsertResult",
    "ObjectStorage",
    "is_remote_url",
    # Errors
    "SyncError",
    "RemoteConfigError",
    "NotAuthenticatedError",
    "NoTenantSelectedError",
    "NetworkError",
    "RateLimitError",
    "SerializationError",
    "BusyError",
    "SyncCancelledError",
    # Cursor and conflicts
    "CursorStore",
    "effective_cursor",
    "ConflictDecision",
    "resolve",
    "is_true_conflict",
    # Phases
    "DeltaFetcher",
    "PullReport",
    "DeltaPusher",
    "AssetMigrator",
    "AssetState",
    "MigrationReport",
    "classify_asset",
    # Orchestration
    "SyncOrchestrator",
    "SyncResult",
    "SyncMode",
    "SyncState",
    "EventChannel",
    "SyncProgress",
    "SyncCompleted",
    "CancellationToken",
]
