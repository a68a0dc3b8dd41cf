"""Sync round orchestration.

A full round runs, for the active location:

1. Pull every entity kind (Ingredient, Recipe, Entree) changed remotely
   after the cursor and merge it locally
2. Upload locally referenced photos and rewrite their fields to URLs
3. Push every local record changed after the cursor
4. Advance the cursor to the end of the round

Only one round runs at a time per orchestrator. Overlapping calls fail
immediately with a busy result.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..db.schemas import SYNC_ORDER, EntityKind, LocationRecord
from ..db.sqlite import Database
from ..utils import utcnow
from .assets import AssetMigrator
from .cancellation import CancellationToken, check_cancelled
from .cursor import CursorStore, effective_cursor
from .errors import (
    BusyError,
    NetworkError,
    NoTenantSelectedError,
    NotAuthenticatedError,
    SyncError,
    summarize_validation_error,
)
from .events import EventChannel, SyncCompleted, SyncProgress
from .fetcher import DeltaFetcher
from .pusher import DeltaPusher
from .remote import RemoteClient
from .storage import ObjectStorage

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class SyncMode(str, Enum):
    """Which phases a round runs."""

    FULL = "full"  # pull, photos, push, advance cursor
    PULL_ONLY = "pull_only"
    PUSH_ONLY = "push_only"  # photos and push
    FORCE_UPLOAD_ALL = "force_upload_all"  # photos and push of every record
    LOCATIONS = "locations"


@dataclass
class SyncResult:
    """Result of one sync round."""

    mode: SyncMode
    success: bool = True
    uploaded: int = 0
    downloaded: int = 0
    conflicts: int = 0
    skipped: int = 0
    assets_migrated: int = 0
    duration: timedelta = timedelta(0)
    error: Optional[str] = None
    error_code: Optional[str] = None
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.uploaded + self.downloaded

    @classmethod
    def failure(cls, mode: SyncMode, error: Exception) -> "SyncResult":
        """A result for a round that could not start."""
        result = cls(mode=mode)
        result.mark_failed(error)
        return result

    def mark_failed(self, error: Union[Exception, str]) -> None:
        """Flag the round unsuccessful, keeping the first error message."""
        self.success = False
        if self.error is None:
            self.error = str(error)
            self.error_code = getattr(error, "code", None) if isinstance(error, Exception) else None


Step = tuple[str, Callable[[], None]]


class SyncOrchestrator:
    """Runs sync rounds between the local store and the remote store."""

    def __init__(
        self,
        db: Database,
        remote: RemoteClient,
        storage: Optional[ObjectStorage] = None,
        cursor_store: Optional[CursorStore] = None,
        events: Optional[EventChannel] = None,
        photo_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize orchestrator.

        Args:
            db: Local database
            remote: Remote client, connected by the caller
            storage: Object storage for photos (photo migration is skipped if None)
            cursor_store: Cursor persistence (every round is a full resync if None)
            events: Channel for progress/completion messages
            photo_dir: Directory that bare photo filenames are resolved in
            clock: Source of the current time
        """
        self.db = db
        self.remote = remote
        self.cursor_store = cursor_store
        self.events = events or EventChannel()
        self.clock = clock

        self.fetcher = DeltaFetcher(remote, db)
        self.pusher = DeltaPusher(remote, db)
        self.assets = (
            AssetMigrator(storage, db, photo_dir, clock=clock) if storage is not None else None
        )

        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._last_percent = -1

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state == SyncState.SYNCING

    # ========================================================================
    # Operator Entry Points
    # ========================================================================

    def full_sync(
        self, location_id: Optional[str], cancel: Optional[CancellationToken] = None
    ) -> SyncResult:
        """Pull, migrate photos, push, then advance the cursor."""
        return self._run(SyncMode.FULL, location_id, cancel)

    def pull_only(
        self, location_id: Optional[str], cancel: Optional[CancellationToken] = None
    ) -> SyncResult:
        """Pull remote changes without pushing or advancing the cursor."""
        return self._run(SyncMode.PULL_ONLY, location_id, cancel)

    def push_only(
        self, location_id: Optional[str], cancel: Optional[CancellationToken] = None
    ) -> SyncResult:
        """Migrate photos and push local changes without advancing the cursor."""
        return self._run(SyncMode.PUSH_ONLY, location_id, cancel)

    def force_upload_all(
        self, location_id: Optional[str], cancel: Optional[CancellationToken] = None
    ) -> SyncResult:
        """Migrate photos and push every local record regardless of the cursor."""
        return self._run(SyncMode.FORCE_UPLOAD_ALL, location_id, cancel)

    def sync_locations(self, cancel: Optional[CancellationToken] = None) -> SyncResult:
        """Refresh the local list of locations from the remote store."""
        return self._run(SyncMode.LOCATIONS, None, cancel)

    # ========================================================================
    # Round Execution
    # ========================================================================

    def _run(
        self,
        mode: SyncMode,
        location_id: Optional[str],
        cancel: Optional[CancellationToken],
    ) -> SyncResult:
        if not self._lock.acquire(blocking=False):
            logger.info("Ignoring %s sync request: a round is already running", mode.value)
            return SyncResult.failure(mode, BusyError())

        self._state = SyncState.SYNCING
        self._last_percent = -1
        started = self.clock()
        result = SyncResult(mode=mode)
        try:
            self._execute(mode, location_id, cancel, result)
        except SyncError as e:
            logger.warning("%s sync failed: %s", mode.value, e)
            result.mark_failed(e)
        except Exception as e:
            logger.exception("Unexpected error during %s sync", mode.value)
            result.mark_failed(e)
        finally:
            self._state = SyncState.IDLE
            self._lock.release()

        result.duration = self.clock() - started
        logger.info(
            "%s sync %s: %d uploaded, %d downloaded, %d photos, %d skipped",
            mode.value,
            "finished" if result.success else "failed",
            result.uploaded,
            result.downloaded,
            result.assets_migrated,
            result.skipped,
        )
        self.events.publish(SyncCompleted(result))
        return result

    def _execute(
        self,
        mode: SyncMode,
        location_id: Optional[str],
        cancel: Optional[CancellationToken],
        result: SyncResult,
    ) -> None:
        if not self.remote.is_authenticated:
            raise NotAuthenticatedError()
        if mode != SyncMode.LOCATIONS and not location_id:
            raise NoTenantSelectedError()

        with self.db.get_session() as session:
            steps = self._plan(mode, location_id, session, cancel, result)
            for index, (stage, step) in enumerate(steps):
                check_cancelled(cancel)
                self._progress(stage, index * 100 // len(steps))
                step()
                session.commit()

    def _plan(
        self,
        mode: SyncMode,
        location_id: Optional[str],
        session: Session,
        cancel: Optional[CancellationToken],
        result: SyncResult,
    ) -> list[Step]:
        """Lay out the steps of a round in execution order."""
        if mode == SyncMode.LOCATIONS:
            return [("Fetching locations", partial(self._pull_locations, session, result))]

        stored = self.cursor_store.load() if self.cursor_store is not None else None
        cursor = effective_cursor(self.db.is_location_empty(location_id, session=session), stored)
        settled: set[str] = set()

        steps: list[Step] = []
        if mode in (SyncMode.FULL, SyncMode.PULL_ONLY):
            for kind in SYNC_ORDER:
                pull = partial(
                    self._pull_kind, kind, location_id, cursor, session, cancel, result, settled
                )
                steps.append((f"Pulling {kind.label}", pull))

        if mode == SyncMode.PULL_ONLY:
            return steps

        if self.assets is not None:
            migrate = partial(
                self._migrate_assets, location_id, session, cancel, result, settled
            )
            steps.append(("Uploading photos", migrate))

        push_cursor = None if mode == SyncMode.FORCE_UPLOAD_ALL else cursor
        for kind in SYNC_ORDER:
            push = partial(
                self._push_kind, kind, location_id, push_cursor, session, cancel, result, settled
            )
            steps.append((f"Pushing {kind.label}", push))

        if mode == SyncMode.FULL:
            steps.append(("Saving sync time", partial(self._advance_cursor, result)))
        return steps

    def _progress(self, stage: str, percent: int) -> None:
        if percent <= self._last_percent:
            return
        self._last_percent = percent
        logger.debug("%s (%d%%)", stage, percent)
        self.events.publish(SyncProgress(stage=stage, percent=percent))

    # ========================================================================
    # Steps
    # ========================================================================

    def _pull_kind(
        self,
        kind: EntityKind,
        location_id: str,
        cursor: datetime,
        session: Session,
        cancel: Optional[CancellationToken],
        result: SyncResult,
        settled: set[str],
    ) -> None:
        report = self.fetcher.pull(kind, location_id, cursor, session=session, cancel=cancel)
        result.downloaded += report.downloaded
        result.conflicts += report.conflicts
        result.skipped += report.skipped
        result.errors.extend(report.errors)
        settled.update(report.settled_ids)
        if not report.success:
            result.errors.append((kind.label, report.error))
            result.mark_failed(NetworkError(f"Pull of {kind.label} failed: {report.error}"))

    def _migrate_assets(
        self,
        location_id: str,
        session: Session,
        cancel: Optional[CancellationToken],
        result: SyncResult,
        settled: set[str],
    ) -> None:
        report = self.assets.migrate(location_id, session=session, cancel=cancel)
        result.assets_migrated += report.migrated
        result.skipped += report.skipped
        result.errors.extend(report.failures)
        # rewritten records changed after the pull and must be pushed
        settled.difference_update(report.migrated_ids)

    def _push_kind(
        self,
        kind: EntityKind,
        location_id: str,
        cursor: Optional[datetime],
        session: Session,
        cancel: Optional[CancellationToken],
        result: SyncResult,
        settled: set[str],
    ) -> None:
        malformed: list[tuple[str, str]] = []
        try:
            result.uploaded += self.pusher.push_since(
                kind,
                location_id,
                cursor,
                session=session,
                exclude_ids=settled,
                cancel=cancel,
                errors=malformed,
            )
        except NetworkError as e:
            logger.warning("%s", e)
            result.errors.append((kind.label, str(e)))
            result.mark_failed(e)
        result.skipped += len(malformed)
        result.errors.extend(malformed)

    def _advance_cursor(self, result: SyncResult) -> None:
        if not result.success:
            logger.info("Keeping the previous cursor so the failed window is retried")
            return
        if self.cursor_store is not None:
            self.cursor_store.advance(self.clock())

    def _pull_locations(self, session: Session, result: SyncResult) -> None:
        for row in self.remote.list_locations():
            try:
                record = LocationRecord.model_validate(row)
            except ValidationError as e:
                result.skipped += 1
                result.errors.append((str(row.get("id", "?")), summarize_validation_error(e)))
                logger.warning("Skipping malformed location: %s", summarize_validation_error(e))
                continue
            self.db.upsert_location(record, session=session)
            result.downloaded += 1
