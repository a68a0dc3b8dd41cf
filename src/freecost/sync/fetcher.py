"""Pull side of delta sync.

Fetches remote records changed after the cursor and merges them into the
local store using last-writer-wins.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..db.schemas import RECORD_TYPES, EntityKind, SyncRecord
from ..db.sqlite import Database
from ..utils import EPOCH
from .cancellation import CancellationToken, check_cancelled
from .conflict import ConflictDecision, is_true_conflict, resolve
from .errors import NetworkError, SerializationError, summarize_validation_error
from .remote import RemoteClient

logger = logging.getLogger(__name__)


@dataclass
class PullReport:
    """Outcome of pulling one entity kind."""

    kind: EntityKind
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    deferred: int = 0
    unchanged: int = 0
    conflicts: int = 0
    skipped: int = 0
    settled_ids: set[str] = field(default_factory=set)
    errors: list[tuple[str, str]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def downloaded(self) -> int:
        """Records whose remote version was adopted locally."""
        return self.inserted + self.updated

    @property
    def success(self) -> bool:
        return self.error is None


class DeltaFetcher:
    """Retrieves remote deltas and merges them into the local store."""

    def __init__(self, remote: RemoteClient, db: Database):
        """Initialize delta fetcher.

        Args:
            remote: Connected remote client
            db: Local database
        """
        self.remote = remote
        self.db = db

    def fetch_since(
        self,
        kind: EntityKind,
        location_id: str,
        cursor: Optional[datetime],
        errors: Optional[list[tuple[str, str]]] = None,
    ) -> list[SyncRecord]:
        """Fetch records of ``kind`` for a location modified strictly after ``cursor``.

        Malformed remote rows are left out and, when ``errors`` is given,
        recorded there as (id, message).

        Raises:
            NetworkError: If the remote query fails
            NotAuthenticatedError: If the remote session is invalid
        """
        rows = self.remote.fetch_rows(kind.table, location_id, modified_after=cursor)
        record_type = RECORD_TYPES[kind]

        records = []
        for row in rows:
            try:
                records.append(record_type.model_validate(row))
            except ValidationError as e:
                error = SerializationError(str(row.get("id", "?")), summarize_validation_error(e))
                if errors is not None:
                    errors.append((error.record_id, str(error)))
                logger.warning("Skipping remote %s: %s", kind.value, error)
        return records

    def merge(
        self,
        record: SyncRecord,
        session: Session,
        cursor: Optional[datetime] = None,
        report: Optional[PullReport] = None,
    ) -> ConflictDecision:
        """Merge one remote record into the local store.

        Args:
            record: Remote record
            session: Local unit of work
            cursor: Cursor of this round, used only to flag true conflicts
            report: Report to update with counts

        Raises:
            SerializationError: If the local counterpart is malformed
        """
        local_row = self.db.get_record(record.kind, record.id, session=session)
        local: Optional[SyncRecord] = None
        if local_row is not None:
            try:
                local = local_row.to_record()
            except ValidationError as e:
                raise SerializationError(record.id, summarize_validation_error(e))

        decision = resolve(local, record)

        if report is not None and is_true_conflict(local, record, cursor):
            report.conflicts += 1
            logger.warning(
                "Both sides changed %s %s since last sync; keeping the %s version",
                record.kind.value,
                record.id,
                "remote" if decision == ConflictDecision.ADOPT_REMOTE else "local",
            )

        if decision == ConflictDecision.ADOPT_REMOTE:
            if local_row is None:
                self.db.insert_record(record, session=session)
                if report is not None:
                    report.inserted += 1
                logger.debug("Added %s %s from remote", record.kind.value, record.id)
            else:
                self.db.overwrite_record(record, session=session)
                if report is not None:
                    report.updated += 1
                logger.debug("Updated %s %s from remote", record.kind.value, record.id)
        elif decision == ConflictDecision.DEFER_TO_NEXT_PUSH:
            if report is not None:
                report.deferred += 1
            logger.debug("Local %s %s is newer, leaving it for push", record.kind.value, record.id)
        elif report is not None:
            report.unchanged += 1

        if report is not None and decision != ConflictDecision.DEFER_TO_NEXT_PUSH:
            report.settled_ids.add(record.id)
        return decision

    def pull(
        self,
        kind: EntityKind,
        location_id: str,
        cursor: Optional[datetime],
        session: Optional[Session] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> PullReport:
        """Fetch and merge one entity kind.

        A network failure ends this kind's pull and is recorded on the
        report; it does not stop the caller from pulling other kinds.

        Raises:
            NotAuthenticatedError: If the remote session is invalid
            SyncCancelledError: If ``cancel`` fires between records
        """
        if session is None:
            with self.db.get_session() as s:
                return self.pull(kind, location_id, cursor, session=s, cancel=cancel)

        report = PullReport(kind=kind)
        try:
            records = self.fetch_since(kind, location_id, cursor, errors=report.errors)
        except NetworkError as e:
            logger.warning("Pull of %s failed: %s", kind.label, e)
            report.error = str(e)
            return report

        report.skipped = len(report.errors)
        report.fetched = len(records)
        conflict_cursor = cursor if cursor is not None and cursor > EPOCH else None

        for record in records:
            check_cancelled(cancel)
            if record.location_id != location_id:
                report.skipped += 1
                logger.warning(
                    "Skipping %s %s from another location", kind.value, record.id
                )
                continue
            try:
                self.merge(record, session, cursor=conflict_cursor, report=report)
            except SerializationError as e:
                report.skipped += 1
                report.errors.append((record.id, str(e)))
                logger.warning("Skipping %s: %s", kind.value, e)

        logger.info(
            "Pulled %s: %d fetched, %d added, %d updated, %d local newer",
            kind.label,
            report.fetched,
            report.inserted,
            report.updated,
            report.deferred,
        )
        return report

