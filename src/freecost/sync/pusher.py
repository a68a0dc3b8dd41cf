"""Push side of delta sync.

Uploads local records changed after the cursor with a single bulk upsert
per entity kind. The upsert overwrites by identifier, so repeating a push
with the same cursor is harmless.
"""

import logging
from collections.abc import Collection
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..db.schemas import EntityKind, SyncRecord
from ..db.sqlite import Database
from .cancellation import CancellationToken, check_cancelled
from .errors import NetworkError, summarize_validation_error
from .remote import RemoteClient

logger = logging.getLogger(__name__)


class DeltaPusher:
    """Selects local deltas and uploads them to the remote store."""

    def __init__(self, remote: RemoteClient, db: Database):
        """Initialize delta pusher.

        Args:
            remote: Connected remote client
            db: Local database
        """
        self.remote = remote
        self.db = db

    def select_since(
        self,
        kind: EntityKind,
        location_id: str,
        cursor: Optional[datetime],
        session: Session,
        exclude_ids: Collection[str] = (),
        errors: Optional[list[tuple[str, str]]] = None,
    ) -> list[SyncRecord]:
        """Local records of ``kind`` modified strictly after ``cursor``.

        Args:
            kind: Entity kind to select
            location_id: Tenant/location to scope to
            cursor: Exclusive lower bound (None selects every record)
            session: Local unit of work
            exclude_ids: Identifiers to leave out
            errors: List collecting (id, message) for rows that were skipped

        Returns:
            Wire records, oldest change first
        """
        rows = self.db.list_records(kind, location_id, modified_after=cursor, session=session)

        records = []
        for row in rows:
            if row.id in exclude_ids:
                continue
            try:
                records.append(row.to_record())
            except ValidationError as e:
                message = summarize_validation_error(e)
                if errors is not None:
                    errors.append((row.id, message))
                logger.warning("Not pushing malformed %s %s: %s", kind.value, row.id, message)
        return records

    def push_since(
        self,
        kind: EntityKind,
        location_id: str,
        cursor: Optional[datetime],
        session: Optional[Session] = None,
        exclude_ids: Collection[str] = frozenset(),
        cancel: Optional[CancellationToken] = None,
        errors: Optional[list[tuple[str, str]]] = None,
    ) -> int:
        """Upload every local delta of one kind in one bulk upsert.

        Returns:
            Number of records uploaded

        Raises:
            NetworkError: If the upsert fails
            NotAuthenticatedError: If the remote session is invalid
            SyncCancelledError: If ``cancel`` fires before the upload
        """
        if session is None:
            with self.db.get_session() as s:
                return self.push_since(
                    kind,
                    location_id,
                    cursor,
                    session=s,
                    exclude_ids=exclude_ids,
                    cancel=cancel,
                    errors=errors,
                )

        records = self.select_since(kind, location_id, cursor, session, exclude_ids, errors)
        if not records:
            logger.debug("No local %s to push", kind.label)
            return 0

        check_cancelled(cancel)
        result = self.remote.upsert_rows(kind.table, [r.to_wire() for r in records])
        if not result.success:
            raise NetworkError(f"Push of {kind.label} failed: {result.error}")

        logger.info("Pushed %d %s", len(records), kind.label)
        return len(records)
