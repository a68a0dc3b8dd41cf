"""Migration of local photo files to remote object storage.

Asset fields hold one of three things: nothing, a remote URL, or a local
path. Local paths are uploaded to ``{Kind}/{entityId}/{filename}`` and the
field is rewritten to the returned URL. A field holding a URL is never
turned back into a local path.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from ..db.schemas import EntityKind
from ..db.sqlite import Database
from ..utils import utcnow
from .cancellation import CancellationToken, check_cancelled
from .errors import NetworkError
from .storage import ObjectStorage, is_remote_url

logger = logging.getLogger(__name__)


class AssetState(str, Enum):
    EMPTY = "empty"
    REMOTE_URL = "remote_url"
    LOCAL_PATH = "local_path"


def classify_asset(value: Optional[str]) -> AssetState:
    """Classify an asset field value."""
    if value is None or not value.strip():
        return AssetState.EMPTY
    if is_remote_url(value.strip()):
        return AssetState.REMOTE_URL
    return AssetState.LOCAL_PATH


@dataclass
class MigrationReport:
    """Outcome of one migration pass."""

    checked: int = 0
    migrated: int = 0
    skipped: int = 0
    migrated_ids: set[str] = field(default_factory=set)
    failures: list[tuple[str, str]] = field(default_factory=list)


class AssetMigrator:
    """Uploads locally referenced photos and rewrites their fields to URLs."""

    # Entity kinds that carry an asset, and the field holding it
    ASSET_FIELDS: dict[EntityKind, str] = {
        EntityKind.RECIPE: "photo_url",
        EntityKind.ENTREE: "photo_url",
    }

    def __init__(
        self,
        storage: ObjectStorage,
        db: Database,
        photo_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize asset migrator.

        Args:
            storage: Remote object storage
            db: Local database
            photo_dir: Directory that bare filenames are resolved in
            clock: Source of the modification time stamped on rewritten records
        """
        self.storage = storage
        self.db = db
        self.photo_dir = Path(photo_dir).expanduser() if photo_dir else None
        self.clock = clock

    def resolve_local_path(self, value: str) -> Path:
        """Turn an asset field value into a filesystem path."""
        path = Path(value.strip()).expanduser()
        if self.photo_dir is not None and not path.is_absolute() and path.name == str(path):
            return self.photo_dir / path
        return path

    def migrate(
        self,
        location_id: str,
        session: Optional[Session] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> MigrationReport:
        """Upload every pending local asset of a location.

        Per-asset failures are recorded on the report and leave the local
        path in place so the next run retries it.

        Raises:
            NotAuthenticatedError: If the remote session is invalid
            SyncCancelledError: If ``cancel`` fires between assets
        """
        if session is None:
            with self.db.get_session() as s:
                return self.migrate(location_id, session=s, cancel=cancel)

        report = MigrationReport()
        for kind, field_name in self.ASSET_FIELDS.items():
            for row in self.db.list_records(kind, location_id, session=session):
                check_cancelled(cancel)
                report.checked += 1
                value = getattr(row, field_name)
                if classify_asset(value) != AssetState.LOCAL_PATH:
                    continue

                local_path = self.resolve_local_path(value)
                if not local_path.is_file():
                    report.skipped += 1
                    logger.warning(
                        "Photo for %s %s not found at %s", kind.value, row.id, local_path
                    )
                    continue

                logical_path = f"{kind.storage_folder}/{row.id}/{local_path.name}"
                try:
                    url = self.storage.upload(local_path, logical_path)
                except (NetworkError, OSError) as e:
                    report.failures.append((row.id, str(e)))
                    logger.warning("Photo upload for %s %s failed: %s", kind.value, row.id, e)
                    continue

                self.db.update_field(
                    kind, row.id, field_name, url, session=session, modified_at=self.clock()
                )
                report.migrated += 1
                report.migrated_ids.add(row.id)

        if report.migrated or report.failures:
            logger.info(
                "Migrated %d photos (%d failed, %d missing)",
                report.migrated,
                len(report.failures),
                report.skipped,
            )
        return report

    def migrate_pending_assets(
        self,
        location_id: str,
        session: Optional[Session] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Upload pending local assets and return how many were migrated."""
        return self.migrate(location_id, session=session, cancel=cancel).migrated
