"""Persistence of the sync cursor.

The cursor is the single "last successful sync time" of the installation:
anything modified strictly after it still needs to be pulled or pushed.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..utils import EPOCH, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def effective_cursor(tenant_is_locally_empty: bool, stored: Optional[datetime]) -> datetime:
    """Pick the cursor a round should start from.

    A tenant with no local records always gets a full resync from the epoch,
    even when a cursor survived on disk (e.g. after the local data was wiped).

    Args:
        tenant_is_locally_empty: True if the active location has no local records
        stored: Persisted cursor, or None if there is none

    Returns:
        EPOCH or the stored cursor
    """
    if tenant_is_locally_empty or stored is None:
        return EPOCH
    return stored


class CursorStore:
    """Loads and saves the cursor as an ISO-8601 timestamp in a small text file."""

    def __init__(self, path: Path):
        """Initialize cursor store.

        Args:
            path: File holding the cursor
        """
        self.path = Path(path)

    def load(self) -> Optional[datetime]:
        """Read the persisted cursor.

        Returns:
            The cursor, or None if the file is absent, unreadable or corrupt
        """
        if not self.path.exists():
            logger.info("No cursor at %s - next pull downloads all records", self.path)
            return None

        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read cursor file %s: %s", self.path, e)
            return None

        cursor = parse_timestamp(text)
        if cursor is None:
            logger.warning("Ignoring unparsable cursor %r in %s", text[:64], self.path)
            return None

        logger.debug("Loaded cursor %s", format_timestamp(cursor))
        return cursor

    def save(self, cursor: datetime) -> bool:
        """Overwrite the persisted cursor.

        Failure is logged, not raised: a lost cursor only means the next
        round repeats work, which is idempotent.

        Returns:
            True if the cursor was written
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(format_timestamp(cursor), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to save cursor to %s: %s", self.path, e)
            return False

        logger.debug("Saved cursor %s", format_timestamp(cursor))
        return True

    def advance(self, cursor: datetime) -> datetime:
        """Save ``cursor`` unless that would move the stored cursor backwards.

        Returns:
            The cursor value now in effect
        """
        stored = self.load()
        if stored is not None and cursor < stored:
            logger.warning(
                "Refusing to move cursor back from %s to %s",
                format_timestamp(stored),
                format_timestamp(cursor),
            )
            return stored
        self.save(cursor)
        return cursor

    def clear(self) -> None:
        """Remove the cursor so the next round is a full resync."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
