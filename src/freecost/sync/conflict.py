"""Conflict resolution for pulled records.

Whole-record last-writer-wins: the version with the greater modified_at
wins and nothing is merged. There is no conflict log; a record changed on
both sides since the last sync is only flagged (see is_true_conflict) and
the older side's change is discarded.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from ..db.schemas import SyncRecord


class ConflictDecision(str, Enum):
    """What to do with a pulled record."""

    ADOPT_REMOTE = "adopt_remote"  # Remote newer or not present locally
    DEFER_TO_NEXT_PUSH = "defer_to_next_push"  # Local newer, push uploads it
    EQUAL = "equal"  # Same modified_at, nothing to do


def resolve(local: Optional[SyncRecord], remote: SyncRecord) -> ConflictDecision:
    """Decide between the local and remote version of one record.

    Args:
        local: Local version (None if the record only exists remotely)
        remote: Remote version with the same identifier

    Returns:
        ConflictDecision
    """
    if local is None:
        return ConflictDecision.ADOPT_REMOTE
    if remote.modified_at > local.modified_at:
        return ConflictDecision.ADOPT_REMOTE
    if local.modified_at > remote.modified_at:
        return ConflictDecision.DEFER_TO_NEXT_PUSH
    return ConflictDecision.EQUAL


def is_true_conflict(
    local: Optional[SyncRecord],
    remote: SyncRecord,
    cursor: Optional[datetime],
) -> bool:
    """True if both versions changed after the cursor.

    Such pairs are still settled by resolve(); this only lets callers
    report that one side's change is being discarded.
    """
    if local is None or cursor is None:
        return False
    return local.modified_at > cursor and remote.modified_at > cursor
