"""Cooperative cancellation for sync rounds."""

import threading
from typing import Optional

from .errors import SyncCancelledError


class CancellationToken:
    """Signal checked between phases and between per-record operations.

    Cancelling never interrupts an operation in flight; the round stops at
    the next check and fails without advancing the cursor.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelledError()


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Raise SyncCancelledError if ``token`` has been cancelled."""
    if token is not None:
        token.raise_if_cancelled()
