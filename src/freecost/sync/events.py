"""Progress and completion messages for sync rounds.

The engine publishes messages onto an EventChannel; any number of
observers (a CLI progress bar, a GUI, tests, or nobody) subscribe and
drain their own queue at their own pace.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .orchestrator import SyncResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncProgress:
    """A round reached a new stage."""

    stage: str
    percent: int


@dataclass(frozen=True)
class SyncCompleted:
    """A round finished (successfully or not)."""

    result: "SyncResult"


SyncEvent = Union[SyncProgress, SyncCompleted]


class EventChannel:
    """Fan-out channel: every subscriber gets every message published after it subscribed."""

    def __init__(self) -> None:
        self._subscribers: list[queue.Queue] = []
        self._lock = threading.Lock()

    def subscribe(self, maxsize: int = 0) -> "queue.Queue[SyncEvent]":
        """Register a new observer queue.

        Args:
            maxsize: Queue bound; messages to a full queue are dropped

        Returns:
            The queue to drain
        """
        q: queue.Queue = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    def publish(self, message: SyncEvent) -> None:
        """Push a message to every subscriber without blocking."""
        with self._lock:
            subscribers = list(self._subscribers)
        for q in subscribers:
            try:
                q.put_nowait(message)
            except queue.Full:
                logger.debug("Dropping %s for a full subscriber queue", type(message).__name__)

    @staticmethod
    def drain(q: queue.Queue) -> list[SyncEvent]:
        """Return every message currently waiting in ``q``."""
        messages = []
        while True:
            try:
                messages.append(q.get_nowait())
            except queue.Empty:
                return messages
