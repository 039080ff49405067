"""Progress reporting for deployment rounds."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncProgressEvent(str, Enum):
    """Events emitted while a deployment runs."""

    ROUND_START = "round_start"
    """A new apply round begins"""

    RESOURCE_COMPLETE = "resource_complete"
    """One resource was created, replaced or deleted"""

    RESOURCE_FAILED = "resource_failed"
    """One resource failed and is retried next round"""

    ROUND_COMPLETE = "round_complete"
    """All resources of the round were processed"""

    CONVERGED = "converged"
    """Device matches the desired state"""


@dataclass
class SyncProgressInfo:
    """Snapshot passed to progress callbacks."""

    event: SyncProgressEvent
    round: int = 0
    processed: int = 0
    total: int = 0
    path: str = ""
    action: str = ""
    error: str = ""

    @property
    def percent(self) -> int:
        """Share of the round that is done, 0-100."""
        if self.total <= 0:
            return 100
        return self.processed * 100 // self.total


class SyncProgressTracker:
    """Counts processed resources and notifies a callback.

    Progress is advisory and never changes what gets deployed: errors
    raised by the callback are logged and dropped.
    """

    def __init__(self, callback: Optional[Callable[[SyncProgressInfo], None]] = None):
        self.callback = callback
        self.round = 0
        self.processed = 0
        self.total = 0
        self.failed = 0

    def _emit(self, event: SyncProgressEvent, **fields: str) -> None:
        if self.callback is None:
            return
        info = SyncProgressInfo(
            event=event,
            round=self.round,
            processed=self.processed,
            total=self.total,
            **fields,
        )
        try:
            self.callback(info)
        except Exception as e:
            logger.warning("Progress callback failed on %s: %s", event.value, e)

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return self.processed * 100 // self.total

    def start_round(self, round_number: int, total: int) -> None:
        self.round = round_number
        self.total = total
        self.processed = 0
        self.failed = 0
        self._emit(SyncProgressEvent.ROUND_START)

    def resource_done(self, path: str, action: str) -> None:
        self.processed += 1
        self._emit(SyncProgressEvent.RESOURCE_COMPLETE, path=path, action=action)

    def resource_failed(self, path: str, action: str, error: str) -> None:
        self.processed += 1
        self.failed += 1
        self._emit(
            SyncProgressEvent.RESOURCE_FAILED, path=path, action=action, error=error
        )

    def finish_round(self) -> None:
        self._emit(SyncProgressEvent.ROUND_COMPLETE)

    def converged(self) -> None:
        self._emit(SyncProgressEvent.CONVERGED)
