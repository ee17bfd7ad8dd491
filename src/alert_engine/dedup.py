"""Alert Management Engine - Deduplication."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from .clock import Clock, SystemClock
from .config import DEFAULT_DEDUP_WINDOW_SECONDS
from .models import AlertCandidate, DuplicateCheck

logger = logging.getLogger(__name__)

DedupKey = Tuple[str, Optional[str], str, str]


@dataclass
class _DedupRecord:
    count: int
    first_seen: datetime
    last_seen: datetime


class Deduplicator:
    """Collapses repeated identical signals within a time window.

    Signals are identical when (source, symbol, severity, title) match.
    The window is measured from the first sighting of a key; repeats do
    not extend it.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
    ) -> None:
        self._clock = clock or SystemClock()
        self._window = timedelta(seconds=window_seconds)
        self._records: Dict[DedupKey, _DedupRecord] = {}
        self._lock = threading.Lock()

    @staticmethod
    def generate_key(candidate: AlertCandidate) -> DedupKey:
        return (candidate.source, candidate.symbol, candidate.severity.value, candidate.title)

    def check_duplicate(self, candidate: AlertCandidate) -> DuplicateCheck:
        """Record a sighting of the candidate and report whether it repeats.

        Args:
            candidate: The incoming signal.

        Returns:
            DuplicateCheck with the running occurrence count.
        """
        key = self.generate_key(candidate)
        now = self._clock.now()

        with self._lock:
            existing = self._records.get(key)
            if existing is not None and now - existing.first_seen < self._window:
                existing.count += 1
                existing.last_seen = now
                logger.debug("Duplicate alert %s (count=%d)", key, existing.count)
                return DuplicateCheck(
                    is_duplicate=True, count=existing.count, duplicate_of_key=repr(key)
                )

            self._records[key] = _DedupRecord(count=1, first_seen=now, last_seen=now)
            return DuplicateCheck(is_duplicate=False, count=1)

    def cleanup(self) -> int:
        """Drop records not seen for longer than the window.

        Returns:
            Number of records removed.
        """
        now = self._clock.now()
        with self._lock:
            stale = [k for k, r in self._records.items() if now - r.last_seen > self._window]
            for key in stale:
                del self._records[key]
        if stale:
            logger.debug("Removed %d expired dedup records", len(stale))
        return len(stale)

    def get_stats(self) -> Dict[str, int]:
        """Get the number of tracked groups and the sightings they absorbed."""
        with self._lock:
            return {
                "total_groups": len(self._records),
                "total_alerts": sum(r.count for r in self._records.values()),
            }
