"""Daily conversion usage counter."""

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    day: date
    conversions: int
    total_bytes: int

    @property
    def total_megabytes(self) -> float:
        return self.total_bytes / (1024 * 1024)


class UsageCounter:
    """Counts conversions and processed input bytes per calendar day.

    Totals reset the first time the counter is touched on a new day, as
    reported by ``today``. All reads and writes happen under one lock.

    Args:
        today: Clock returning the current date (injectable for tests)
    """

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today
        self._lock = threading.Lock()
        self._day = today()
        self._conversions = 0
        self._total_bytes = 0

    def _roll(self) -> None:
        current = self._today()
        if current != self._day:
            logger.info(
                "Usage for %s: %d conversions, %d bytes",
                self._day,
                self._conversions,
                self._total_bytes,
            )
            self._day = current
            self._conversions = 0
            self._total_bytes = 0

    def record(self, size: int) -> UsageSnapshot:
        """Record one conversion of ``size`` input bytes."""
        if size < 0:
            raise ValueError("size must be non-negative")
        with self._lock:
            self._roll()
            self._conversions += 1
            self._total_bytes += size
            snapshot = UsageSnapshot(self._day, self._conversions, self._total_bytes)
        logger.info(
            "Usage: %d conversions, %.2fMB processed",
            snapshot.conversions,
            snapshot.total_megabytes,
        )
        return snapshot

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            self._roll()
            return UsageSnapshot(self._day, self._conversions, self._total_bytes)
