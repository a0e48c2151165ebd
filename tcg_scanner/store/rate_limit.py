"""Per-user scan quota backed by the shared record store."""

import math
import sqlite3
import time
from typing import Callable, Optional

from ..core.constants import RATE_LIMIT_MAX_SCANS, RATE_LIMIT_WINDOW_S
from ..core.types import RateDecision
from ..utils.error_handler import RecordStoreError
from ..utils.log import LoggerMixin
from .db import RecordStore


class ScanRateLimiter(LoggerMixin):
    """
    Fixed-window limiter: ``max_scans`` admitted per user per ``window_s``.

    The window opens lazily on a user's first scan and resets once it has
    fully elapsed. Counts live in ``scan_rate_limits`` and are read and
    updated inside one write transaction, so every worker sees the same count.
    """

    def __init__(
        self,
        store: RecordStore,
        max_scans: int = RATE_LIMIT_MAX_SCANS,
        window_s: float = RATE_LIMIT_WINDOW_S,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.max_scans = max_scans
        self.window_s = window_s
        self._clock = clock or time.time

    def admit(self, user_id: str) -> RateDecision:
        """
        Count one scan attempt for ``user_id``.

        Returns:
            RateDecision; on rejection ``retry_after_ms`` is the time left in
            the current window and is always positive.
        """
        now = self._clock()
        try:
            with self.store.transaction() as conn:
                row = conn.execute(
                    "SELECT scan_count, window_start FROM scan_rate_limits WHERE user_identifier = ?",
                    (user_id,),
                ).fetchone()

                if row is None:
                    conn.execute(
                        "INSERT INTO scan_rate_limits (user_identifier, scan_count, window_start) VALUES (?, 1, ?)",
                        (user_id, now),
                    )
                    return RateDecision(allowed=True, remaining=self.max_scans - 1)

                window_end = row["window_start"] + self.window_s
                if now >= window_end:
                    conn.execute(
                        "UPDATE scan_rate_limits SET scan_count = 1, window_start = ? WHERE user_identifier = ?",
                        (now, user_id),
                    )
                    return RateDecision(allowed=True, remaining=self.max_scans - 1)

                if row["scan_count"] >= self.max_scans:
                    retry_after_ms = max(1, math.ceil((window_end - now) * 1000))
                    self.logger.info(
                        "Scan quota exhausted",
                        user_id=user_id,
                        retry_after_ms=retry_after_ms,
                    )
                    return RateDecision(allowed=False, remaining=0, retry_after_ms=retry_after_ms)

                count = row["scan_count"] + 1
                conn.execute(
                    "UPDATE scan_rate_limits SET scan_count = ? WHERE user_identifier = ?",
                    (count, user_id),
                )
                return RateDecision(allowed=True, remaining=self.max_scans - count)

        except sqlite3.Error as e:
            self.logger.error("Rate limit check failed", user_id=user_id, error=str(e))
            raise RecordStoreError("Rate limit store unavailable", details={"user_id": user_id}) from e

    def reset(self, user_id: str) -> None:
        """Drop a user's window."""
        with self.store.transaction() as conn:
            conn.execute("DELETE FROM scan_rate_limits WHERE user_identifier = ?", (user_id,))
