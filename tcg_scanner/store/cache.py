"""SQLite caches for scan results (by photo digest) and price quotes (by card)."""

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..core.types import PriceQuote, ScanResult, ScanSource
from ..utils.config import settings
from ..utils.log import get_logger
from .db import RecordStore


class ScanResultCache:
    """Remembers successful scan results for identical photos.

    A resubmitted photo (same bytes, same game hint) within the expiry window
    is answered from here without any provider call. Failed scans are never
    cached.
    """

    def __init__(self, store: RecordStore, expire_hours: Optional[int] = None):
        self.logger = get_logger(__name__)
        self.store = store
        self.expire_hours = expire_hours if expire_hours is not None else settings.SCAN_CACHE_EXPIRE_HOURS

    def get(self, image_digest: str, game_hint: Optional[str] = None) -> Optional[ScanResult]:
        """Return a cached result marked ``source=cache``, or None."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self.store.connect() as conn:
                row = conn.execute(
                    """
                    SELECT result_json FROM scan_cache
                    WHERE image_digest = ? AND game_hint = ? AND expires_at > ?
                    """,
                    (image_digest, game_hint or "", now),
                ).fetchone()
        except sqlite3.Error as e:
            self.logger.error("Error reading scan cache", image_digest=image_digest, error=str(e))
            return None

        if not row:
            self.logger.debug("Scan cache miss", image_digest=image_digest)
            return None

        try:
            result = ScanResult.from_payload(json.loads(row["result_json"]))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("Discarding unreadable scan cache entry", image_digest=image_digest, error=str(e))
            return None

        result.source = ScanSource.CACHE
        self.logger.info("Scan cache hit", image_digest=image_digest, card_name=result.card_name)
        return result

    def set(self, image_digest: str, game_hint: Optional[str], result: ScanResult) -> None:
        """Insert or refresh the cached result for a photo."""
        if result.error:
            return

        now = datetime.now(timezone.utc)
        expires = now + timedelta(hours=self.expire_hours)
        try:
            with self.store.connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO scan_cache
                    (image_digest, game_hint, result_json, created_at, expires_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        image_digest,
                        game_hint or "",
                        json.dumps(result.to_payload()),
                        now.isoformat(),
                        expires.isoformat(),
                    ),
                )
            self.logger.debug("Scan result cached", image_digest=image_digest)
        except sqlite3.Error as e:
            self.logger.error("Error writing scan cache", image_digest=image_digest, error=str(e))

    def purge_expired(self) -> int:
        """Delete expired rows; returns the number removed."""
        now = datetime.now(timezone.utc).isoformat()
        with self.store.connect() as conn:
            cursor = conn.execute("DELETE FROM scan_cache WHERE expires_at <= ?", (now,))
            removed = cursor.rowcount
        self.logger.debug("Expired scan cache purged", removed=removed)
        return removed


class PriceQuoteCache:
    """Remembers catalog quotes per identified card.

    Keyed by the attribute card key of a raw candidate, so any photo that
    identifies as the same printing reuses the quote until it expires. Empty
    quotes are never cached.
    """

    def __init__(self, store: RecordStore, expire_hours: Optional[int] = None):
        self.logger = get_logger(__name__)
        self.store = store
        self.expire_hours = expire_hours if expire_hours is not None else settings.SCAN_CACHE_EXPIRE_HOURS

    def get(self, card_key: str) -> Optional[PriceQuote]:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self.store.connect() as conn:
                row = conn.execute(
                    "SELECT quote_json FROM price_cache WHERE card_key = ? AND expires_at > ?",
                    (card_key, now),
                ).fetchone()
        except sqlite3.Error as e:
            self.logger.error("Error reading price cache", card_key=card_key, error=str(e))
            return None

        if not row:
            self.logger.debug("Price cache miss", card_key=card_key)
            return None

        try:
            quote = PriceQuote(**json.loads(row["quote_json"]))
        except (ValueError, TypeError) as e:
            self.logger.warning("Discarding unreadable price cache entry", card_key=card_key, error=str(e))
            return None

        self.logger.info("Price cache hit", card_key=card_key, source=quote.source)
        return quote

    def set(self, card_key: str, quote: Optional[PriceQuote]) -> None:
        if quote is None or quote.is_empty:
            return

        now = datetime.now(timezone.utc)
        expires = now + timedelta(hours=self.expire_hours)
        try:
            with self.store.connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO price_cache (card_key, quote_json, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (card_key, json.dumps(asdict(quote)), now.isoformat(), expires.isoformat()),
                )
            self.logger.debug("Price quote cached", card_key=card_key)
        except sqlite3.Error as e:
            self.logger.error("Error writing price cache", card_key=card_key, error=str(e))

    def purge_expired(self) -> int:
        now = datetime.now(timezone.utc).isoformat()
        with self.store.connect() as conn:
            removed = conn.execute("DELETE FROM price_cache WHERE expires_at <= ?", (now,)).rowcount
        self.logger.debug("Expired price cache purged", removed=removed)
        return removed
