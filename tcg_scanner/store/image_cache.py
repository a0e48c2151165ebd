"""Card image cache: one stored image per card key, first write wins."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Optional

from ..core.constants import SCANS_PREFIX
from ..core.keys import canonical_key, key_from_storage_identifier, storage_identifier
from ..core.types import ImagePayload
from ..utils.error_handler import StorageError
from ..utils.log import LoggerMixin
from .db import RecordStore
from .objects import ObjectStore


@dataclass
class PutResult:
    image_url: str
    created: bool


class ImageCacheStore(LoggerMixin):
    """Maps card keys to stored image URLs.

    ``card_images`` is the index; its primary key is the card key, so at most
    one image is ever recorded per key. ``put`` holds the write lock while it
    re-checks the index and uploads, so concurrent first commits for a new key
    resolve to the first writer's object.
    """

    def __init__(self, store: RecordStore, objects: ObjectStore, prefix: str = SCANS_PREFIX):
        self.store = store
        self.objects = objects
        self.prefix = prefix

    def lookup(self, key: str) -> Optional[str]:
        """Indexed lookup; returns the stored URL or None."""
        key = canonical_key(key)
        try:
            with self.store.connect() as conn:
                row = conn.execute(
                    "SELECT image_url FROM card_images WHERE card_key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError("Image index lookup failed", details={"card_key": key, "error": str(e)}) from e

        if row:
            self.logger.debug("Image cache hit", card_key=key)
            return row["image_url"]
        self.logger.debug("Image cache miss", card_key=key)
        return None

    def put(self, key: str, image: ImagePayload) -> PutResult:
        """
        Store ``image`` for ``key`` unless an image is already recorded.

        Returns:
            PutResult whose ``created`` is False when an existing URL was reused.

        Raises:
            StorageError: If the object or the index row cannot be written.
        """
        key = canonical_key(key)
        identifier = storage_identifier(key)
        context = self.log_start("image_put", card_key=key, size=len(image.data))

        try:
            with self.store.transaction() as conn:
                row = conn.execute(
                    "SELECT image_url FROM card_images WHERE card_key = ?", (key,)
                ).fetchone()
                if row:
                    self.log_success(context, created=False, reason="indexed")
                    return PutResult(image_url=row["image_url"], created=False)

                path = self.objects.find(self.prefix, identifier)
                created = False
                if path is None:
                    path = f"{self.prefix}/{identifier}.{image.extension}"
                    created = self.objects.write_new(path, image.data, image.mime_type)

                url = self.objects.public_url(path)
                conn.execute(
                    """
                    INSERT INTO card_images (card_key, storage_path, image_url, mime_type, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (key, path, url, image.mime_type, datetime.now(timezone.utc).isoformat()),
                )
        except (sqlite3.Error, OSError, ValueError) as e:
            self.log_error(context, e)
            raise StorageError("Failed to store card image", details={"card_key": key, "error": str(e)}) from e

        self.log_success(context, created=created, path=path)
        return PutResult(image_url=url, created=created)

    def backfill(self) -> Dict[str, int]:
        """
        Index objects that predate the index.

        One-time migration: every object under the prefix whose name maps back
        to a card key gets an index row unless the key is already indexed.
        """
        counts = {"indexed": 0, "skipped": 0, "unrecognized": 0}
        for path in self.objects.list(self.prefix):
            stem = PurePosixPath(path).stem
            key = key_from_storage_identifier(stem)
            if key is None:
                counts["unrecognized"] += 1
                self.logger.warning("Unrecognized object name during backfill", path=path)
                continue

            with self.store.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO card_images (card_key, storage_path, image_url, mime_type, created_at)
                    VALUES (?, ?, ?, NULL, ?)
                    """,
                    (key, path, self.objects.public_url(path), datetime.now(timezone.utc).isoformat()),
                )
                inserted = cursor.rowcount
            if inserted:
                counts["indexed"] += 1
            else:
                counts["skipped"] += 1

        self.logger.info("Image index backfill finished", **counts)
        return counts
