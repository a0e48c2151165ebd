"""Object storage for card images."""

import os
import tempfile
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import quote

from ..utils.config import settings
from ..utils.log import get_logger


class ObjectStore:
    """Minimal object storage contract used by the image cache."""

    def write_new(self, path: str, data: bytes, content_type: str) -> bool:
        """Create ``path``; return False without writing if it already exists."""
        raise NotImplementedError

    def find(self, prefix: str, stem: str) -> Optional[str]:
        """Path of an object under ``prefix`` whose name without extension is ``stem``."""
        raise NotImplementedError

    def list(self, prefix: str) -> Iterator[str]:
        raise NotImplementedError

    def public_url(self, path: str) -> str:
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Filesystem-backed store served under ``base_url``.

    New objects are written to a temp file and hard-linked into place, so a
    reader never sees a partial file and an existing object is never replaced.
    """

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.logger = get_logger(__name__)
        self.root = Path(root or settings.OBJECT_STORE_DIR)
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Object path escapes storage root: {path}")
        return target

    def write_new(self, path: str, data: bytes, content_type: str) -> bool:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists():
            return False

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            try:
                os.link(tmp_name, target)
            except FileExistsError:
                return False
        finally:
            os.unlink(tmp_name)

        self.logger.debug("Object stored", path=path, size=len(data), content_type=content_type)
        return True

    def find(self, prefix: str, stem: str) -> Optional[str]:
        directory = self._resolve(prefix)
        if not directory.is_dir():
            return None
        for candidate in sorted(directory.glob(f"{stem}.*")):
            if candidate.stem == stem and candidate.is_file():
                return f"{prefix}/{candidate.name}"
        return None

    def list(self, prefix: str) -> Iterator[str]:
        directory = self._resolve(prefix)
        if not directory.is_dir():
            return
        for entry in sorted(directory.iterdir()):
            if entry.is_file() and not entry.name.startswith("."):
                yield f"{prefix}/{entry.name}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"
