"""
Storage roots for uploaded media

Three locations live under one media root:
transient uploads, display images, and thumbnails.
Every path handed out is relative to the media root.
"""

import asyncio
import logging
import os
import secrets
import time
from pathlib import Path, PurePosixPath
from typing import List, Optional

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.constants import (
    DERIVATIVE_EXTENSION,
    DISPLAY_DIR,
    MIME_EXTENSIONS,
    TEMP_DIR,
    THUMBNAIL_DIR,
    THUMBNAIL_PREFIX,
)
from mangrovewatch.core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)


class MediaStorage:
    """
    File-system media storage.

    ``save``/``remove`` block; ``write``/``delete`` run them in a worker
    thread. OSError is always re-raised as StorageUnavailable.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        public_base_url: Optional[str] = None,
        config: Optional[Settings] = None
    ):
        config = config or default_settings
        self.root = Path(root if root is not None else config.media_root).resolve()
        self.public_base_url = (public_base_url or config.public_base_url).rstrip("/")

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @staticmethod
    def new_upload_name(original_filename: str, content_type: str) -> str:
        """
        Collision-resistant transient filename.

        128 random bits plus a millisecond timestamp; the original extension
        is kept, or derived from the MIME type when the filename has none.
        """
        extension = os.path.splitext(original_filename or "")[1].lower()
        if not extension:
            extension = MIME_EXTENSIONS.get(content_type, "")
        return f"{secrets.token_hex(16)}-{int(time.time() * 1000)}{extension}"

    @staticmethod
    def base_name(stored_filename: str) -> str:
        return os.path.splitext(stored_filename)[0]

    @staticmethod
    def temp_path(stored_filename: str) -> str:
        return f"{TEMP_DIR}/{stored_filename}"

    @staticmethod
    def display_path(base_name: str) -> str:
        return f"{DISPLAY_DIR}/{base_name}{DERIVATIVE_EXTENSION}"

    @staticmethod
    def thumbnail_path(base_name: str) -> str:
        return f"{THUMBNAIL_DIR}/{THUMBNAIL_PREFIX}{base_name}{DERIVATIVE_EXTENSION}"

    @staticmethod
    def thumbnail_for(display_path: str) -> str:
        """Thumbnail path belonging to a display image path."""
        name = PurePosixPath(display_path).name
        return f"{THUMBNAIL_DIR}/{THUMBNAIL_PREFIX}{name}"

    def absolute(self, relative_path: str) -> Path:
        """Resolve a storage-relative path, refusing anything outside the root."""
        candidate = (self.root / relative_path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise StorageUnavailable(f"Path escapes media root: {relative_path}")
        return candidate

    def public_url(self, relative_path: str) -> str:
        return f"{self.public_base_url}/{relative_path.lstrip('/')}"


    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def ensure_directories(self) -> None:
        """Create the three storage roots."""
        try:
            for directory in (TEMP_DIR, DISPLAY_DIR, THUMBNAIL_DIR):
                (self.root / directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot prepare media directories: {e}")

    def save(self, relative_path: str, data: bytes) -> int:
        """
        Write bytes to a storage-relative path (blocking).

        Returns:
            Number of bytes written
        """
        path = self.absolute(relative_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to write {relative_path}: {e}")
            raise StorageUnavailable(f"Cannot write {relative_path}: {e}")
        return len(data)

    def remove(self, relative_path: str) -> bool:
        """
        Delete a stored file (blocking).

        Returns:
            True if a file was removed, False if it did not exist
        """
        path = self.absolute(relative_path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Could not delete {relative_path}: {e}")
            raise StorageUnavailable(f"Cannot delete {relative_path}: {e}")
        return True

    def exists(self, relative_path: str) -> bool:
        return self.absolute(relative_path).is_file()

    async def write(self, relative_path: str, data: bytes) -> int:
        return await asyncio.to_thread(self.save, relative_path, data)

    async def delete(self, relative_path: str) -> bool:
        return await asyncio.to_thread(self.remove, relative_path)

    def list_files(self, directory: str) -> List[str]:
        """Storage-relative paths of the files in one of the roots."""
        folder = self.root / directory
        if not folder.is_dir():
            return []
        return sorted(
            f"{directory}/{entry.name}" for entry in folder.iterdir() if entry.is_file()
        )

    async def purge_transient(self, max_age_seconds: float) -> int:
        """
        Delete transient uploads older than ``max_age_seconds``.

        Covers processes that died between writing and cleaning up a
        transient file.
        """
        cutoff = time.time() - max_age_seconds

        def _purge() -> int:
            removed = 0
            for relative_path in self.list_files(TEMP_DIR):
                if self.absolute(relative_path).stat().st_mtime < cutoff:
                    removed += int(self.remove(relative_path))
            return removed

        try:
            removed = await asyncio.to_thread(_purge)
        except OSError as e:
            raise StorageUnavailable(f"Cannot purge transient uploads: {e}")

        if removed:
            logger.info(f"Purged {removed} stale transient uploads")
        return removed
