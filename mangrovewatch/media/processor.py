"""
Upload pipeline for report photos

Validates a batch of uploads, stores each one transiently, extracts EXIF
metadata, and renders the durable display image and thumbnail. A batch is
accepted whole or not at all: any failure removes every artifact the batch
produced.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.exceptions import (
    MediaError,
    PayloadTooLarge,
    TooManyFiles,
    TranscodeFailed,
    UnsupportedMediaType,
    ValidationError,
)
from mangrovewatch.media.metadata import extract_metadata
from mangrovewatch.media.models import Photo, UploadedFile
from mangrovewatch.media.storage import MediaStorage
from mangrovewatch.media.transcode import render_derivatives

logger = logging.getLogger(__name__)


class MediaProcessor:
    """
    Turns uploaded images into Photo records.

    Files of one batch are processed concurrently in worker threads; the
    accept/reject decision is taken once every file has finished.
    """

    def __init__(
        self,
        storage: Optional[MediaStorage] = None,
        config: Optional[Settings] = None
    ):
        self.config = config or default_settings
        self.storage = storage or MediaStorage(config=self.config)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_batch(self, files: Sequence[UploadedFile]) -> None:
        """
        Check count, MIME type and size of every file before anything is stored.

        Raises:
            TooManyFiles: more files than allowed per upload
            UnsupportedMediaType / PayloadTooLarge: first offending file,
                with every offending file listed in ``failed_files``
            ValidationError: an empty file
        """
        if len(files) > self.config.max_upload_files:
            raise TooManyFiles(len(files), self.config.max_upload_files)

        allowed = {mime.lower() for mime in self.config.allowed_mime_types}
        errors: List[MediaError] = []

        for upload in files:
            if not upload.data:
                raise ValidationError(
                    f"{upload.filename}: file is empty",
                    details={"filename": upload.filename},
                )
            if (upload.content_type or "").lower() not in allowed:
                errors.append(UnsupportedMediaType(upload.filename, upload.content_type))
            elif upload.byte_size > self.config.max_upload_bytes:
                errors.append(
                    PayloadTooLarge(upload.filename, upload.byte_size, self.config.max_upload_bytes)
                )

        if errors:
            raise self._combine(errors)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_batch(self, files: Sequence[UploadedFile]) -> List[Photo]:
        """
        Validate and process a batch of uploads.

        Args:
            files: Uploads as decoded by the HTTP layer

        Returns:
            One Photo per upload, in input order

        Raises:
            MediaError: the batch was rejected; no artifact of it remains
        """
        self.validate_batch(files)
        if not files:
            return []

        produced: List[str] = []
        futures = [
            asyncio.ensure_future(asyncio.to_thread(self._process_file, upload, produced))
            for upload in files
        ]

        try:
            results = await asyncio.shield(asyncio.gather(*futures, return_exceptions=True))
        except asyncio.CancelledError:
            # Worker threads cannot be interrupted; wait for them before cleaning up
            await asyncio.gather(*futures, return_exceptions=True)
            removed = await asyncio.to_thread(self._remove_all, produced)
            logger.warning(f"Upload batch cancelled; removed {removed} derivative files")
            raise

        failures: List[MediaError] = []
        for upload, result in zip(files, results):
            if isinstance(result, MediaError):
                failures.append(result)
            elif isinstance(result, BaseException):
                logger.error(f"Unexpected failure processing {upload.filename}: {result!r}")
                failure = TranscodeFailed(upload.filename, str(result) or type(result).__name__)
                failure.__cause__ = result
                failures.append(failure)

        if failures:
            removed = await asyncio.to_thread(self._remove_all, produced)
            logger.warning(
                f"Rejected upload batch of {len(files)} files "
                f"({len(failures)} failed, {removed} derivatives removed)"
            )
            raise self._combine(failures)

        logger.info(f"Accepted upload batch of {len(results)} photos")
        return list(results)

    def _process_file(self, upload: UploadedFile, produced: List[str]) -> Photo:
        """
        Process one upload (runs in a worker thread).

        Every durable path is appended to ``produced`` before it is written,
        so the batch can remove it even if the write fails halfway.
        """
        storage = self.storage
        stored_name = storage.new_upload_name(upload.filename, upload.content_type)
        base_name = storage.base_name(stored_name)
        temp_path = storage.temp_path(stored_name)
        display_path = storage.display_path(base_name)
        thumbnail_path = storage.thumbnail_path(base_name)

        try:
            storage.save(temp_path, upload.data)
            metadata = extract_metadata(upload.data, upload.filename, upload.content_type)
            display_bytes, thumbnail_bytes = render_derivatives(
                upload.data, upload.filename, upload.content_type, self.config
            )

            produced.append(display_path)
            storage.save(display_path, display_bytes)
            produced.append(thumbnail_path)
            storage.save(thumbnail_path, thumbnail_bytes)
        finally:
            storage.remove(temp_path)

        return Photo(
            filename=display_path.rsplit("/", 1)[-1],
            original_name=upload.filename,
            path=display_path,
            thumbnail_path=thumbnail_path,
            size=len(display_bytes),
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _remove_all(self, paths: Sequence[str]) -> int:
        removed = 0
        for path in list(paths):
            try:
                removed += int(self.storage.remove(path))
            except MediaError as e:
                logger.error(f"Cleanup could not delete {path}: {e}")
        return removed

    async def discard(self, photos: Sequence[Photo]) -> List[Tuple[str, str]]:
        """
        Delete the display image and thumbnail of already produced photos.

        Used to roll back when a report could not be created after its media
        were stored. Every path is attempted even if some deletions fail.

        Returns:
            (path, reason) for each file that could not be removed
        """
        leftovers: List[Tuple[str, str]] = []
        for photo in photos:
            for path in (photo.path, photo.thumbnail_path):
                try:
                    await self.storage.delete(path)
                except MediaError as e:
                    logger.error(f"Rollback could not delete {path}: {e}")
                    leftovers.append((path, e.message))

        if photos:
            logger.info(f"Discarded {len(photos)} photos")
        return leftovers

    @staticmethod
    def _combine(errors: List[MediaError]) -> MediaError:
        """Return the first error, listing every failed file on it."""
        first = errors[0]
        first.failed_files = [pair for error in errors for pair in error.failed_files]
        return first


async def process_uploads(
    files: Sequence[UploadedFile],
    config: Optional[Settings] = None
) -> List[Photo]:
    """
    Convenience function to process one upload batch.

    Args:
        files: Uploaded images
        config: Optional settings override

    Returns:
        List of Photo records
    """
    processor = MediaProcessor(config=config)
    return await processor.process_batch(files)
