"""
Tests for the upload pipeline
"""
import asyncio
import os
import time

import cv2
import numpy as np
import pytest

from mangrovewatch.core.constants import DISPLAY_DIR, TEMP_DIR, THUMBNAIL_DIR
from mangrovewatch.core.exceptions import (
    MediaError,
    PayloadTooLarge,
    StorageUnavailable,
    TooManyFiles,
    TranscodeFailed,
    UnsupportedMediaType,
    ValidationError,
)
from mangrovewatch.media.metadata import dms_to_decimal, extract_metadata
from mangrovewatch.media.models import UploadedFile
from mangrovewatch.media.processor import MediaProcessor
from mangrovewatch.media.storage import MediaStorage
from mangrovewatch.media.transcode import cover_crop, fit_inside

from conftest import _image, encode_heic, encode_image


def _all_files(storage: MediaStorage):
    return (
        storage.list_files(TEMP_DIR)
        + storage.list_files(DISPLAY_DIR)
        + storage.list_files(THUMBNAIL_DIR)
    )


class TestBatchValidation:
    """Checks that run before anything is stored."""

    def setup_method(self):
        self.upload = UploadedFile(filename="a.jpg", content_type="image/jpeg", data=b"\xff\xd8data")

    def test_too_many_files(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)

        with pytest.raises(TooManyFiles) as exc_info:
            processor.validate_batch([self.upload] * (settings.max_upload_files + 1))

        assert exc_info.value.details["limit"] == settings.max_upload_files

    def test_unsupported_type_lists_every_offender(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        files = [
            UploadedFile(filename="notes.pdf", content_type="application/pdf", data=b"%PDF"),
            self.upload,
            UploadedFile(filename="clip.gif", content_type="image/gif", data=b"GIF89a"),
        ]

        with pytest.raises(UnsupportedMediaType) as exc_info:
            processor.validate_batch(files)

        failed = [name for name, _ in exc_info.value.failed_files]
        assert failed == ["notes.pdf", "clip.gif"]

    def test_declared_size_over_limit(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        big = UploadedFile(
            filename="huge.jpg",
            content_type="image/jpeg",
            data=b"\xff\xd8",
            size=settings.max_upload_bytes + 1,
        )

        with pytest.raises(PayloadTooLarge):
            processor.validate_batch([big])

    def test_empty_file(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)

        with pytest.raises(ValidationError):
            processor.validate_batch([UploadedFile(filename="e.jpg", content_type="image/jpeg", data=b"")])

    def test_mime_type_is_case_insensitive(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        processor.validate_batch([UploadedFile(filename="a.jpg", content_type="IMAGE/JPEG", data=b"x")])


class TestProcessBatch:
    """Test suite for MediaProcessor.process_batch."""

    @pytest.mark.asyncio
    async def test_accepted_batch(self, settings, storage, jpeg_upload, png_upload):
        processor = MediaProcessor(storage=storage, config=settings)

        photos = await processor.process_batch([jpeg_upload, png_upload])

        assert len(photos) == 2
        assert [p.original_name for p in photos] == ["creek.jpg", "dumping.png"]
        for photo in photos:
            assert photo.mime_type == "image/webp"
            assert photo.path.startswith(DISPLAY_DIR + "/")
            assert photo.thumbnail_path.startswith(THUMBNAIL_DIR + "/thumb_")
            assert photo.path.endswith(".webp")
            assert storage.exists(photo.path)
            assert storage.exists(photo.thumbnail_path)
            assert photo.size > 0

        assert len(storage.list_files(DISPLAY_DIR)) == 2
        assert len(storage.list_files(THUMBNAIL_DIR)) == 2
        # Transient copies are always removed
        assert storage.list_files(TEMP_DIR) == []

    @pytest.mark.asyncio
    async def test_heic_upload(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        upload = UploadedFile(filename="phone.heic", content_type="image/heic", data=encode_heic(640, 480))

        photos = await processor.process_batch([upload])

        assert len(photos) == 1
        display = cv2.imdecode(np.frombuffer(storage.absolute(photos[0].path).read_bytes(), np.uint8), cv2.IMREAD_COLOR)
        thumbnail = cv2.imdecode(
            np.frombuffer(storage.absolute(photos[0].thumbnail_path).read_bytes(), np.uint8), cv2.IMREAD_COLOR
        )
        assert display.shape[:2] == (480, 640)
        assert thumbnail.shape[:2] == (200, 300)

    @pytest.mark.asyncio
    async def test_corrupt_heic_rejected(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        upload = UploadedFile(filename="phone.heic", content_type="image/heic", data=b"\x00\x00\x00\x18ftypheic" + b"\x00" * 64)

        with pytest.raises(TranscodeFailed):
            await processor.process_batch([upload])

        assert _all_files(storage) == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        assert await processor.process_batch([]) == []

    @pytest.mark.asyncio
    async def test_derivative_geometry(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        upload = UploadedFile(
            filename="wide.png",
            content_type="image/png",
            data=encode_image(2400, 1200, ".png"),
        )

        photo = (await processor.process_batch([upload]))[0]

        display = cv2.imdecode(
            np.frombuffer(storage.absolute(photo.path).read_bytes(), np.uint8), cv2.IMREAD_COLOR
        )
        thumbnail = cv2.imdecode(
            np.frombuffer(storage.absolute(photo.thumbnail_path).read_bytes(), np.uint8), cv2.IMREAD_COLOR
        )
        assert display.shape[:2] == (960, 1920)
        assert thumbnail.shape[:2] == (settings.thumbnail_height, settings.thumbnail_width)

    @pytest.mark.asyncio
    async def test_undersized_image_rejects_whole_batch(self, settings, storage, jpeg_upload):
        processor = MediaProcessor(storage=storage, config=settings)
        tiny = UploadedFile(filename="tiny.jpg", content_type="image/jpeg", data=encode_image(100, 100))

        with pytest.raises(TranscodeFailed) as exc_info:
            await processor.process_batch([jpeg_upload, tiny])

        assert exc_info.value.failed_files[0][0] == "tiny.jpg"
        assert _all_files(storage) == []

    @pytest.mark.asyncio
    async def test_corrupt_image_rejected(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        corrupt = UploadedFile(filename="broken.jpg", content_type="image/jpeg", data=b"\xff\xd8not an image")

        with pytest.raises(TranscodeFailed):
            await processor.process_batch([corrupt])

        assert _all_files(storage) == []

    @pytest.mark.asyncio
    async def test_every_failure_is_reported(self, settings, storage):
        processor = MediaProcessor(storage=storage, config=settings)
        files = [
            UploadedFile(filename="one.jpg", content_type="image/jpeg", data=b"junk"),
            UploadedFile(filename="two.jpg", content_type="image/jpeg", data=encode_image(50, 50)),
        ]

        with pytest.raises(MediaError) as exc_info:
            await processor.process_batch(files)

        assert sorted(name for name, _ in exc_info.value.failed_files) == ["one.jpg", "two.jpg"]

    @pytest.mark.asyncio
    async def test_storage_failure_removes_partial_output(self, settings, storage, jpeg_upload, png_upload, monkeypatch):
        processor = MediaProcessor(storage=storage, config=settings)
        original_save = storage.save

        def failing_save(relative_path, data):
            if relative_path.startswith(THUMBNAIL_DIR):
                raise StorageUnavailable(f"Cannot write {relative_path}: disk full")
            return original_save(relative_path, data)

        monkeypatch.setattr(storage, "save", failing_save)

        with pytest.raises(StorageUnavailable):
            await processor.process_batch([jpeg_upload, png_upload])

        assert _all_files(storage) == []

    @pytest.mark.asyncio
    async def test_cancellation_removes_output(self, settings, storage, jpeg_upload):
        processor = MediaProcessor(storage=storage, config=settings)

        task = asyncio.ensure_future(processor.process_batch([jpeg_upload] * 3))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert _all_files(storage) == []

    @pytest.mark.asyncio
    async def test_discard(self, settings, storage, jpeg_upload):
        processor = MediaProcessor(storage=storage, config=settings)
        photos = await processor.process_batch([jpeg_upload])

        leftovers = await processor.discard(photos)

        assert leftovers == []
        assert _all_files(storage) == []

    @pytest.mark.asyncio
    async def test_metadata_attached(self, settings, storage, exif_jpeg_bytes):
        processor = MediaProcessor(storage=storage, config=settings)
        upload = UploadedFile(filename="geo.jpg", content_type="image/jpeg", data=exif_jpeg_bytes)

        photo = (await processor.process_batch([upload]))[0]

        assert photo.metadata is not None
        assert photo.metadata.device_make == "Canon"


class TestMetadata:
    """Test suite for EXIF extraction."""

    def test_full_exif(self, exif_jpeg_bytes):
        metadata = extract_metadata(exif_jpeg_bytes, "geo.jpg")

        assert metadata.taken_at.isoformat() == "2026-03-14T09:26:53"
        assert metadata.device_make == "Canon"
        assert metadata.device_model == "EOS 90D"
        assert metadata.gps_latitude == pytest.approx(19.132, abs=1e-4)
        assert metadata.gps_longitude == pytest.approx(72.978, abs=1e-4)

    def test_no_exif(self, jpeg_bytes):
        assert extract_metadata(jpeg_bytes, "plain.jpg") is None

    def test_unreadable_data(self, png_bytes):
        assert extract_metadata(png_bytes, "plain.png") is None

    def test_southern_and_western_refs_are_negative(self):
        dms = ((10, 1), (30, 1), (0, 1))
        assert dms_to_decimal(dms, b"S") == pytest.approx(-10.5)
        assert dms_to_decimal(dms, "W") == pytest.approx(-10.5)
        assert dms_to_decimal(dms, b"N") == pytest.approx(10.5)


class TestTranscode:

    def test_fit_inside_never_upscales(self):
        image = _image(300, 200)
        assert fit_inside(image, 1920, 1080).shape == image.shape

    def test_fit_inside_preserves_aspect(self):
        resized = fit_inside(_image(3000, 1000), 1920, 1080)
        assert resized.shape[:2] == (640, 1920)

    def test_cover_crop_exact_size(self):
        assert cover_crop(_image(1000, 250), 300, 200).shape[:2] == (200, 300)
        assert cover_crop(_image(250, 1000), 300, 200).shape[:2] == (200, 300)


class TestMediaStorage:

    def test_upload_names_are_unique(self):
        names = {MediaStorage.new_upload_name("a.JPG", "image/jpeg") for _ in range(200)}
        assert len(names) == 200
        assert all(name.endswith(".jpg") for name in names)

    def test_extension_from_mime_type(self):
        assert MediaStorage.new_upload_name("upload", "image/png").endswith(".png")

    def test_thumbnail_for(self):
        assert MediaStorage.thumbnail_for("uploads/reports/abc.webp") == "uploads/thumbnails/thumb_abc.webp"

    def test_path_escape_refused(self, storage):
        with pytest.raises(StorageUnavailable):
            storage.absolute("../../etc/passwd")

    def test_remove_missing_file(self, storage):
        assert storage.remove("uploads/reports/missing.webp") is False

    def test_public_url(self):
        storage = MediaStorage(root="/tmp/m", public_base_url="https://cdn.example.org/")
        assert storage.public_url("uploads/reports/a.webp") == "https://cdn.example.org/uploads/reports/a.webp"

    async def test_purge_transient_keeps_fresh_uploads(self, storage):
        storage.save(f"{TEMP_DIR}/stale.jpg", b"old")
        storage.save(f"{TEMP_DIR}/fresh.jpg", b"new")
        stale = storage.absolute(f"{TEMP_DIR}/stale.jpg")
        an_hour_ago = time.time() - 3600
        os.utime(stale, (an_hour_ago, an_hour_ago))

        removed = await storage.purge_transient(max_age_seconds=600)

        assert removed == 1
        assert storage.list_files(TEMP_DIR) == [f"{TEMP_DIR}/fresh.jpg"]
