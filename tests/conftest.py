"""
Pytest configuration and fixtures
"""
import io

import cv2
import numpy as np
import piexif
import pillow_heif
import pytest
import pytest_asyncio

from mangrovewatch.core.config import Settings
from mangrovewatch.media.models import UploadedFile
from mangrovewatch.media.storage import MediaStorage
from mangrovewatch.reports.lifecycle import Actor
from mangrovewatch.reports.service import build_service, memory_backend
from mangrovewatch.rewards.ledger import UserLedger
from mangrovewatch.rewards.badges import default_badge_catalog


# Thane Creek, inside the Mumbai reference cluster
MUMBAI_CREEK = {"longitude": 72.9780, "latitude": 19.1320}


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment, with media under tmp_path."""
    return Settings(
        _env_file=None,
        media_root=str(tmp_path / "media"),
        database_url=None,
        rate_limit_max_requests=1000,
    )


@pytest.fixture
def storage(settings):
    storage = MediaStorage(config=settings)
    storage.ensure_directories()
    return storage


def _image(width: int, height: int) -> np.ndarray:
    """Gradient image so encoders have something to compress."""
    x = np.linspace(0, 255, width, dtype=np.uint8)
    y = np.linspace(0, 255, height, dtype=np.uint8)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = x[np.newaxis, :]
    image[:, :, 1] = y[:, np.newaxis]
    image[:, :, 2] = 90
    return image


def encode_image(width: int = 640, height: int = 480, extension: str = ".jpg") -> bytes:
    ok, buffer = cv2.imencode(extension, _image(width, height))
    assert ok
    return buffer.tobytes()


def encode_heic(width: int = 640, height: int = 480) -> bytes:
    """HEIC container as produced by phone cameras."""
    rgb = cv2.cvtColor(_image(width, height), cv2.COLOR_BGR2RGB)
    heif_file = pillow_heif.from_bytes(mode="RGB", size=(width, height), data=rgb.tobytes())
    output = io.BytesIO()
    heif_file.save(output, quality=90)
    return output.getvalue()


def with_exif(jpeg: bytes) -> bytes:
    """Insert an EXIF block with capture time, device and a Mumbai GPS fix."""
    exif = {
        "0th": {
            piexif.ImageIFD.Make: b"Canon",
            piexif.ImageIFD.Model: b"EOS 90D",
        },
        "Exif": {
            piexif.ExifIFD.DateTimeOriginal: b"2026:03:14 09:26:53",
        },
        "GPS": {
            piexif.GPSIFD.GPSLatitudeRef: b"N",
            piexif.GPSIFD.GPSLatitude: ((19, 1), (7, 1), (5520, 100)),
            piexif.GPSIFD.GPSLongitudeRef: b"E",
            piexif.GPSIFD.GPSLongitude: ((72, 1), (58, 1), (4080, 100)),
        },
    }
    output = io.BytesIO()
    piexif.insert(piexif.dump(exif), jpeg, output)
    return output.getvalue()


@pytest.fixture
def jpeg_bytes():
    return encode_image(640, 480, ".jpg")


@pytest.fixture
def png_bytes():
    return encode_image(400, 300, ".png")


@pytest.fixture
def exif_jpeg_bytes(jpeg_bytes):
    return with_exif(jpeg_bytes)


@pytest.fixture
def jpeg_upload(jpeg_bytes):
    return UploadedFile(filename="creek.jpg", content_type="image/jpeg", data=jpeg_bytes)


@pytest.fixture
def png_upload(png_bytes):
    return UploadedFile(filename="dumping.png", content_type="image/png", data=png_bytes)


@pytest.fixture
def report_fields():
    """Valid inbound report fields near a reference site."""
    return {
        "title": "Mangrove cutting near Thane Creek",
        "incident_type": "illegal_cutting",
        "description": "Several mature trees felled along the creek bank overnight.",
        "severity": "medium",
        **MUMBAI_CREEK,
    }


# =============================================================================
# ACTORS
# =============================================================================


@pytest.fixture
def reporter():
    return Actor(user_id="user-reporter", role="citizen", name="Asha")


@pytest.fixture
def citizen():
    return Actor(user_id="user-citizen", role="citizen", name="Ravi")


@pytest.fixture
def reviewer():
    return Actor(user_id="user-gov", role="government", name="Forest Dept")


@pytest.fixture
def ngo():
    return Actor(user_id="user-ngo", role="ngo", name="Mangrove Trust")


@pytest.fixture
def admin():
    return Actor(user_id="user-admin", role="admin", name="Admin")


# =============================================================================
# SERVICE
# =============================================================================


@pytest.fixture
def backend(settings):
    return memory_backend(settings)


@pytest_asyncio.fixture
async def service(settings, backend, storage, reporter, citizen, reviewer, ngo, admin):
    """In-memory service with seeded users and the default badge catalog."""
    service = build_service(config=settings, backend=backend, storage=storage)

    await backend.users.add(UserLedger(user_id=reporter.user_id, role=reporter.role, name=reporter.name))
    await backend.users.add(UserLedger(user_id=citizen.user_id, role=citizen.role, name=citizen.name))
    await backend.users.add(UserLedger(user_id=reviewer.user_id, role=reviewer.role, name=reviewer.name))
    # Opted out of urgent alerts
    await backend.users.add(
        UserLedger(user_id=ngo.user_id, role=ngo.role, name=ngo.name, alerts_enabled=False)
    )
    await backend.users.add(UserLedger(user_id=admin.user_id, role=admin.role, name=admin.name))

    await service.lifecycle.rewards.seed_badges(default_badge_catalog())
    return service
