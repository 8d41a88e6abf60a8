"""
Pytest configuration and fixtures for phototimeline tests.
"""

import base64
import io
import json
import time
from urllib.parse import quote, unquote, urlsplit

import pytest
from PIL import Image

from phototimeline.error_handling import DeleteError, UploadError
from phototimeline.models.photo import StorageProvider
from phototimeline.services.storage import BackendRegistry, StorageRouter
from phototimeline.services.storage_backend import DEFAULT_FOLDER, StorageBackend

_UNSET_KEYS = (
    "GCS_SERVER_BUCKET",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "FIREBASE_DATABASE_URL",
    "PHOTOLINE_DB_PATH",
    "STORAGE_FOLDER",
    "MAX_FILE_SIZE",
    "THUMBNAIL_MAX_SIZE",
    "THUMBNAIL_QUALITY",
    "DEV_AUTH_ENABLED",
    "DEV_USER_EMAIL",
    "DEV_USER_NAME",
    "DEV_USER_ID",
)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "test-project")
    monkeypatch.setenv("FIREBASE_STORAGE_BUCKET", "test-project.appspot.com")
    monkeypatch.setenv("GCS_BUCKET_NAME", "test-photos-bucket")
    for key in _UNSET_KEYS:
        monkeypatch.delenv(key, raising=False)


class FakeBackend(StorageBackend):
    """In-memory backend with its own URL host, for router and orchestrator tests."""

    def __init__(self, provider: StorageProvider, host: str, reachable: bool = True):
        self.provider = provider
        self.host = host
        self.reachable = reachable
        self.fail_uploads = False
        self.failing_deletes: set[str] = set()
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.upload_calls: list[str] = []
        self.probe_calls = 0
        self.closed = False

    def locate(self, file_name: str, folder: str = DEFAULT_FOLDER) -> str:
        return f"https://{self.host}/{quote(self.object_name(file_name, folder), safe='/')}"

    def _match(self, locator: str) -> str | None:
        parts = urlsplit(locator)
        if parts.scheme != "https" or parts.netloc != self.host:
            return None
        return unquote(parts.path.lstrip("/")) or None

    async def upload(self, data, file_name, folder=DEFAULT_FOLDER, content_type=None):
        object_name = self.object_name(file_name, folder)
        self.upload_calls.append(object_name)
        if self.fail_uploads:
            raise UploadError(
                f"{self.provider.value} is unavailable",
                details={"provider": self.provider.value, "object_name": object_name},
            )
        self.objects[object_name] = data
        self.content_types[object_name] = self.resolve_content_type(file_name, content_type)
        return self.locate(file_name, folder)

    async def delete(self, locator):
        location = self.parse(locator)
        if locator in self.failing_deletes:
            raise DeleteError(f"cannot delete {location.object_name}", details={"locator": locator})
        if location.object_name not in self.objects:
            raise DeleteError(f"{location.object_name} not found", code="object_not_found")
        del self.objects[location.object_name]

    async def exists(self, file_name, folder=DEFAULT_FOLDER):
        return self.object_name(file_name, folder) in self.objects

    async def probe(self):
        self.probe_calls += 1
        return self.reachable

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_backends() -> dict[StorageProvider, FakeBackend]:
    """One fake backend per provider, all reachable."""
    return {
        StorageProvider.FIREBASE: FakeBackend(StorageProvider.FIREBASE, "managed.example.com"),
        StorageProvider.GCS_BROWSER: FakeBackend(StorageProvider.GCS_BROWSER, "rest.example.com"),
        StorageProvider.GCS_SERVER: FakeBackend(StorageProvider.GCS_SERVER, "server.example.com"),
    }


@pytest.fixture
def router(fake_backends: dict[StorageProvider, FakeBackend]) -> StorageRouter:
    """Router over the fake backends."""
    registry = BackendRegistry({provider: (lambda b=backend: b) for provider, backend in fake_backends.items()})
    return StorageRouter(registry)


class TestDataFactory:
    """Factory class for creating test data objects."""

    @staticmethod
    def create_jpeg_bytes(
        width: int = 64, height: int = 48, color: tuple[int, int, int] = (200, 120, 40), exif_datetime: str | None = None
    ) -> bytes:
        """Create a JPEG image in memory.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            color: Fill color
            exif_datetime: Value for the EXIF DateTime tag, "YYYY:MM:DD HH:MM:SS"

        Returns:
            JPEG bytes
        """
        buffer = io.BytesIO()
        image = Image.new("RGB", (width, height), color)
        if exif_datetime:
            exif = Image.Exif()
            exif[306] = exif_datetime
            image.save(buffer, format="JPEG", exif=exif)
        else:
            image.save(buffer, format="JPEG")
        return buffer.getvalue()

    @staticmethod
    def create_png_bytes(width: int = 32, height: int = 32) -> bytes:
        buffer = io.BytesIO()
        Image.new("RGBA", (width, height), (0, 128, 255, 128)).save(buffer, format="PNG")
        return buffer.getvalue()

    @staticmethod
    def create_jwt_payload(
        user_id: str = "test-user-123",
        email: str = "test@example.com",
        name: str | None = "Test User",
        picture: str | None = None,
        exp: int | None = None,
    ) -> dict:
        """Create an ID token payload; expires in one hour unless ``exp`` is given."""
        current_time = int(time.time())
        payload = {
            "sub": user_id,
            "email": email,
            "iss": "https://securetoken.google.com/test-project",
            "aud": "test-project",
            "iat": current_time,
            "exp": exp if exp is not None else current_time + 3600,
        }
        if name is not None:
            payload["name"] = name
        if picture is not None:
            payload["picture"] = picture
        return payload

    @staticmethod
    def create_jwt_token(payload: dict | None = None) -> str:
        """Create an unsigned JWT carrying ``payload``."""
        if payload is None:
            payload = TestDataFactory.create_jwt_payload()

        header_b64 = base64.urlsafe_b64encode(json.dumps({"alg": "RS256", "typ": "JWT"}).encode()).decode().rstrip("=")
        payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")
        signature_b64 = base64.urlsafe_b64encode(b"test_signature").decode().rstrip("=")
        return f"{header_b64}.{payload_b64}.{signature_b64}"
