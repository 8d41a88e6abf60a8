"""
Unit tests for the Firebase Storage backend.
"""

from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import TooManyRequests
from google.cloud.exceptions import Forbidden, NotFound

from phototimeline.config import Config
from phototimeline.error_handling import ConfigurationError, DeleteError, InvalidLocatorError, UploadError
from phototimeline.models.photo import ObjectLocation
from phototimeline.services.firebase_storage import FirebaseStorageBackend


class TestFirebaseStorageBackend:
    """Test cases for FirebaseStorageBackend."""

    def setup_method(self):
        """Set up test fixtures."""
        self.mock_client = MagicMock()
        self.mock_bucket = MagicMock()
        self.mock_blob = MagicMock()
        self.mock_client.bucket.return_value = self.mock_bucket
        self.mock_bucket.blob.return_value = self.mock_blob

        self.backend = FirebaseStorageBackend(
            bucket_name="test-project.appspot.com", project_id="test-project", client=self.mock_client
        )

    def test_init_missing_bucket(self):
        with pytest.raises(ConfigurationError, match="FIREBASE_STORAGE_BUCKET"):
            FirebaseStorageBackend(bucket_name=None, client=self.mock_client)

    @patch("phototimeline.services.blob_backend.storage.Client")
    def test_init_client_error(self, mock_client_class):
        mock_client_class.side_effect = Exception("no credentials")

        with pytest.raises(ConfigurationError, match="Failed to initialize storage client"):
            FirebaseStorageBackend(bucket_name="test-project.appspot.com", project_id="test-project")

    @patch("phototimeline.services.blob_backend.storage.Client")
    def test_from_config(self, mock_client_class):
        backend = FirebaseStorageBackend.from_config(Config())

        assert backend.bucket_name == "test-project.appspot.com"
        mock_client_class.assert_called_once_with(project="test-project")

    def test_locate(self):
        locator = self.backend.locate("photo 1.jpg")

        assert locator == (
            "https://firebasestorage.googleapis.com/v0/b/test-project.appspot.com/o/photos%2Fphoto%201.jpg?alt=media"
        )

    def test_parse_accepts_locator_with_token(self):
        locator = self.backend.locate("photo_1.jpg", "albums") + "&token=abc"

        assert self.backend.parse(locator) == ObjectLocation("albums", "photo_1.jpg")
        assert self.backend.download_token(locator) == "abc"

    @pytest.mark.parametrize(
        "locator",
        [
            "https://storage.googleapis.com/test-project.appspot.com/photos/a.jpg",
            "https://firebasestorage.googleapis.com/v0/b/other-bucket/o/photos%2Fa.jpg?alt=media",
            "https://firebasestorage.googleapis.com/v0/b/test-project.appspot.com/o/photos/a.jpg?alt=media",
            "http://firebasestorage.googleapis.com/v0/b/test-project.appspot.com/o/photos%2Fa.jpg?alt=media",
            "not a url",
        ],
    )
    def test_parse_rejects_foreign_locators(self, locator):
        with pytest.raises(InvalidLocatorError):
            self.backend.parse(locator)

    @pytest.mark.asyncio
    async def test_upload_success(self):
        locator = await self.backend.upload(b"jpeg bytes", "photo_1.jpg")

        self.mock_bucket.blob.assert_called_once_with("photos/photo_1.jpg")
        self.mock_blob.upload_from_string.assert_called_once_with(b"jpeg bytes", content_type="image/jpeg", timeout=60.0)

        token = self.mock_blob.metadata[FirebaseStorageBackend.TOKEN_METADATA_KEY]
        assert self.mock_blob.metadata["originalName"] == "photo_1.jpg"
        assert "uploadedAt" in self.mock_blob.metadata
        assert locator == f"{self.backend.locate('photo_1.jpg')}&token={token}"
        assert self.backend.parse(locator) == ObjectLocation("photos", "photo_1.jpg")

    @pytest.mark.asyncio
    async def test_upload_unknown_suffix_uses_octet_stream(self):
        await self.backend.upload(b"data", "blob")

        _, kwargs = self.mock_blob.upload_from_string.call_args
        assert kwargs["content_type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_upload_forbidden(self):
        self.mock_blob.upload_from_string.side_effect = Forbidden("denied")

        with pytest.raises(UploadError) as exc_info:
            await self.backend.upload(b"data", "photo_1.jpg")

        assert exc_info.value.code == "upload_forbidden"
        assert exc_info.value.details["provider"] == "firebase"

    @pytest.mark.asyncio
    async def test_upload_rate_limited(self):
        self.mock_blob.upload_from_string.side_effect = TooManyRequests("slow down")

        with pytest.raises(UploadError) as exc_info:
            await self.backend.upload(b"data", "photo_1.jpg")

        assert exc_info.value.code == "upload_rate_limited"

    @pytest.mark.asyncio
    async def test_upload_transport_error(self):
        self.mock_blob.upload_from_string.side_effect = ConnectionError("reset by peer")

        with pytest.raises(UploadError) as exc_info:
            await self.backend.upload(b"data", "photo_1.jpg")

        assert exc_info.value.code == "upload_failed"

    @pytest.mark.asyncio
    async def test_delete_success(self):
        await self.backend.delete(self.backend.locate("photo_1.jpg") + "&token=abc")

        self.mock_bucket.blob.assert_called_with("photos/photo_1.jpg")
        self.mock_blob.delete.assert_called_once_with(timeout=60.0)

    @pytest.mark.asyncio
    async def test_delete_missing_object_is_success(self):
        self.mock_blob.delete.side_effect = NotFound("gone")

        await self.backend.delete(self.backend.locate("photo_1.jpg"))

    @pytest.mark.asyncio
    async def test_delete_failure(self):
        self.mock_blob.delete.side_effect = Forbidden("denied")

        with pytest.raises(DeleteError) as exc_info:
            await self.backend.delete(self.backend.locate("photo_1.jpg"))

        assert exc_info.value.is_not_found is False

    @pytest.mark.asyncio
    async def test_delete_foreign_locator(self):
        with pytest.raises(InvalidLocatorError):
            await self.backend.delete("https://storage.googleapis.com/bucket/photos/a.jpg")

        self.mock_blob.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_exists(self):
        self.mock_blob.exists.return_value = True
        assert await self.backend.exists("photo_1.jpg") is True

        self.mock_blob.exists.side_effect = ConnectionError("offline")
        assert await self.backend.exists("photo_1.jpg") is False

    @pytest.mark.asyncio
    async def test_exists_invalid_name_is_false(self):
        assert await self.backend.exists("..") is False

    @pytest.mark.asyncio
    async def test_probe_missing_probe_object_is_reachable(self):
        self.mock_blob.reload.side_effect = NotFound("no test object")

        assert await self.backend.probe() is True
        self.mock_bucket.blob.assert_called_with("test-connection")

    @pytest.mark.asyncio
    async def test_probe_transport_error_is_unreachable(self):
        self.mock_blob.reload.side_effect = ConnectionError("offline")

        assert await self.backend.probe() is False
