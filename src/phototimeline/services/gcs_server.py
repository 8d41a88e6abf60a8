"""Google Cloud Storage backend for trusted, server-side processes."""

from typing import Any
from urllib.parse import quote, unquote, urlsplit

from google.cloud.exceptions import Forbidden, GoogleCloudError, NotFound

from ..config import Config
from ..error_handling import StorageLookupError
from ..logging_config import get_logger
from ..models.photo import StorageProvider
from .blob_backend import GoogleBlobBackend
from .storage_backend import DEFAULT_FOLDER

logger = get_logger(__name__)


class GCSServerBackend(GoogleBlobBackend):
    """
    Uploads with service-account credentials and makes each object public.

    Locators use the virtual-hosted URL form
    ``https://<bucket>.storage.googleapis.com/<object>`` so they never collide
    with the path-style locators of the REST backend.
    """

    provider = StorageProvider.GCS_SERVER
    bucket_setting = "GCS_SERVER_BUCKET"
    default_content_type = "image/jpeg"
    cache_control = "public, max-age=31536000"

    @classmethod
    def from_config(cls, config: Config, client: Any = None) -> "GCSServerBackend":
        return cls(
            bucket_name=config.gcs_server_bucket,
            project_id=config.project_id,
            client=client,
            timeout=config.storage_timeout,
        )

    @property
    def _host(self) -> str:
        return f"{self.bucket_name}.storage.googleapis.com"

    def locate(self, file_name: str, folder: str = DEFAULT_FOLDER) -> str:
        return f"https://{self._host}/{quote(self.object_name(file_name, folder), safe='/')}"

    def _match(self, locator: str) -> str | None:
        try:
            parts = urlsplit(locator)
        except ValueError:
            return None
        if parts.scheme != "https" or parts.netloc != self._host or parts.query:
            return None
        object_name = unquote(parts.path.lstrip("/"))
        return object_name or None

    def _prepare_blob(self, blob: Any, file_name: str) -> dict[str, str]:
        extras = super()._prepare_blob(blob, file_name)
        blob.cache_control = self.cache_control
        return extras

    def _publish(self, blob: Any) -> None:
        blob.make_public(timeout=self.timeout)

    def _sync_probe(self) -> bool:
        # Forbidden still proves the bucket endpoint is reachable
        try:
            self.bucket.reload(timeout=self.timeout)
        except Forbidden:
            return True
        except NotFound:
            logger.error("bucket_not_found", provider=self.provider.value, bucket=self.bucket_name)
            return False
        return True

    def get_file_metadata(self, file_name: str, folder: str = DEFAULT_FOLDER) -> dict[str, Any]:
        """
        Fetch object metadata.

        Args:
            file_name: Object file name
            folder: Folder holding the object

        Returns:
            dict: Size, content type, timestamps and custom metadata

        Raises:
            StorageLookupError: If the object is missing or the lookup fails
        """
        object_name = self.object_name(file_name, folder)
        blob = self.bucket.blob(object_name)
        try:
            blob.reload(timeout=self.timeout)
        except NotFound as e:
            raise StorageLookupError(
                f"Object not found: {object_name}",
                code="object_not_found",
                details={"provider": self.provider.value, "object_name": object_name},
                original_exception=e,
            ) from e
        except GoogleCloudError as e:
            raise StorageLookupError(
                f"Failed to read metadata for '{object_name}': {e}",
                details={"provider": self.provider.value, "object_name": object_name},
                original_exception=e,
            ) from e

        return {
            "object_name": object_name,
            "size": blob.size,
            "content_type": blob.content_type,
            "updated": blob.updated.isoformat() if blob.updated else None,
            "etag": blob.etag,
            "generation": blob.generation,
            "metadata": blob.metadata or {},
        }

    def list_files(self, folder: str = DEFAULT_FOLDER, max_results: int = 1000) -> list[str]:
        """
        List object names under a folder.

        Raises:
            StorageLookupError: If listing fails
        """
        prefix = f"{folder.strip('/')}/" if folder.strip("/") else ""
        try:
            blobs = self.client.list_blobs(self.bucket, prefix=prefix, max_results=max_results, timeout=self.timeout)
            names = [blob.name for blob in blobs]
        except GoogleCloudError as e:
            raise StorageLookupError(
                f"Failed to list '{prefix}': {e}",
                details={"provider": self.provider.value, "prefix": prefix},
                original_exception=e,
            ) from e

        logger.debug("objects_listed", provider=self.provider.value, prefix=prefix, count=len(names))
        return names
