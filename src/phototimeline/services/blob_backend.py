"""Shared google-cloud-storage plumbing for SDK-based backends."""

import asyncio
from abc import abstractmethod
from datetime import datetime, UTC
from typing import Any

from google.cloud import storage  # type: ignore[attr-defined]
from google.cloud.exceptions import GoogleCloudError, NotFound

from ..error_handling import ConfigurationError, DeleteError, ValidationError
from ..logging_config import get_logger
from .storage_backend import DEFAULT_FOLDER, StorageBackend, classify_upload_status

logger = get_logger(__name__)


class GoogleBlobBackend(StorageBackend):
    """
    Backend built on the blocking google-cloud-storage SDK.

    SDK calls run in worker threads so the event loop is never blocked.
    Subclasses decide how objects are published and what their locators look like.
    """

    bucket_setting = "GCS_BUCKET_NAME"

    def __init__(
        self,
        bucket_name: str | None,
        project_id: str | None = None,
        client: Any = None,
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize the backend.

        Args:
            bucket_name: Target bucket
            project_id: GCP project ID used by the SDK client
            client: Pre-built ``storage.Client`` (tests inject mocks here)
            timeout: Per-request timeout in seconds

        Raises:
            ConfigurationError: If the bucket is missing or the client cannot be created
        """
        if not bucket_name:
            raise ConfigurationError(
                f"{self.bucket_setting} environment variable is required for {self.provider.value} storage",
                details={"provider": self.provider.value, "key": self.bucket_setting},
            )
        self.bucket_name = bucket_name
        self.project_id = project_id
        self.timeout = timeout

        try:
            self.client = client if client is not None else storage.Client(project=project_id)
            self.bucket = self.client.bucket(bucket_name)
        except Exception as e:
            raise ConfigurationError(
                f"Failed to initialize storage client for {self.provider.value}: {e}",
                details={"provider": self.provider.value, "bucket": bucket_name},
            ) from e

        logger.info(
            "storage_backend_initialized",
            provider=self.provider.value,
            bucket=bucket_name,
            project_id=project_id,
        )

    def _prepare_blob(self, blob: Any, file_name: str) -> dict[str, str]:
        """Set metadata on ``blob`` before upload; returns values needed to build the locator."""
        blob.metadata = {
            "uploadedAt": datetime.now(UTC).isoformat(),
            "originalName": file_name,
        }
        return {}

    def _publish(self, blob: Any) -> None:
        """Make an uploaded blob publicly readable."""

    def _uploaded_locator(self, file_name: str, folder: str, extras: dict[str, str]) -> str:
        return self.locate(file_name, folder)

    def _sync_upload(self, data: bytes, file_name: str, folder: str, content_type: str) -> str:
        object_name = self.object_name(file_name, folder)
        blob = self.bucket.blob(object_name)
        extras = self._prepare_blob(blob, file_name)

        try:
            blob.upload_from_string(data, content_type=content_type, timeout=self.timeout)
            self._publish(blob)
        except GoogleCloudError as e:
            raise classify_upload_status(
                getattr(e, "code", None),
                getattr(e, "message", str(e)),
                self.provider,
                object_name,
                original_exception=e,
            ) from e
        except Exception as e:
            raise classify_upload_status(None, str(e), self.provider, object_name, original_exception=e) from e

        logger.info(
            "object_uploaded",
            provider=self.provider.value,
            object_name=object_name,
            size=len(data),
            content_type=content_type,
        )
        return self._uploaded_locator(file_name, folder, extras)

    async def upload(
        self,
        data: bytes,
        file_name: str,
        folder: str = DEFAULT_FOLDER,
        content_type: str | None = None,
    ) -> str:
        resolved_type = self.resolve_content_type(file_name, content_type)
        return await asyncio.to_thread(self._sync_upload, data, file_name, folder, resolved_type)

    def _sync_delete(self, object_name: str) -> None:
        try:
            self.bucket.blob(object_name).delete(timeout=self.timeout)
        except NotFound:
            logger.warning("object_already_deleted", provider=self.provider.value, object_name=object_name)
            return
        except Exception as e:
            raise DeleteError(
                f"Failed to delete '{object_name}' from {self.provider.value}: {e}",
                details={"provider": self.provider.value, "object_name": object_name},
                original_exception=e,
            ) from e
        logger.info("object_deleted", provider=self.provider.value, object_name=object_name)

    async def delete(self, locator: str) -> None:
        location = self.parse(locator)
        await asyncio.to_thread(self._sync_delete, location.object_name)

    def _sync_exists(self, object_name: str) -> bool:
        try:
            return bool(self.bucket.blob(object_name).exists(timeout=self.timeout))
        except Exception as e:
            logger.warning(
                "object_exists_check_failed", provider=self.provider.value, object_name=object_name, error=str(e)
            )
            return False

    async def exists(self, file_name: str, folder: str = DEFAULT_FOLDER) -> bool:
        try:
            object_name = self.object_name(file_name, folder)
        except ValidationError:
            return False
        return await asyncio.to_thread(self._sync_exists, object_name)

    @abstractmethod
    def _sync_probe(self) -> bool:
        """Blocking reachability check run in a worker thread."""

    async def probe(self) -> bool:
        try:
            reachable = await asyncio.to_thread(self._sync_probe)
        except Exception as e:
            logger.warning("storage_probe_failed", provider=self.provider.value, error=str(e))
            return False
        logger.info("storage_probe_completed", provider=self.provider.value, reachable=reachable)
        return reachable

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if callable(close):
            await asyncio.to_thread(close)
