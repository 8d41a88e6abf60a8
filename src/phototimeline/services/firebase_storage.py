"""Firebase Storage backend (the managed, default provider)."""

import uuid
from typing import Any
from urllib.parse import parse_qs, quote, unquote, urlsplit

from google.cloud.exceptions import NotFound

from ..config import Config
from ..logging_config import get_logger
from ..models.photo import StorageProvider
from .blob_backend import GoogleBlobBackend
from .storage_backend import DEFAULT_FOLDER

logger = get_logger(__name__)


class FirebaseStorageBackend(GoogleBlobBackend):
    """
    Stores objects in the Firebase Storage bucket of the project.

    Objects are published through Firebase download tokens: each upload gets a
    fresh token in its metadata and the returned locator carries it, so the URL
    is readable without any ACL change on the bucket.
    """

    provider = StorageProvider.FIREBASE
    bucket_setting = "FIREBASE_STORAGE_BUCKET"
    default_content_type = "application/octet-stream"

    DOWNLOAD_HOST = "firebasestorage.googleapis.com"
    TOKEN_METADATA_KEY = "firebaseStorageDownloadTokens"
    PROBE_OBJECT = "test-connection"

    @classmethod
    def from_config(cls, config: Config, client: Any = None) -> "FirebaseStorageBackend":
        return cls(
            bucket_name=config.firebase_storage_bucket,
            project_id=config.project_id,
            client=client,
            timeout=config.storage_timeout,
        )

    @property
    def _object_prefix(self) -> str:
        return f"/v0/b/{self.bucket_name}/o/"

    def locate(self, file_name: str, folder: str = DEFAULT_FOLDER) -> str:
        encoded = quote(self.object_name(file_name, folder), safe="")
        return f"https://{self.DOWNLOAD_HOST}{self._object_prefix}{encoded}?alt=media"

    def _match(self, locator: str) -> str | None:
        try:
            parts = urlsplit(locator)
        except ValueError:
            return None
        if parts.scheme != "https" or parts.netloc != self.DOWNLOAD_HOST:
            return None
        if not parts.path.startswith(self._object_prefix):
            return None
        encoded = parts.path[len(self._object_prefix) :]
        # A literal slash means the path was not produced by locate()
        if not encoded or "/" in encoded:
            return None
        return unquote(encoded)

    def download_token(self, locator: str) -> str | None:
        """Return the download token embedded in a locator, if any."""
        tokens = parse_qs(urlsplit(locator).query).get("token")
        return tokens[0] if tokens else None

    def _prepare_blob(self, blob: Any, file_name: str) -> dict[str, str]:
        metadata = super()._prepare_blob(blob, file_name)
        token = str(uuid.uuid4())
        blob.metadata = {**blob.metadata, self.TOKEN_METADATA_KEY: token}
        return {**metadata, "token": token}

    def _uploaded_locator(self, file_name: str, folder: str, extras: dict[str, str]) -> str:
        return f"{self.locate(file_name, folder)}&token={extras['token']}"

    def _sync_probe(self) -> bool:
        # A missing probe object still proves the bucket answered
        try:
            self.bucket.blob(self.PROBE_OBJECT).reload(timeout=self.timeout)
        except NotFound:
            logger.debug("probe_object_missing", provider=self.provider.value, bucket=self.bucket_name)
        return True
