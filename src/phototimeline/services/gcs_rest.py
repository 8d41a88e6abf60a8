"""Google Cloud Storage over the JSON REST API.

This backend needs no SDK and, by default, no credential: uploads rely on a
bucket policy that allows public writes and public reads. When a service
account key is configured, google-auth mints a bearer token which is then
used for every request, and deletions become possible.
"""

import asyncio
from collections.abc import Awaitable, Callable
from urllib.parse import quote, unquote, urlsplit

import httpx
from google.auth.exceptions import GoogleAuthError

from ..config import Config
from ..error_handling import AuthenticationRequiredError, ConfigurationError, DeleteError, ValidationError
from ..logging_config import get_logger
from ..models.photo import StorageProvider
from .storage_backend import DEFAULT_FOLDER, StorageBackend, classify_upload_status

logger = get_logger(__name__)

_STORAGE_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"

TokenProvider = Callable[[], Awaitable[str | None]]


async def anonymous_token() -> str | None:
    """Token provider for public-write buckets: there is never a token."""
    return None


def service_account_token_provider(key_file: str) -> TokenProvider:
    """
    Build a token provider backed by a service account key file.

    Args:
        key_file: Path to the service account JSON key

    Returns:
        Coroutine function returning a fresh access token
    """
    from google.auth.transport.requests import Request
    from google.oauth2 import service_account

    try:
        credentials = service_account.Credentials.from_service_account_file(key_file, scopes=[_STORAGE_SCOPE])
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Cannot load service account key '{key_file}': {e}",
            code="invalid_credentials",
            details={"key_file": key_file},
        ) from e

    def _refresh() -> str:
        if not credentials.valid:
            credentials.refresh(Request())
        return str(credentials.token)

    async def provider() -> str | None:
        return await asyncio.to_thread(_refresh)

    return provider


class GCSRestBackend(StorageBackend):
    """Path-style public URLs: ``https://storage.googleapis.com/<bucket>/<object>``."""

    provider = StorageProvider.GCS_BROWSER
    default_content_type = "application/octet-stream"

    BASE_URL = "https://storage.googleapis.com/storage/v1"
    UPLOAD_URL = "https://storage.googleapis.com/upload/storage/v1"
    PUBLIC_HOST = "storage.googleapis.com"

    def __init__(
        self,
        project_id: str | None,
        bucket_name: str | None,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize the REST backend.

        Args:
            project_id: GCP project ID
            bucket_name: Target bucket
            token_provider: Coroutine returning a bearer token or None
            client: Pre-built HTTP client (tests pass one with a mock transport)
            timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If project or bucket is missing
        """
        missing = [
            key for key, value in (("GOOGLE_CLOUD_PROJECT", project_id), ("GCS_BUCKET_NAME", bucket_name)) if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required GCS configuration: {', '.join(missing)}",
                details={"provider": self.provider.value, "missing": missing},
            )

        self.project_id = project_id
        self.bucket_name = str(bucket_name)
        self.token_provider = token_provider or anonymous_token
        self.client = client or httpx.AsyncClient(timeout=timeout)

        logger.info("storage_backend_initialized", provider=self.provider.value, bucket=self.bucket_name)

    @classmethod
    def from_config(cls, config: Config, client: httpx.AsyncClient | None = None) -> "GCSRestBackend":
        key_file = config.credentials_file
        return cls(
            project_id=config.project_id,
            bucket_name=config.gcs_bucket_name,
            token_provider=service_account_token_provider(key_file) if key_file else None,
            client=client,
            timeout=config.storage_timeout,
        )

    def locate(self, file_name: str, folder: str = DEFAULT_FOLDER) -> str:
        return f"https://{self.PUBLIC_HOST}/{self.bucket_name}/{quote(self.object_name(file_name, folder), safe='/')}"

    def _match(self, locator: str) -> str | None:
        try:
            parts = urlsplit(locator)
        except ValueError:
            return None
        prefix = f"/{self.bucket_name}/"
        if parts.scheme != "https" or parts.netloc != self.PUBLIC_HOST or parts.query:
            return None
        if not parts.path.startswith(prefix):
            return None
        object_name = unquote(parts.path[len(prefix) :])
        return object_name or None

    def _object_url(self, object_name: str) -> str:
        return f"{self.BASE_URL}/b/{self.bucket_name}/o/{quote(object_name, safe='')}"

    async def _headers(self, **extra: str) -> dict[str, str]:
        headers = dict(extra)
        token = await self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def upload(
        self,
        data: bytes,
        file_name: str,
        folder: str = DEFAULT_FOLDER,
        content_type: str | None = None,
    ) -> str:
        object_name = self.object_name(file_name, folder)
        resolved_type = self.resolve_content_type(file_name, content_type)
        try:
            headers = await self._headers(**{"Content-Type": resolved_type})
        except GoogleAuthError as e:
            raise classify_upload_status(
                None, f"storage token fetch failed: {e}", self.provider, object_name, original_exception=e
            ) from e

        params = {"uploadType": "media", "name": object_name}
        if "Authorization" in headers:
            # Anonymous writers cannot set ACLs; the bucket policy makes objects public instead
            params["predefinedAcl"] = "publicRead"

        try:
            response = await self.client.post(
                f"{self.UPLOAD_URL}/b/{self.bucket_name}/o",
                params=params,
                content=data,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise classify_upload_status(None, str(e), self.provider, object_name, original_exception=e) from e

        if response.is_error:
            raise classify_upload_status(response.status_code, response.text, self.provider, object_name)

        logger.info(
            "object_uploaded",
            provider=self.provider.value,
            object_name=object_name,
            size=len(data),
            content_type=resolved_type,
        )
        return self.locate(file_name, folder)

    async def delete(self, locator: str) -> None:
        location = self.parse(locator)
        try:
            headers = await self._headers()
        except GoogleAuthError as e:
            raise DeleteError(
                f"Failed to delete '{location.object_name}': storage token fetch failed: {e}",
                details={"provider": self.provider.value, "object_name": location.object_name},
                original_exception=e,
            ) from e
        if "Authorization" not in headers:
            raise AuthenticationRequiredError(
                f"Deleting '{location.object_name}' requires a storage credential",
                details={"provider": self.provider.value, "object_name": location.object_name},
            )

        try:
            response = await self.client.delete(self._object_url(location.object_name), headers=headers)
        except httpx.HTTPError as e:
            raise DeleteError(
                f"Failed to delete '{location.object_name}': {e}",
                details={"provider": self.provider.value, "object_name": location.object_name},
                original_exception=e,
            ) from e

        if response.status_code == 404:
            logger.warning("object_already_deleted", provider=self.provider.value, object_name=location.object_name)
            return
        if response.is_error:
            raise DeleteError(
                f"Failed to delete '{location.object_name}' (status {response.status_code})",
                details={
                    "provider": self.provider.value,
                    "object_name": location.object_name,
                    "status": response.status_code,
                },
            )
        logger.info("object_deleted", provider=self.provider.value, object_name=location.object_name)

    async def exists(self, file_name: str, folder: str = DEFAULT_FOLDER) -> bool:
        try:
            object_name = self.object_name(file_name, folder)
            response = await self.client.get(
                self._object_url(object_name), headers=await self._headers(Accept="application/json")
            )
        except (httpx.HTTPError, GoogleAuthError, ValidationError) as e:
            logger.warning("object_exists_check_failed", provider=self.provider.value, error=str(e))
            return False
        return response.is_success

    async def probe(self) -> bool:
        try:
            response = await self.client.get(
                f"{self.BASE_URL}/b/{self.bucket_name}", headers=await self._headers(Accept="application/json")
            )
        except Exception as e:
            logger.warning("storage_probe_failed", provider=self.provider.value, error=str(e))
            return False

        # 403 still proves the API answered
        reachable = response.is_success or response.status_code == 403
        logger.info(
            "storage_probe_completed", provider=self.provider.value, reachable=reachable, status=response.status_code
        )
        return reachable

    async def close(self) -> None:
        await self.client.aclose()
