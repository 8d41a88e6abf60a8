"""
Common contract for object-storage backends.

Every backend stores raw bytes under ``<folder>/<file_name>``, makes the
object publicly readable as part of the upload, and hands back a locator URL
that a plain HTTP GET can dereference. Locators of different backends never
overlap, so any locator can be routed back to the backend that produced it.
"""

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any

from ..error_handling import InvalidLocatorError, UploadError, ValidationError
from ..models.photo import ObjectLocation, StorageProvider

DEFAULT_FOLDER = "photos"

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
}

# status -> (code, user message)
UPLOAD_STATUS_CAUSES = {
    401: ("upload_unauthenticated", "Authentication with the storage service failed. Please sign in again."),
    403: ("upload_forbidden", "You do not have permission to upload to this storage bucket."),
    404: ("upload_bucket_not_found", "The storage bucket could not be found. Please check the bucket name."),
    409: ("upload_conflict", "A file with the same name is being written. Please try again."),
    413: ("upload_too_large", "The file is too large. Please compress it and try again."),
    429: ("upload_rate_limited", "Too many requests. Please wait a moment and try again."),
}


def guess_content_type(file_name: str, default: str = "application/octet-stream") -> str:
    """
    Determine content type from a file name suffix.

    Args:
        file_name: File name
        default: Returned for unknown suffixes

    Returns:
        str: MIME content type
    """
    return CONTENT_TYPES.get(Path(file_name).suffix.lower(), default)


def classify_upload_status(
    status: int | None,
    message: str,
    provider: StorageProvider,
    object_name: str,
    original_exception: Exception | None = None,
) -> UploadError:
    """
    Turn a failed upload into an UploadError with a distinct, readable cause.

    Args:
        status: HTTP status reported by the backend, if any
        message: Raw backend message, kept for diagnostics only
        provider: Backend that failed
        object_name: Object being written

    Returns:
        UploadError: Error to raise
    """
    details: dict[str, Any] = {
        "provider": provider.value,
        "object_name": object_name,
        "status": status,
        "backend_message": message,
    }
    if status in UPLOAD_STATUS_CAUSES:
        code, user_message = UPLOAD_STATUS_CAUSES[status]
        return UploadError(
            f"{provider.value} upload of '{object_name}' failed with status {status}: {message}",
            code=code,
            user_message=user_message,
            details=details,
            original_exception=original_exception,
        )
    return UploadError(
        f"{provider.value} upload of '{object_name}' failed: {message}",
        details=details,
        original_exception=original_exception,
    )


def clean_file_name(file_name: str) -> str:
    """Strip any directory part from a file name, rejecting names that are empty afterwards."""
    safe_name = Path(file_name).name if file_name else ""
    if safe_name in ("", ".", ".."):
        raise ValidationError(
            f"Invalid object file name: {file_name!r}",
            code="invalid_file_name",
            details={"file_name": file_name},
        )
    return safe_name


def clean_folder(folder: str) -> str:
    """Normalize a folder to ``a/b`` form, rejecting parent-directory segments."""
    parts = [part for part in PurePosixPath(folder or "").parts if part not in ("/", ".")]
    if ".." in parts:
        raise ValidationError(
            f"Invalid object folder: {folder!r}",
            code="invalid_folder",
            details={"folder": folder},
        )
    return "/".join(parts)


def split_object_name(object_name: str) -> ObjectLocation:
    """Split ``folder/sub/name`` into its folder and file name."""
    folder, _, file_name = object_name.rpartition("/")
    return ObjectLocation(folder=folder, file_name=file_name)


class StorageBackend(ABC):
    """Uniform upload/delete/exists/locate/parse/probe contract."""

    provider: StorageProvider
    default_content_type = "application/octet-stream"

    def object_name(self, file_name: str, folder: str = DEFAULT_FOLDER) -> str:
        """Build the full object path for a file inside a folder."""
        safe_folder = clean_folder(folder)
        safe_name = clean_file_name(file_name)
        return f"{safe_folder}/{safe_name}" if safe_folder else safe_name

    def resolve_content_type(self, file_name: str, content_type: str | None) -> str:
        """Explicit type first, then the file suffix, then this backend's default."""
        return content_type or guess_content_type(file_name, self.default_content_type)

    def owns(self, locator: str) -> bool:
        """True when ``locator`` belongs to this backend's namespace."""
        return self._match(locator) is not None

    def parse(self, locator: str) -> ObjectLocation:
        """
        Parse a locator produced by this backend.

        Raises:
            InvalidLocatorError: If the locator belongs to another namespace
        """
        object_name = self._match(locator)
        if not object_name:
            raise InvalidLocatorError(
                f"Locator does not belong to {self.provider.value}: {locator}",
                details={"provider": self.provider.value, "locator": locator},
            )
        return split_object_name(object_name)

    @abstractmethod
    def _match(self, locator: str) -> str | None:
        """Return the decoded object name if ``locator`` is ours, else None."""

    @abstractmethod
    def locate(self, file_name: str, folder: str = DEFAULT_FOLDER) -> str:
        """Return the public locator of an object without any I/O."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        file_name: str,
        folder: str = DEFAULT_FOLDER,
        content_type: str | None = None,
    ) -> str:
        """Store ``data`` publicly readable and return its locator."""

    @abstractmethod
    async def delete(self, locator: str) -> None:
        """Delete the object behind ``locator``. Missing objects are not an error."""

    @abstractmethod
    async def exists(self, file_name: str, folder: str = DEFAULT_FOLDER) -> bool:
        """Check whether an object exists. Never raises."""

    @abstractmethod
    async def probe(self) -> bool:
        """Read-only reachability check. Never raises."""

    async def close(self) -> None:
        """Release network resources held by the backend."""
