"""
Photo data model for phototimeline.

PhotoRecord is the document persisted per photo. Field names are serialized
in camelCase because records are shared with the web client through the same
document store.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class StorageProvider(str, Enum):
    """Identifies one object-storage backend."""

    FIREBASE = "firebase"
    GCS_BROWSER = "gcs-browser"
    GCS_SERVER = "gcs-server"

    @classmethod
    def parse(cls, value: "StorageProvider | str") -> "StorageProvider | None":
        """Return the matching member, or None if the value is not a provider."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class ObjectLocation:
    """A locator parsed back into the folder and object name it points to."""

    folder: str
    file_name: str

    @property
    def object_name(self) -> str:
        return f"{self.folder}/{self.file_name}" if self.folder else self.file_name


class UploadState(str, Enum):
    """States of one upload_photo call."""

    SELECTING_PROVIDER = "selecting_provider"
    UPLOADING_IMAGE = "uploading_image"
    UPLOADING_THUMBNAIL = "uploading_thumbnail"
    PERSISTING_METADATA = "persisting_metadata"
    RETRYING = "retrying"
    DONE = "done"


@dataclass
class UploadAttempt:
    """In-flight state of one attempt inside upload_photo. Never persisted."""

    number: int
    provider: StorageProvider | None = None
    file_name: str | None = None
    thumbnail_name: str | None = None
    image_url: str | None = None
    thumbnail_url: str | None = None
    state: UploadState = UploadState.SELECTING_PROVIDER

    @property
    def image_uploaded(self) -> bool:
        return self.image_url is not None

    @property
    def thumbnail_uploaded(self) -> bool:
        return self.thumbnail_url is not None

    def orphaned_locators(self) -> list[str]:
        """Objects this attempt stored that no record will reference."""
        return [url for url in (self.image_url, self.thumbnail_url) if url]


# Keys written by the upload flow; everything else is caller metadata.
_RECORD_KEYS = {
    "id",
    "imageUrl",
    "thumbnailUrl",
    "fileName",
    "thumbnailName",
    "fileSize",
    "fileType",
    "storageProvider",
    "photoDate",
    "uploadedAt",
}


@dataclass
class PhotoRecord:
    """
    A photo as stored in the document store.

    Created only after both the image and the thumbnail are stored. ``id`` is
    assigned by the document store and never changes.
    """

    id: str
    image_url: str
    thumbnail_url: str
    file_name: str
    thumbnail_name: str
    file_size: int
    file_type: str
    storage_provider: StorageProvider
    photo_date: str | None = None
    uploaded_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to the document shape stored in the database.

        Returns:
            Dictionary with camelCase keys and caller metadata merged in
        """
        document = dict(self.extra)
        document.update(
            {
                "id": self.id,
                "imageUrl": self.image_url,
                "thumbnailUrl": self.thumbnail_url,
                "fileName": self.file_name,
                "thumbnailName": self.thumbnail_name,
                "fileSize": self.file_size,
                "fileType": self.file_type,
                "storageProvider": self.storage_provider.value,
                "photoDate": self.photo_date,
                "uploadedAt": self.uploaded_at,
            }
        )
        return document

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PhotoRecord":
        """
        Create a PhotoRecord from a stored document.

        Args:
            data: Document as returned by the document store

        Returns:
            PhotoRecord instance
        """
        provider = StorageProvider.parse(data.get("storageProvider") or "") or StorageProvider.FIREBASE
        return cls(
            id=data["id"],
            image_url=data["imageUrl"],
            thumbnail_url=data["thumbnailUrl"],
            file_name=data.get("fileName", ""),
            thumbnail_name=data.get("thumbnailName", ""),
            file_size=int(data.get("fileSize") or 0),
            file_type=data.get("fileType") or "",
            storage_provider=provider,
            photo_date=data.get("photoDate"),
            uploaded_at=data.get("uploadedAt"),
            extra={k: v for k, v in data.items() if k not in _RECORD_KEYS},
        )

    @property
    def photo_datetime(self) -> datetime | None:
        """``photo_date`` parsed as a datetime, or None if missing or unparseable."""
        return parse_photo_date(self.photo_date)

    def get_display_name(self) -> str:
        """
        Get a user-friendly display name for the photo.

        Returns:
            Display name based on photo date or file name
        """
        taken = self.photo_datetime
        if taken:
            return f"{taken.strftime('%Y-%m-%d')} - {self.file_name}"
        return self.file_name


def parse_photo_date(value: Any) -> datetime | None:
    """Parse an ISO date or datetime string; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
