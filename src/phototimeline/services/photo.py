"""
Photo upload orchestration.

An upload stores the full image and a JPEG thumbnail through the storage
router, then writes one PhotoRecord to the document store. When the REST
backend fails anywhere in that sequence the whole upload is restarted once on
the managed backend with fresh file names.

Objects stored by a failed attempt are not cleaned up. They are logged with
the ``orphaned_objects`` event so that they can be found and removed later.
"""

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..config import Config
from ..error_handling import DatabaseError, PhotoNotFoundError, UploadError, UploadFailedError
from ..logging_config import get_logger, log_error, log_performance
from ..models.photo import PhotoRecord, StorageProvider, UploadAttempt, UploadState
from .document_store import DocumentStore, create_document_store
from .image_processor import ImageProcessor
from .storage import StorageRouter, create_storage_router
from .storage_backend import guess_content_type

logger = get_logger(__name__)


@dataclass
class DeleteResult:
    """Outcome of delete_photo. The record is always gone when this is returned."""

    photo_id: str
    deleted_locators: list[str] = field(default_factory=list)
    failed_locators: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_locators


class MillisecondClock:
    """Millisecond epoch timestamps that strictly increase within one process."""

    def __init__(self, source: Callable[[], float] = time.time) -> None:
        self._source = source
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = int(self._source() * 1000)
            self._last = now if now > self._last else self._last + 1
            return self._last


class PhotoService:
    """Uploads, lists and deletes photos."""

    MAX_ATTEMPTS = 2
    COLLECTION = "photos"
    ORDER_FIELD = "photoDate"
    FALLBACK_PROVIDER = StorageProvider.FIREBASE
    RETRYABLE_PROVIDERS = frozenset({StorageProvider.GCS_BROWSER})

    def __init__(
        self,
        router: StorageRouter,
        document_store: DocumentStore,
        image_processor: ImageProcessor | None = None,
        config: Config | None = None,
        clock: MillisecondClock | None = None,
    ) -> None:
        self.config = config or Config()
        self.router = router
        self.document_store = document_store
        self.image_processor = image_processor or ImageProcessor(self.config)
        self.clock = clock or MillisecondClock()
        self.folder = self.config.storage_folder

    def generate_file_names(self, source_name: str) -> tuple[str, str]:
        """Return ``(photo_<ts>.<ext>, thumbnail_<ts>.<ext>)`` for a source file name."""
        extension = Path(source_name or "").suffix.lstrip(".").lower() or "jpg"
        timestamp = self.clock.next()
        return f"photo_{timestamp}.{extension}", f"thumbnail_{timestamp}.{extension}"

    async def create_thumbnail(
        self, image_data: bytes, max_width: int = 300, max_height: int = 300, quality: float = 0.8
    ) -> bytes:
        """Resize into the bounding box and re-encode as JPEG, off the event loop."""
        return await asyncio.to_thread(
            self.image_processor.generate_thumbnail, image_data, (max_width, max_height), quality
        )

    async def upload_photo(
        self,
        image_data: bytes,
        source_name: str,
        metadata: dict[str, Any] | None = None,
        content_type: str | None = None,
    ) -> str:
        """
        Store an image with its thumbnail and record it.

        Args:
            image_data: Raw image bytes
            source_name: Original file name; its suffix becomes the object suffix
            metadata: Caller fields stored on the record, e.g. ``photoDate``
            content_type: MIME type of the source, guessed from the name if omitted

        Returns:
            str: Id of the new photo record

        Raises:
            ValidationError: If the image is empty or too large
            ImageProcessingError: If the image cannot be decoded
            UploadFailedError: If storing failed and no retry was left
        """
        self.image_processor.validate_file_size(image_data, source_name)
        metadata = dict(metadata or {})
        file_type = content_type or guess_content_type(source_name, "application/octet-stream")
        if not metadata.get(self.ORDER_FIELD):
            taken_at = self.image_processor.extract_exif_date(image_data)
            if taken_at is not None:
                metadata[self.ORDER_FIELD] = taken_at.isoformat()

        start_time = datetime.now()
        forced_provider: StorageProvider | None = None

        for number in range(1, self.MAX_ATTEMPTS + 1):
            attempt = UploadAttempt(number=number)
            try:
                photo_id = await self._run_attempt(
                    attempt, image_data, source_name, metadata, file_type, forced_provider
                )
            except (UploadError, DatabaseError) as e:
                self._log_orphans(attempt, e)
                if attempt.provider in self.RETRYABLE_PROVIDERS and number < self.MAX_ATTEMPTS:
                    attempt.state = UploadState.RETRYING
                    logger.warning(
                        "upload_retrying_on_fallback",
                        attempt=number,
                        failed_provider=attempt.provider.value,
                        fallback_provider=self.FALLBACK_PROVIDER.value,
                        error_code=e.code,
                    )
                    forced_provider = self.FALLBACK_PROVIDER
                    continue

                raise UploadFailedError(
                    f"Upload of '{source_name}' failed after {number} attempt(s): {e}",
                    details={
                        "source_name": source_name,
                        "attempts": number,
                        "last_provider": attempt.provider.value if attempt.provider else None,
                        "cause_code": e.code,
                    },
                    original_exception=e,
                ) from e

            log_performance(
                "upload_photo",
                (datetime.now() - start_time).total_seconds(),
                attempts=number,
                provider=attempt.provider.value if attempt.provider else None,
                file_size=len(image_data),
            )
            return photo_id

        raise AssertionError("unreachable")  # pragma: no cover

    async def _run_attempt(
        self,
        attempt: UploadAttempt,
        image_data: bytes,
        source_name: str,
        metadata: dict[str, Any],
        file_type: str,
        forced_provider: StorageProvider | None,
    ) -> str:
        attempt.state = UploadState.SELECTING_PROVIDER
        if forced_provider is not None:
            attempt.provider = self.router.set_provider(forced_provider)
        else:
            attempt.provider = await self.router.select_best_provider()

        attempt.file_name, attempt.thumbnail_name = self.generate_file_names(source_name)
        logger.info(
            "upload_attempt_started",
            attempt=attempt.number,
            provider=attempt.provider.value,
            file_name=attempt.file_name,
        )

        thumbnail_data = await self.create_thumbnail(
            image_data,
            self.image_processor.thumbnail_max_size,
            self.image_processor.thumbnail_max_size,
            self.image_processor.thumbnail_quality,
        )

        attempt.state = UploadState.UPLOADING_IMAGE
        attempt.image_url = await self.router.upload(
            image_data, attempt.file_name, self.folder, file_type, provider=attempt.provider
        )

        attempt.state = UploadState.UPLOADING_THUMBNAIL
        attempt.thumbnail_url = await self.router.upload(
            thumbnail_data, attempt.thumbnail_name, self.folder, "image/jpeg", provider=attempt.provider
        )

        attempt.state = UploadState.PERSISTING_METADATA
        photo_id = await self.save_photo_data(
            {
                **metadata,
                "imageUrl": attempt.image_url,
                "thumbnailUrl": attempt.thumbnail_url,
                "fileName": attempt.file_name,
                "thumbnailName": attempt.thumbnail_name,
                "fileSize": len(image_data),
                "fileType": file_type,
                "storageProvider": attempt.provider.value,
            }
        )

        attempt.state = UploadState.DONE
        logger.info("photo_uploaded", photo_id=photo_id, provider=attempt.provider.value, attempt=attempt.number)
        return photo_id

    def _log_orphans(self, attempt: UploadAttempt, error: Exception) -> None:
        orphans = attempt.orphaned_locators()
        if orphans:
            logger.warning(
                "orphaned_objects",
                attempt=attempt.number,
                provider=attempt.provider.value if attempt.provider else None,
                failed_state=attempt.state.value,
                locators=orphans,
                error=str(error),
            )

    async def save_photo_data(self, photo_data: dict[str, Any]) -> str:
        """Stamp ``uploadedAt`` and create the record; the store assigns the id."""
        document = {key: value for key, value in photo_data.items() if key != "id"}
        document["uploadedAt"] = datetime.now(UTC).isoformat()
        return await self.document_store.create(self.COLLECTION, document)

    async def get_all_photos(self) -> list[PhotoRecord]:
        """
        All photos, newest ``photoDate`` first.

        Records without a usable date come last.
        """
        documents = await self.document_store.list(self.COLLECTION, self.ORDER_FIELD)
        records = [PhotoRecord.from_dict(document) for document in documents]

        dated = [record for record in records if record.photo_datetime is not None]
        undated = [record for record in records if record.photo_datetime is None]
        dated.sort(key=lambda record: record.photo_datetime, reverse=True)  # type: ignore[arg-type, return-value]

        logger.debug("photos_listed", count=len(records))
        return dated + undated

    async def get_photo_by_id(self, photo_id: str) -> PhotoRecord:
        """
        Raises:
            PhotoNotFoundError: If no record has this id
        """
        document = await self.document_store.get(self.COLLECTION, photo_id)
        if document is None:
            raise PhotoNotFoundError(photo_id)
        return PhotoRecord.from_dict(document)

    async def delete_photo(self, photo_id: str, image_url: str | None, thumbnail_url: str | None = None) -> DeleteResult:
        """
        Delete a photo record, then its objects.

        The record goes first and its failure propagates. Object deletions are
        attempted independently through whichever backend owns each locator;
        a failed one is logged and reported in the result.
        """
        await self.document_store.remove(self.COLLECTION, photo_id)
        result = DeleteResult(photo_id=photo_id)

        for locator in (image_url, thumbnail_url):
            if not locator:
                continue
            try:
                await self.router.delete(locator)
            except Exception as e:
                log_error(e, {"operation": "delete_photo", "photo_id": photo_id, "locator": locator})
                result.failed_locators.append(locator)
            else:
                result.deleted_locators.append(locator)

        logger.info(
            "photo_deleted",
            photo_id=photo_id,
            deleted=len(result.deleted_locators),
            failed=len(result.failed_locators),
        )
        return result

    def get_storage_path_from_url(self, url: str) -> str:
        """Return ``folder/file_name`` for a locator of any registered backend."""
        _, location = self.router.parse_locator(url)
        return location.object_name

    async def aclose(self) -> None:
        await self.router.aclose()
        await self.document_store.close()


def create_photo_service(config: Config | None = None, token_provider: Any = None) -> PhotoService:
    """
    Wire a PhotoService from configuration.

    Args:
        config: Settings snapshot, read from the environment if omitted
        token_provider: Coroutine returning the signed-in user's token, used by
            the Firebase document store
    """
    config = config or Config()
    store: DocumentStore
    if config.firebase_database_url and token_provider is not None:
        from .firebase_database import FirebaseDocumentStore

        store = FirebaseDocumentStore.from_config(config, token_provider=token_provider)
    else:
        store = create_document_store(config)
    return PhotoService(create_storage_router(config), store, config=config)
