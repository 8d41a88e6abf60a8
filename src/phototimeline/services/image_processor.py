"""Image validation, EXIF dates and thumbnail generation."""

import io
from datetime import datetime
from typing import Any

from PIL import ExifTags, Image, ImageOps

from ..config import Config
from ..error_handling import ImageProcessingError, ValidationError
from ..logging_config import get_logger, log_error, log_performance

try:
    from pillow_heif import register_heif_opener  # type: ignore[import-untyped]

    register_heif_opener()
    HEIF_AVAILABLE = True
except ImportError:
    HEIF_AVAILABLE = False

logger = get_logger(__name__)


class ImageProcessor:
    """Service for validating images and producing thumbnails."""

    # EXIF date tags in priority order
    EXIF_DATE_TAGS = [
        "DateTimeOriginal",
        "DateTime",
        "DateTimeDigitized",
    ]

    def __init__(self, config: Config | None = None) -> None:
        config = config or Config()
        self.max_file_size = config.max_file_size
        self.thumbnail_max_size = config.thumbnail_max_size
        self.thumbnail_quality = config.thumbnail_quality

        if not HEIF_AVAILABLE:
            logger.warning("heif_support_unavailable", message="Install pillow-heif for HEIC support")

    def validate_file_size(self, image_data: bytes, filename: str) -> None:
        """
        Validate that the file is non-empty and within the size limit.

        Raises:
            ValidationError: If the file is empty or too large
        """
        file_size = len(image_data)

        if file_size == 0:
            raise ValidationError(
                f"File '{filename}' is empty",
                code="file_empty",
                user_message="The selected file is empty.",
                details={"filename": filename},
            )

        if file_size > self.max_file_size:
            max_size_mb = self.max_file_size / (1024 * 1024)
            current_size_mb = file_size / (1024 * 1024)
            raise ValidationError(
                f"File '{filename}' is too large ({current_size_mb:.1f}MB). Maximum size: {max_size_mb:.0f}MB",
                code="file_too_large",
                user_message=f"The file is too large. Maximum size: {max_size_mb:.0f}MB",
                details={
                    "filename": filename,
                    "file_size": file_size,
                    "max_size": self.max_file_size,
                },
            )

        logger.debug("file_size_valid", filename=filename, file_size=file_size)

    def extract_exif_date(self, image_data: bytes) -> datetime | None:
        """
        Extract the capture date from EXIF data.

        Returns:
            datetime: Capture date if found, None otherwise
        """
        try:
            with Image.open(io.BytesIO(image_data)) as image:
                exif_data = dict(image.getexif())
        except Exception as e:
            log_error(e, {"operation": "extract_exif_date"})
            return None

        if not exif_data:
            return None

        for tag_name in self.EXIF_DATE_TAGS:
            date_value = self._get_exif_date_by_name(exif_data, tag_name)
            if date_value:
                logger.debug("exif_date_extracted", tag_name=tag_name, date_value=date_value.isoformat())
                return date_value
        return None

    def _get_exif_date_by_name(self, exif_data: dict[Any, Any], tag_name: str) -> datetime | None:
        tag_id = next((tag for tag, name in ExifTags.TAGS.items() if name == tag_name), None)
        date_string = exif_data.get(tag_id) if tag_id is not None else None
        if not date_string:
            return None
        try:
            # EXIF format: "YYYY:MM:DD HH:MM:SS"
            return datetime.strptime(str(date_string), "%Y:%m:%d %H:%M:%S")
        except ValueError as e:
            logger.debug("exif_date_parse_failed", tag_name=tag_name, date_string=date_string, error=str(e))
            return None

    def generate_thumbnail(
        self, image_data: bytes, max_size: tuple[int, int] | None = None, quality: float | None = None
    ) -> bytes:
        """
        Generate a JPEG thumbnail that fits inside ``max_size``.

        Args:
            image_data: Raw image data as bytes
            max_size: Bounding box as (width, height)
            quality: Encoder quality as a fraction in (0, 1]

        Returns:
            bytes: Thumbnail image data as JPEG bytes

        Raises:
            ImageProcessingError: If the image cannot be decoded or encoded
        """
        start_time = datetime.now()

        if max_size is None:
            max_size = (self.thumbnail_max_size, self.thumbnail_max_size)
        if quality is None:
            quality = self.thumbnail_quality
        jpeg_quality = self._jpeg_quality(quality)

        try:
            with Image.open(io.BytesIO(image_data)) as image:
                image = ImageOps.exif_transpose(image)
                original_size = image.size

                if image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")

                thumbnail_size = self._calculate_thumbnail_size(original_size, max_size)
                resized_image = image.resize(thumbnail_size, Image.Resampling.LANCZOS)

                thumbnail_buffer = io.BytesIO()
                resized_image.save(thumbnail_buffer, format="JPEG", quality=jpeg_quality, optimize=True)
                thumbnail_data = thumbnail_buffer.getvalue()

        except Exception as e:
            raise ImageProcessingError(
                f"Failed to generate thumbnail: {e}",
                code="thumbnail_generation_failed",
                user_message="The thumbnail could not be created. Please check the image format.",
                details={
                    "original_file_size": len(image_data),
                    "max_size": list(max_size),
                    "quality": quality,
                },
                original_exception=e,
            ) from e

        log_performance(
            "generate_thumbnail",
            (datetime.now() - start_time).total_seconds(),
            original_size=original_size,
            thumbnail_size=thumbnail_size,
            original_file_size=len(image_data),
            thumbnail_file_size=len(thumbnail_data),
            quality=jpeg_quality,
        )
        return thumbnail_data

    @staticmethod
    def _jpeg_quality(quality: float) -> int:
        """Map a (0, 1] fraction onto Pillow's 1-95 JPEG scale."""
        return max(1, min(95, round(quality * 100)))

    def _calculate_thumbnail_size(self, original_size: tuple[int, int], max_size: tuple[int, int]) -> tuple[int, int]:
        """
        Calculate thumbnail size while preserving aspect ratio.

        Images already inside the box keep their size.

        Args:
            original_size: Original image size as (width, height)
            max_size: Maximum allowed size as (width, height)

        Returns:
            tuple: Calculated thumbnail size as (width, height)
        """
        original_width, original_height = original_size
        max_width, max_height = max_size

        scale_ratio = min(max_width / original_width, max_height / original_height, 1.0)

        new_width = max(1, round(original_width * scale_ratio))
        new_height = max(1, round(original_height * scale_ratio))

        return (new_width, new_height)
