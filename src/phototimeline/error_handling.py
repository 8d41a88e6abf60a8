"""
Error taxonomy for phototimeline.

Every error carries a machine-readable ``code``, a human-readable
``user_message`` that is safe to show to end users, and a ``details`` dict for
diagnostics. Raw backend status codes and exception text go to ``details`` and
to the log, never into ``user_message``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .logging_config import log_error, log_security_event


class ErrorCategory(Enum):
    """Error categories for classification and handling."""

    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    UPLOAD = "upload"
    DELETE = "delete"
    STORAGE = "storage"
    LOCATOR = "locator"
    IMAGE_PROCESSING = "image_processing"
    DATABASE = "database"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorInfo:
    """Structured error information."""

    category: ErrorCategory
    severity: ErrorSeverity
    code: str
    message: str
    user_message: str
    details: dict[str, Any]
    timestamp: datetime
    recoverable: bool = True
    retry_suggested: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert error info to dictionary."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "retry_suggested": self.retry_suggested,
        }


class PhotoTimelineError(Exception):
    """Base exception class for phototimeline."""

    default_user_messages = {
        ErrorCategory.CONFIGURATION: "The application is not configured correctly.",
        ErrorCategory.AUTHENTICATION: "Authentication failed. Please sign in again.",
        ErrorCategory.UPLOAD: "The file could not be uploaded.",
        ErrorCategory.DELETE: "The file could not be deleted.",
        ErrorCategory.STORAGE: "The storage service could not be reached.",
        ErrorCategory.LOCATOR: "The file address is not recognized.",
        ErrorCategory.IMAGE_PROCESSING: "The image could not be processed.",
        ErrorCategory.DATABASE: "The photo data could not be saved or loaded.",
        ErrorCategory.VALIDATION: "The input is not valid.",
        ErrorCategory.UNKNOWN: "An unexpected error occurred.",
    }

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
        retry_suggested: bool = False,
        original_exception: Exception | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.code = code or f"{category.value}_error"
        self.user_message = user_message or self.default_user_messages.get(category, "An error occurred.")
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_suggested = retry_suggested
        self.original_exception = original_exception
        self.timestamp = datetime.now()

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with its classification."""
        error_context = {
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "recoverable": self.recoverable,
            "retry_suggested": self.retry_suggested,
            **self.details,
        }

        if self.original_exception:
            error_context["original_exception"] = str(self.original_exception)

        log_error(self, error_context)

        if self.category is ErrorCategory.AUTHENTICATION:
            log_security_event(self.category.value, context=error_context)

    def get_error_info(self) -> ErrorInfo:
        """Get structured error information."""
        return ErrorInfo(
            category=self.category,
            severity=self.severity,
            code=self.code,
            message=str(self),
            user_message=self.user_message,
            details=self.details,
            timestamp=self.timestamp,
            recoverable=self.recoverable,
            retry_suggested=self.retry_suggested,
        )


class ConfigurationError(PhotoTimelineError):
    """Required settings are missing or invalid. Raised at construction time."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            code=code or "missing_configuration",
            user_message=user_message,
            details=details,
            recoverable=False,
            retry_suggested=False,
        )


class UploadError(PhotoTimelineError):
    """Transport, permission or quota failure while storing an object."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.UPLOAD,
            severity=ErrorSeverity.MEDIUM,
            code=code or "upload_failed",
            user_message=user_message or "The file could not be uploaded. Please try again.",
            details=details,
            recoverable=True,
            retry_suggested=True,
            original_exception=original_exception,
        )


class UploadFailedError(PhotoTimelineError):
    """Every allowed provider was tried and the upload still failed."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.UPLOAD,
            severity=ErrorSeverity.HIGH,
            code="all_providers_failed",
            user_message="All storage options failed. Please try again later.",
            details=details,
            recoverable=False,
            retry_suggested=True,
            original_exception=original_exception,
        )


class DeleteError(PhotoTimelineError):
    """Deleting an object failed. ``object_not_found`` is treated as success by callers."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.DELETE,
            severity=ErrorSeverity.MEDIUM if code == "object_not_found" else ErrorSeverity.HIGH,
            code=code or "delete_failed",
            user_message=user_message,
            details=details,
            recoverable=True,
            retry_suggested=code != "object_not_found",
            original_exception=original_exception,
        )

    @property
    def is_not_found(self) -> bool:
        return self.code == "object_not_found"


class InvalidLocatorError(PhotoTimelineError):
    """A locator does not match the namespace of the backend asked to parse it."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            category=ErrorCategory.LOCATOR,
            severity=ErrorSeverity.LOW,
            code="invalid_locator",
            user_message="The file address is not recognized by any storage backend.",
            details=details,
            recoverable=False,
            retry_suggested=False,
        )


class InvalidProviderError(PhotoTimelineError):
    """An unknown or unregistered storage provider was requested."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            code="invalid_provider",
            user_message="The selected storage provider is not available.",
            details=details,
            recoverable=False,
            retry_suggested=False,
        )


class AuthenticationError(PhotoTimelineError):
    """The user session is missing, malformed or expired."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.HIGH,
            code=code or "auth_failed",
            user_message=user_message or "Authentication failed. Please sign in again.",
            details=details,
            recoverable=True,
            retry_suggested=True,
            original_exception=original_exception,
        )


class AuthenticationRequiredError(PhotoTimelineError):
    """An operation needs a credential the backend cannot obtain."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.HIGH,
            code="credential_required",
            user_message="This operation requires storage credentials that are not available.",
            details=details,
            recoverable=False,
            retry_suggested=False,
        )


class ImageProcessingError(PhotoTimelineError):
    """Image decoding or thumbnail encoding failed."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.IMAGE_PROCESSING,
            severity=ErrorSeverity.MEDIUM,
            code=code or "image_processing_failed",
            user_message=user_message or "The image could not be processed. Please check the file format.",
            details=details,
            recoverable=True,
            retry_suggested=False,
            original_exception=original_exception,
        )


class ValidationError(PhotoTimelineError):
    """Caller input was rejected before any I/O happened."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            code=code or "validation_failed",
            user_message=user_message or "The input is not valid. Please check it and try again.",
            details=details,
            recoverable=True,
            retry_suggested=False,
        )


class DatabaseError(PhotoTimelineError):
    """Document store failure."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.DATABASE,
            severity=ErrorSeverity.HIGH,
            code=code or "database_error",
            user_message=user_message or "The photo data could not be saved or loaded. Please try again later.",
            details=details,
            recoverable=True,
            retry_suggested=True,
            original_exception=original_exception,
        )


class PhotoNotFoundError(DatabaseError):
    """No photo record exists for the requested id."""

    def __init__(self, photo_id: str):
        super().__init__(
            f"Photo not found: {photo_id}",
            code="photo_not_found",
            user_message="The photo does not exist.",
            details={"photo_id": photo_id},
        )
        self.recoverable = False
        self.retry_suggested = False


class StorageLookupError(PhotoTimelineError):
    """Reading object metadata or listing a folder failed."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.MEDIUM,
            code=code or "storage_lookup_failed",
            details=details,
            recoverable=True,
            retry_suggested=code != "object_not_found",
            original_exception=original_exception,
        )
