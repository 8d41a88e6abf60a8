"""
Services module for phototimeline.

This module contains all service classes that handle business logic:
- IdentityAuthService: session and user profile handling
- StorageRouter: provider selection and dispatch to storage backends
- PhotoService: photo upload, listing and deletion
- ImageProcessor: image validation and thumbnail generation
- DocumentStore: photo record persistence
"""

from .auth import IdentityAuthService, UserProfile
from .document_store import DocumentStore, DuckDBDocumentStore, create_document_store
from .firebase_database import FirebaseDocumentStore
from .firebase_storage import FirebaseStorageBackend
from .gcs_rest import GCSRestBackend
from .gcs_server import GCSServerBackend
from .image_processor import ImageProcessor
from .photo import DeleteResult, PhotoService, create_photo_service
from .storage import BackendRegistry, StorageRouter, create_storage_router
from .storage_backend import StorageBackend

__all__ = [
    "IdentityAuthService",
    "UserProfile",
    "DocumentStore",
    "DuckDBDocumentStore",
    "FirebaseDocumentStore",
    "create_document_store",
    "StorageBackend",
    "FirebaseStorageBackend",
    "GCSRestBackend",
    "GCSServerBackend",
    "BackendRegistry",
    "StorageRouter",
    "create_storage_router",
    "ImageProcessor",
    "DeleteResult",
    "PhotoService",
    "create_photo_service",
]
