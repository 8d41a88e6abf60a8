"""
Models module for phototimeline.

- StorageProvider: enumeration of object-storage backends
- ObjectLocation: a locator parsed back into folder and object name
- PhotoRecord: the persisted photo document
- UploadAttempt / UploadState: transient state of one upload attempt
"""

from .photo import ObjectLocation, PhotoRecord, StorageProvider, UploadAttempt, UploadState, parse_photo_date

__all__ = [
    "ObjectLocation",
    "PhotoRecord",
    "StorageProvider",
    "UploadAttempt",
    "UploadState",
    "parse_photo_date",
]
