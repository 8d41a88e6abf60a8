"""
phototimeline - Photo timeline storage core

Uploads photos and their thumbnails to interchangeable cloud object stores and
keeps one metadata record per photo:
- Firebase Storage, GCS REST and GCS server-side backends behind one router
- Provider probing with fallback to the managed backend
- Thumbnail generation with Pillow
- Metadata records in DuckDB or the Firebase Realtime Database
"""

__version__ = "0.1.0"
__author__ = "phototimeline"
__description__ = "Photo timeline storage core with multi-backend object storage"
