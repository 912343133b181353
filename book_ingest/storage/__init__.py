# book_ingest/storage/__init__.py
# ============================================================
# Storage Package
# ============================================================
# Cloudinary REST client shared by the render provider and the
# durable page-image store.
#
# Key classes:
#   - CloudinaryClient: signed upload / destroy / delivery URLs
#   - CloudinaryObjectStorage: ObjectStorage over CloudinaryClient
# ============================================================

from book_ingest.storage.cloudinary import (
    CloudinaryClient,
    CloudinaryCredentials,
    CloudinaryObjectStorage,
)

__all__ = ["CloudinaryClient", "CloudinaryCredentials", "CloudinaryObjectStorage"]
