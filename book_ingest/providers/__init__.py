"""Provider interfaces used by the ingestion pipeline."""

from book_ingest.providers.base import (
    ObjectStorage,
    OcrProvider,
    RenderHandle,
    RenderProvider,
    StoredObject,
    TextModel,
)

__all__ = [
    "ObjectStorage",
    "OcrProvider",
    "RenderHandle",
    "RenderProvider",
    "StoredObject",
    "TextModel",
]
