"""Capability interfaces for the external services the pipeline consumes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Union

from book_ingest.errors import InvalidArgument

if TYPE_CHECKING:
    from book_ingest.render.provider import Document

__all__ = [
    "ObjectStorage",
    "OcrProvider",
    "RenderHandle",
    "RenderProvider",
    "StoredObject",
    "TextModel",
]


@dataclass(frozen=True)
class RenderHandle:
    """Identifies a source document registered with the render provider."""

    source_id: str
    source_version: Union[str, int]
    page_count: int

    def __post_init__(self) -> None:
        if isinstance(self.page_count, bool) or not isinstance(self.page_count, int) or self.page_count < 1:
            raise InvalidArgument(f"page_count must be an int >= 1, got {self.page_count!r}")


@dataclass(frozen=True)
class StoredObject:
    """Where an uploaded object can be fetched, and the store's handle for it."""

    public_url: str
    object_handle: str


class RenderProvider(ABC):
    """Registers documents and computes per-page image locators."""

    @abstractmethod
    async def register_source(self, document: "Document") -> RenderHandle:
        """Upload the document once. Raises UploadError on rejection."""

    @abstractmethod
    def page_locator(self, handle: RenderHandle, page_number: int) -> str:
        """Return the image URL for one page. Pure; performs no I/O."""


class OcrProvider(ABC):
    """Recognizes text in an image reachable by URL."""

    @abstractmethod
    async def recognize(self, image_url: str, language: str) -> str:
        """Return the recognized text. Raises OcrError on failure."""


class TextModel(ABC):
    """One named generative text model, tried as a metadata candidate."""

    name: str

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the model's text answer. Raises ProviderError on failure."""


class ObjectStorage(ABC):
    """Durable, publicly readable object storage for page images."""

    @abstractmethod
    async def upload(self, local_path: Path, folder: str, object_id: str) -> StoredObject:
        """Store a file without overwriting. Raises StorageError on failure."""

    @abstractmethod
    async def delete(self, object_handle: str) -> None:
        """Remove a previously stored object. Raises StorageError on failure."""
