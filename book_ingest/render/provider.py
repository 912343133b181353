# book_ingest/render/provider.py
# ============================================================
# Render Provider Adapter — Source Registration & Page Locators
# ============================================================
# The pipeline never rasterizes PDFs itself. The source document
# is uploaded once to Cloudinary, which renders any page on
# demand from a deterministic delivery URL:
#
#   https://res.cloudinary.com/<cloud>/image/upload/pg_<n>/v<version>/<public_id>.jpg
#
# Design Decisions:
#   1. register_source() makes exactly one outbound upload and
#      never retries; the caller decides what a rejection means.
#   2. page_locator() is pure string construction, so it can be
#      recomputed for every page instead of being stored.
#   3. When Cloudinary does not report a page count, the count is
#      read locally with pypdf.
#
# Usage:
#   provider = CloudinaryRenderProvider(client, folder_prefix="books")
#   handle = await provider.register_source(Document.from_path("book.pdf"))
#   cover_url = provider.page_locator(handle, 1)
# ============================================================

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from book_ingest.errors import InvalidArgument, StorageError, UploadError
from book_ingest.providers.base import RenderHandle, RenderProvider
from book_ingest.storage.cloudinary import CloudinaryClient
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_SOURCE_EXTENSIONS = {".pdf"}


# ============================================================
# Data Classes
# ============================================================

@dataclass(frozen=True)
class Document:
    """
    The uploaded source file. Owned by the caller; the pipeline only reads it.

    Attributes:
        path: Local path of the PDF.
        size_bytes: File size at the time the Document was created.
    """
    path: Path
    size_bytes: int

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Document":
        """
        Describe a local PDF.

        Raises:
            FileNotFoundError: If the path does not exist.
            InvalidArgument: If the file is not a PDF or is empty.
        """
        path = Path(path)

        if not path.is_file():
            raise FileNotFoundError(f"Source document not found: {path}")

        if path.suffix.lower() not in SUPPORTED_SOURCE_EXTENSIONS:
            raise InvalidArgument(
                f"Unsupported file format: '{path.suffix}'. Supported: PDF"
            )

        size = path.stat().st_size
        if size == 0:
            raise InvalidArgument(f"Source document is empty: {path}")

        return cls(path=path, size_bytes=size)

    def count_pages(self) -> Optional[int]:
        """Return the page count read with pypdf, or None if the file can't be parsed."""
        try:
            return len(PdfReader(str(self.path)).pages)
        except (PdfReadError, OSError, ValueError) as e:
            logger.warning(f"Could not count pages of {self.path.name} locally: {e}")
            return None


# ============================================================
# Cloudinary Render Provider
# ============================================================

class CloudinaryRenderProvider(RenderProvider):
    """
    Registers PDFs with Cloudinary and derives per-page image URLs.

    Args:
        client: Shared CloudinaryClient (carries credentials and timeouts).
        folder_prefix: Uploaded sources land in ``<prefix>/<ms timestamp>``.
        page_format: Image format requested for every page.
    """

    def __init__(
        self,
        client: CloudinaryClient,
        folder_prefix: str = "books",
        page_format: str = "jpg",
    ):
        self.client = client
        self.folder_prefix = folder_prefix.strip("/")
        self.page_format = page_format

    async def register_source(self, document: Document) -> RenderHandle:
        folder = f"{self.folder_prefix}/{int(time.time() * 1000)}"
        start = time.perf_counter()

        logger.info(
            f"Registering [bold]{document.path.name}[/bold] "
            f"({document.size_bytes / 1024:.0f} KB) under {folder}"
        )

        try:
            body = await self.client.upload(
                document.path,
                folder=folder,
                use_filename=True,
                unique_filename=True,
            )
        except StorageError as e:
            raise UploadError(f"Render provider rejected {document.path.name}: {e}") from e

        version = body.get("version")
        if version is None:
            raise UploadError(f"Render provider returned no version for {document.path.name}")

        page_count = body.get("pages") or document.count_pages() or 1

        handle = RenderHandle(
            source_id=body["public_id"],
            source_version=version,
            page_count=int(page_count),
        )
        logger.info(
            f"Registered as [bold]{handle.source_id}[/bold] v{handle.source_version} — "
            f"{handle.page_count} pages in {(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return handle

    def page_locator(self, handle: RenderHandle, page_number: int) -> str:
        if isinstance(page_number, bool) or not isinstance(page_number, int):
            raise InvalidArgument(f"Page number must be an int, got {page_number!r}")
        if not 1 <= page_number <= handle.page_count:
            raise InvalidArgument(
                f"Page {page_number} is outside 1..{handle.page_count} "
                f"for {handle.source_id}"
            )
        return self.client.delivery_url(
            handle.source_id,
            handle.source_version,
            self.page_format,
            page_number=page_number,
        )
