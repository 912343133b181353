# book_ingest/pages/__init__.py
# ============================================================
# Pages Package
# ============================================================
# Turns render locators into durable, uniquely identified page
# artifacts.
#
# Key classes:
#   - PageMaterializer: download → (upload) with all-or-nothing semantics
#   - PageArtifact: one stored page
#   - PageStorageStrategy: PASSTHROUGH | REHOST
#   - ScratchWorkspace: run-scoped temp directory
# ============================================================

from book_ingest.pages.ids import generate_page_id
from book_ingest.pages.materializer import PageArtifact, PageMaterializer, PageStorageStrategy
from book_ingest.pages.workspace import ScratchWorkspace

__all__ = [
    "PageArtifact",
    "PageMaterializer",
    "PageStorageStrategy",
    "ScratchWorkspace",
    "generate_page_id",
]
