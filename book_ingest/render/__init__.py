# book_ingest/render/__init__.py
# ============================================================
# Render Package
# ============================================================
# Registers source PDFs with the render provider and computes
# per-page image locators.
#
# Key classes:
#   - Document: the caller-owned source file
#   - CloudinaryRenderProvider: registration + page locators
# ============================================================

from book_ingest.render.provider import CloudinaryRenderProvider, Document

__all__ = ["CloudinaryRenderProvider", "Document"]
