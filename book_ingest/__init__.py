# book_ingest/__init__.py
# ============================================================
# Book Ingestion — Source Package
# ============================================================
# Root package for the PDF ingestion pipeline. Sub-packages:
#   - book_ingest.providers → capability interfaces
#   - book_ingest.storage   → Cloudinary REST client
#   - book_ingest.render    → source registration, page locators
#   - book_ingest.ocr       → cover text recognition
#   - book_ingest.metadata  → title/author via model fallback
#   - book_ingest.pages     → page download / re-hosting
#   - book_ingest.pipeline  → orchestrator (ties everything together)
#   - book_ingest.utils     → logging, image helpers
# ============================================================

__version__ = "0.1.0"
