# book_ingest/ocr/__init__.py
# ============================================================
# OCR Engine Package
# ============================================================
# Cover-page text recognition through a vision-language model
# server reached over HTTP.
#
# Key classes:
#   - OCREngine: OcrProvider implementation (httpx, async)
# ============================================================

from book_ingest.ocr.engine import OCREngine
from book_ingest.ocr.prompts import get_ocr_prompt

__all__ = ["OCREngine", "get_ocr_prompt"]
