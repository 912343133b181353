# book_ingest/metadata/__init__.py
# ============================================================
# Metadata Package
# ============================================================
# Cover OCR followed by an ordered model-candidate fallback that
# yields the book's title and author.
#
# Key classes:
#   - MetadataExtractor: OCR + candidate loop
#   - BookMetadata: {title, author}
#   - GeminiTextModel: one Gemini candidate
# ============================================================

from book_ingest.metadata.extractor import BookMetadata, CandidateAttempt, MetadataExtractor
from book_ingest.metadata.generative import GeminiTextModel, build_gemini_candidates
from book_ingest.metadata.prompts import UNKNOWN, MetadataPrompt

__all__ = [
    "BookMetadata",
    "CandidateAttempt",
    "GeminiTextModel",
    "MetadataExtractor",
    "MetadataPrompt",
    "UNKNOWN",
    "build_gemini_candidates",
]
