# book_ingest/utils/__init__.py
# ============================================================
# Shared Utilities Package
# ============================================================
# Provides reusable helpers used across the pipeline:
#   - logger: Structured logging with Rich formatting
#   - image: Downloaded page verification
# ============================================================

from book_ingest.utils.logger import get_logger, set_log_level
from book_ingest.utils.image import get_image_info, verify_page_image

__all__ = [
    "get_logger",
    "set_log_level",
    "get_image_info",
    "verify_page_image",
]
