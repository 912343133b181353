# config/__init__.py
# ============================================================
# Configuration package for the book ingestion pipeline.
# Provides centralized, validated settings loaded from .env file.
#
# Usage:
#   from config.settings import settings
#   print(settings.gemini_model_candidates)
# ============================================================

from config.settings import Settings, settings

__all__ = ["Settings", "settings"]
