# config/settings.py
# ============================================================
# Centralized Configuration for the Book Ingestion Pipeline
# ============================================================
# All settings are loaded from environment variables (or .env file).
# Pydantic validates types and provides sensible defaults.
#
# Only the CLI and build_pipeline() read this module. Adapters and
# pipeline stages receive their values as constructor arguments.
#
# Usage:
#   from config.settings import settings
#   pipeline = build_pipeline(settings)
# ============================================================

import tempfile
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings. Values are loaded from environment variables
    or a .env file. Credentials have no usable default; everything else
    does, so unit tests and the CLI `locate` command work without secrets.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Credentials ---
    cloudinary_url: Optional[str] = Field(
        default=None,
        description="cloudinary://<api_key>:<api_secret>@<cloud_name> for rendering and page storage.",
    )
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="API key for the Gemini generative text models.",
    )

    # --- Render Provider ---
    render_folder_prefix: str = Field(
        default="books",
        description="Folder that uploaded source PDFs and re-hosted pages are placed under.",
    )
    render_page_format: str = Field(
        default="jpg",
        description="Image format requested for every rendered page.",
    )

    # --- OCR ---
    ocr_server_url: str = Field(
        default="http://127.0.0.1:8100",
        description="Base URL of the OpenAI-compatible vision OCR server.",
    )
    ocr_model_name: str = Field(
        default="PaddleOCR-VL-1.5-0.9B",
        description="Model name sent to the OCR server.",
    )
    ocr_language: str = Field(
        default="eng",
        description="Language hint for cover page recognition.",
    )
    ocr_max_tokens: int = Field(
        default=2048,
        description="Maximum number of tokens the OCR model may generate for the cover.",
    )

    # --- Metadata Extraction ---
    gemini_model_candidates: list[str] = Field(
        default=[
            "gemini-2.0-flash",
            "gemini-1.5-flash",
            "gemini-1.5-pro",
            "gemini-1.0-pro",
        ],
        description="Ordered model fallback list. The first successful answer wins.",
    )
    metadata_generic_fallback: bool = Field(
        default=False,
        description="Ask the models to invent a descriptive title/author when exact extraction fails.",
    )

    # --- Performance Tuning ---
    max_concurrent_transfers: int = Field(
        default=8,
        ge=1,
        description="Maximum number of page downloads or uploads in flight at once.",
    )
    request_timeout_s: float = Field(
        default=60.0,
        description="Timeout for OCR requests and page downloads.",
    )
    upload_timeout_s: float = Field(
        default=300.0,
        description="Timeout for uploads to Cloudinary (source PDF and page images).",
    )
    model_timeout_s: float = Field(
        default=60.0,
        description="Timeout for a single generative model call.",
    )

    # --- Scratch Space ---
    scratch_root: Path = Field(
        default=Path(tempfile.gettempdir()) / "book_ingest",
        description="Parent directory for run-scoped scratch workspaces.",
    )

    # --- Logging ---
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG | INFO | WARNING | ERROR.",
    )

    @field_validator("render_page_format")
    @classmethod
    def _strip_format_dot(cls, value: str) -> str:
        return value.lstrip(".").lower()


# ============================================================
# Singleton instance — import this everywhere:
#   from config.settings import settings
# ============================================================
settings = Settings()
