# book_ingest/ocr/prompts.py
# ============================================================
# OCR Prompt Templates
# ============================================================
# The OCR backend is a vision-language model behind an
# OpenAI-compatible endpoint. The prompt selects plain text
# spotting and carries the language hint; the image itself is
# passed by URL.
#
# Usage:
#   from book_ingest.ocr.prompts import get_ocr_prompt
#   prompt = get_ocr_prompt("eng")
# ============================================================

# Tesseract-style language codes → names the model understands.
# Unknown codes are passed through verbatim.
_LANGUAGE_NAMES: dict[str, str] = {
    "eng": "English",
    "fra": "French",
    "deu": "German",
    "spa": "Spanish",
    "ita": "Italian",
    "por": "Portuguese",
    "nld": "Dutch",
    "ara": "Arabic",
    "heb": "Hebrew",
    "rus": "Russian",
    "chi_sim": "Simplified Chinese",
    "jpn": "Japanese",
}

_OCR_TEMPLATE = (
    "OCR: Transcribe all text visible on this page exactly as printed, "
    "in reading order. The text is expected to be in {language}. "
    "Output plain text only, without commentary."
)


def language_name(code: str) -> str:
    """Map a language code such as ``eng`` to a display name."""
    return _LANGUAGE_NAMES.get(code.lower(), code)


def get_ocr_prompt(language: str) -> str:
    """
    Build the recognition prompt for one page image.

    Args:
        language: Language code (``eng``) or name (``English``).

    Returns:
        The prompt string sent alongside the image.
    """
    return _OCR_TEMPLATE.format(language=language_name(language))
