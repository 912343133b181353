# book_ingest/metadata/prompts.py
# ============================================================
# Metadata Prompt Templates
# ============================================================
# Prompts sent to the generative model candidates together with
# the OCR text of the cover page. Both ask for a single JSON
# object with exactly the keys `bookName` and `authorName`.
#
# Usage:
#   from book_ingest.metadata.prompts import MetadataPrompt, build_prompt
#   prompt = build_prompt(MetadataPrompt.EXACT, cover_text)
# ============================================================

from enum import Enum

UNKNOWN = "Unknown"


class MetadataPrompt(str, Enum):
    """
    Which question to ask about the cover text.

    - EXACT: report the title and author as printed
    - GENERIC: invent a descriptive title/author from the content
    """
    EXACT = "exact"
    GENERIC = "generic"


_PROMPT_TEMPLATES: dict[MetadataPrompt, str] = {
    MetadataPrompt.EXACT: (
        "Analyze the following text extracted from a book cover page and return "
        "ONLY a JSON object with the following structure:\n"
        "{{\n"
        '  "bookName": "exact book name as it appears",\n'
        '  "authorName": "exact author name as it appears"\n'
        "}}\n\n"
        'If you cannot determine the book name or author name, use "{unknown}" '
        "for that field.\n"
        "Return ONLY the JSON object, no additional text or explanation.\n\n"
        "Text to analyze:\n"
        "{text}\n"
    ),
    MetadataPrompt.GENERIC: (
        "Analyze the following text and generate a generic book name and author "
        "based on the context and content.\n"
        "Look for themes, topics, or any identifiable content to create "
        "meaningful names.\n\n"
        "Return ONLY a JSON object with the following structure:\n"
        "{{\n"
        '  "bookName": "generated book name based on content",\n'
        '  "authorName": "generated author name based on context"\n'
        "}}\n\n"
        "Text to analyze:\n"
        "{text}\n"
    ),
}


def build_prompt(kind: MetadataPrompt, text: str) -> str:
    """
    Embed OCR text into a metadata prompt.

    Raises:
        ValueError: If the prompt kind is not recognized.
    """
    if kind not in _PROMPT_TEMPLATES:
        raise ValueError(
            f"Unknown metadata prompt: {kind}. "
            f"Available: {[k.value for k in MetadataPrompt]}"
        )
    return _PROMPT_TEMPLATES[kind].format(text=text, unknown=UNKNOWN)
