"""
Parsing of model answers into book metadata.

Models wrap JSON in markdown fences, preambles and postscripts. The
first *balanced* ``{...}`` span is taken (braces inside JSON strings are
ignored), decoded, and validated: both ``bookName`` and ``authorName``
must be present and non-blank.
"""

import json
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class AnswerParsingError(ValueError):
    """Raised when a model answer cannot be turned into metadata."""
    pass


class CoverAnswer(BaseModel):
    """The JSON object the metadata prompts ask for."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    bookName: str = Field(min_length=1)
    authorName: str = Field(min_length=1)


def strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences from text."""
    text = re.sub(r"^```(?:json|JSON)?\s*\n?", "", text, flags=re.MULTILINE)
    text = re.sub(r"\n?```\s*$", "", text, flags=re.MULTILINE)
    return text


def find_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` substring, or None.

    Scanning starts at each ``{`` in turn; a start whose braces never
    close is skipped in favour of the next one.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def parse_cover_answer(text: str) -> CoverAnswer:
    """
    Extract and validate the metadata object from a model answer.

    Raises:
        AnswerParsingError: If there is no object, it is not valid JSON,
            or a required key is missing or blank.
    """
    candidate = find_balanced_object(strip_markdown_fences(text or ""))
    if candidate is None:
        raise AnswerParsingError("No JSON object found in model answer")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise AnswerParsingError(f"Invalid JSON syntax: {e}") from e

    if not isinstance(data, dict):
        raise AnswerParsingError("Model answer is not a JSON object")

    try:
        return CoverAnswer.model_validate(data)
    except ValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise AnswerParsingError(
            f"Incomplete book information: {', '.join(missing) or 'invalid fields'}"
        ) from e
