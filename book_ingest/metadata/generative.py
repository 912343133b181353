# book_ingest/metadata/generative.py
# ============================================================
# Gemini Text Models
# ============================================================
# Each GeminiTextModel is one candidate in the metadata
# extractor's fallback list. Calls are bounded by a timeout, and
# every failure mode of the SDK (transport, quota, safety block,
# empty answer, timeout) is reported as ProviderError so the
# extractor can move on to the next candidate.
#
# Usage:
#   candidates = build_gemini_candidates(api_key, ["gemini-2.0-flash", "gemini-1.5-pro"])
#   text = await candidates[0].generate("...")
# ============================================================

import asyncio
import time
from typing import Optional, Sequence

import google.generativeai as genai
from google.generativeai import GenerationConfig

from book_ingest.errors import InvalidArgument, ProviderError
from book_ingest.providers.base import TextModel
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)


class GeminiTextModel(TextModel):
    """One Gemini model, addressed by name."""

    def __init__(self, name: str, timeout: float = 60.0, temperature: float = 0.1):
        self.name = name
        self.timeout = timeout
        self._model = genai.GenerativeModel(
            name,
            generation_config=GenerationConfig(temperature=temperature),
        )

    async def generate(self, prompt: str) -> str:
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._model.generate_content_async(prompt),
                timeout=self.timeout,
            )
            # .text raises ValueError when the answer was blocked or empty
            text = response.text
        except asyncio.TimeoutError as e:
            raise ProviderError(f"{self.name} timed out after {self.timeout:.0f}s") from e
        except Exception as e:
            raise ProviderError(f"{self.name} failed: {e}") from e

        logger.debug(f"{self.name} answered in {(time.perf_counter() - start) * 1000:.0f}ms")
        return text

    def __repr__(self) -> str:
        return f"GeminiTextModel({self.name!r})"


def build_gemini_candidates(
    api_key: Optional[str],
    model_names: Sequence[str],
    timeout: float = 60.0,
) -> list[GeminiTextModel]:
    """
    Configure the Gemini SDK and create one handle per candidate, in order.

    Raises:
        InvalidArgument: If no API key or no model names are given.
    """
    if not api_key:
        raise InvalidArgument("GEMINI_API_KEY is not configured")
    if not model_names:
        raise InvalidArgument("At least one Gemini model candidate is required")

    genai.configure(api_key=api_key)
    return [GeminiTextModel(name, timeout=timeout) for name in model_names]
