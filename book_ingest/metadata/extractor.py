# book_ingest/metadata/extractor.py
# ============================================================
# Metadata Extractor — Cover OCR + Model Fallback
# ============================================================
# Turns the cover page's rendered image into BookMetadata:
#
#   1. OCR the cover (one attempt, OcrError on failure/blank).
#   2. Ask an ordered list of model candidates for a JSON object
#      with `bookName` and `authorName`. The first candidate whose
#      answer parses and validates wins.
#
# Design Decisions:
#   1. Fixed priority order. Each candidate is tried at most once
#      per prompt; a transport error, timeout, unparsable answer
#      or missing/blank field all advance to the next candidate.
#   2. All-or-nothing. A missing field is never defaulted; when
#      every candidate fails, MetadataExtractionError carries the
#      last observed error.
#   3. Optional generic fallback. When enabled, an exhausted exact
#      extraction is followed by one more pass asking the models
#      to invent a descriptive title/author.
# ============================================================

import time
from dataclasses import dataclass
from typing import Optional, Sequence

from book_ingest.errors import InvalidArgument, MetadataExtractionError, ProviderError
from book_ingest.metadata.parsing import AnswerParsingError, parse_cover_answer
from book_ingest.metadata.prompts import UNKNOWN, MetadataPrompt, build_prompt
from book_ingest.providers.base import OcrProvider, TextModel
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================
# Data Classes
# ============================================================

@dataclass(frozen=True)
class BookMetadata:
    """
    Descriptive metadata for one book.

    Either field may hold the "Unknown" sentinel when the model could not
    read it from the cover; it is never empty.
    """
    title: str
    author: str

    @property
    def is_complete(self) -> bool:
        return UNKNOWN not in (self.title, self.author)


@dataclass
class CandidateAttempt:
    """Outcome of trying one model candidate, kept for diagnostics."""
    model_name: str
    prompt: str
    latency_ms: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


# ============================================================
# Metadata Extractor
# ============================================================

class MetadataExtractor:
    """
    Extracts BookMetadata from a cover page image.

    Args:
        ocr: Provider used for the single cover recognition call.
        candidates: Text models in priority order.
        language: Language hint passed to OCR.
        generic_fallback: Run the GENERIC prompt after EXACT is exhausted.

    Example:
        >>> extractor = MetadataExtractor(engine, candidates)
        >>> meta = await extractor.extract(cover_url)
        >>> meta.title
        'The Great Gatsby'
    """

    def __init__(
        self,
        ocr: OcrProvider,
        candidates: Sequence[TextModel],
        language: str = "eng",
        generic_fallback: bool = False,
    ):
        if not candidates:
            raise InvalidArgument("MetadataExtractor needs at least one model candidate")

        self.ocr = ocr
        self.candidates = list(candidates)
        self.language = language
        self.generic_fallback = generic_fallback
        self.attempts: list[CandidateAttempt] = []

    async def recognize_cover(self, cover_url: str) -> str:
        """OCR step. Raises OcrError if recognition fails or yields blank text."""
        logger.info("Extracting text from cover image...")
        return await self.ocr.recognize(cover_url, self.language)

    async def resolve(self, cover_text: str) -> BookMetadata:
        """
        Structured-extraction step over the candidate list.

        Raises:
            MetadataExtractionError: If every candidate (and, when enabled,
                the generic fallback) fails.
        """
        self.attempts = []
        kinds = [MetadataPrompt.EXACT]
        if self.generic_fallback:
            kinds.append(MetadataPrompt.GENERIC)

        last_error: Optional[BaseException] = None
        for kind in kinds:
            if kind is MetadataPrompt.GENERIC:
                logger.warning(
                    "Could not extract specific book information, "
                    "generating generic names..."
                )
            metadata, error = await self._try_candidates(build_prompt(kind, cover_text), kind)
            if metadata is not None:
                return metadata
            last_error = error

        raise MetadataExtractionError(
            f"All {len(self.candidates)} model candidates failed: {last_error}",
            last_error=last_error,
        ) from last_error

    async def extract(self, cover_url: str) -> BookMetadata:
        """Run both steps: OCR the cover, then resolve metadata from its text."""
        cover_text = await self.recognize_cover(cover_url)
        return await self.resolve(cover_text)

    async def _try_candidates(
        self, prompt: str, kind: MetadataPrompt
    ) -> tuple[Optional[BookMetadata], Optional[BaseException]]:
        last_error: Optional[BaseException] = None

        for candidate in self.candidates:
            attempt = CandidateAttempt(model_name=candidate.name, prompt=kind.value)
            self.attempts.append(attempt)
            start = time.perf_counter()

            try:
                logger.info(f"Trying model: [bold]{candidate.name}[/bold] ({kind.value})")
                answer = await candidate.generate(prompt)
                parsed = parse_cover_answer(answer)
            except (ProviderError, AnswerParsingError) as e:
                attempt.latency_ms = (time.perf_counter() - start) * 1000
                attempt.error = str(e)
                last_error = e
                logger.warning(f"Failed with model {candidate.name}: {e}")
                continue

            attempt.latency_ms = (time.perf_counter() - start) * 1000
            metadata = BookMetadata(title=parsed.bookName, author=parsed.authorName)
            logger.info(
                f"Book info extracted with [bold]{candidate.name}[/bold]: "
                f'"{metadata.title}" by {metadata.author}'
            )
            return metadata, None

        return None, last_error
