# book_ingest/errors.py
# ============================================================
# Error Taxonomy
# ============================================================
# Every failure the pipeline can surface is one of these types.
# Stage adapters raise the specific error; the orchestrator
# wraps whatever escaped a stage in a single PipelineError that
# names the stage (and the page, for materialization failures).
# ============================================================

from typing import Optional


class IngestionError(Exception):
    """Base exception for all ingestion pipeline errors."""
    pass


class InvalidArgument(IngestionError, ValueError):
    """A caller passed a value outside the documented domain (programmer error)."""
    pass


class UploadError(IngestionError):
    """The render provider rejected the source document."""
    pass


class OcrError(IngestionError):
    """Text recognition failed or produced no text."""
    pass


class ProviderError(IngestionError):
    """A generative model call failed (transport, provider or timeout)."""
    pass


class StorageError(IngestionError):
    """The object store rejected an upload or delete."""
    pass


class MetadataExtractionError(IngestionError):
    """Every model candidate failed to produce usable book metadata."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


class PageMaterializationError(IngestionError):
    """A single page could not be downloaded or uploaded."""

    def __init__(self, page_number: int, message: str):
        super().__init__(f"Page {page_number}: {message}")
        self.page_number = page_number


class PipelineCancelled(IngestionError):
    """The caller signalled cancellation; no further work was scheduled."""
    pass


class PipelineError(IngestionError):
    """
    The single error reported to pipeline callers.

    Attributes:
        stage: Name of the stage that was running when the failure occurred.
        cause: The stage-level exception (also available as __cause__).
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Ingestion failed during {stage}: {cause}")
        self.stage = stage
        self.cause = cause

    @property
    def page_number(self) -> Optional[int]:
        return getattr(self.cause, "page_number", None)


class CleanupWarning(UserWarning):
    """Scratch files could not be removed. Logged, never raised."""
    pass
