# book_ingest/pipeline/orchestrator.py
# ============================================================
# Pipeline Orchestrator — End-to-End Book Ingestion
# ============================================================
# Sequences the stages that turn one uploaded PDF into book
# metadata plus N stored page images:
#
#   Registered → CoverExtracted → MetadataResolved
#              → PagesMaterialized → Cleaned → Done
#
# with a single Failed terminal reachable from any state.
#
# Design Decisions:
#   1. One orchestrator, two flows. The page storage strategy is
#      a per-invocation argument: PASSTHROUGH for lightweight
#      preview ingestion (extract_only), REHOST for permanent
#      library storage (ingest).
#   2. Scoped cleanup. The run's scratch workspace is a context
#      manager wrapped around every stage, so its files are gone
#      on success, failure and cancellation alike.
#   3. One error type for callers. Whatever a stage raises is
#      wrapped in PipelineError naming the stage that did not
#      complete; there is no pipeline-level retry.
#   4. Cooperative cancellation at stage boundaries: before
#      registration, before OCR, before materialization, and
#      (inside the materializer) before each page transfer.
#
# Usage:
#   from config.settings import settings
#   pipeline = build_pipeline(settings)
#   result = await pipeline.ingest("book.pdf", book_id=42)
#   result.save_json("output/book-42.json")
#   await pipeline.aclose()
# ============================================================

import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import httpx

from book_ingest.errors import (
    IngestionError,
    InvalidArgument,
    PipelineCancelled,
    PipelineError,
)
from book_ingest.metadata.extractor import BookMetadata, MetadataExtractor
from book_ingest.metadata.generative import build_gemini_candidates
from book_ingest.ocr.engine import OCREngine
from book_ingest.pages.materializer import PageArtifact, PageMaterializer, PageStorageStrategy
from book_ingest.pages.workspace import ScratchWorkspace
from book_ingest.providers.base import RenderProvider
from book_ingest.render.provider import CloudinaryRenderProvider, Document
from book_ingest.storage.cloudinary import (
    CloudinaryClient,
    CloudinaryCredentials,
    CloudinaryObjectStorage,
)
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================
# Run State
# ============================================================

class PipelineStage(str, Enum):
    """States of one pipeline run, in the order they are reached."""
    STARTED = "started"
    REGISTERED = "registered"
    COVER_EXTRACTED = "cover_extracted"
    METADATA_RESOLVED = "metadata_resolved"
    PAGES_MATERIALIZED = "pages_materialized"
    CLEANED = "cleaned"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineRun:
    """
    Linear state machine for one invocation.

    ``pending`` is the stage being worked towards; if the run fails,
    that is the stage reported in PipelineError.
    """
    state: PipelineStage = PipelineStage.STARTED
    pending: Optional[PipelineStage] = None
    history: list[PipelineStage] = field(default_factory=lambda: [PipelineStage.STARTED])
    started_at: float = field(default_factory=time.perf_counter)

    def begin(self, stage: PipelineStage) -> None:
        self.pending = stage

    def complete(self) -> None:
        self.state = self.pending
        self.history.append(self.pending)
        self.pending = None

    def advance(self, stage: PipelineStage) -> None:
        self.begin(stage)
        self.complete()

    def fail(self) -> PipelineStage:
        """Move to FAILED and return the stage that did not complete."""
        failed_stage = self.pending or self.state
        self.state = PipelineStage.FAILED
        self.history.append(PipelineStage.FAILED)
        return failed_stage

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


# ============================================================
# Results
# ============================================================

class _PipelineResult:
    def to_dict(self) -> dict:
        raise NotImplementedError

    def save_json(self, output_path: Union[str, Path]) -> str:
        """
        Save the result as a structured JSON file.

        Args:
            output_path: File path for the output .json file.

        Returns:
            The absolute path to the saved file.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(self.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.info(f"Saved JSON to [bold]{output_path}[/bold]")
        return str(output_path.resolve())


@dataclass
class ExtractionResult(_PipelineResult):
    """
    Outcome of the extract-only flow.

    Attributes:
        metadata: Title and author read from the cover.
        pages: One artifact per page; URLs are render locators.
        scratch_folder: The run's scratch directory (already removed).
    """
    metadata: BookMetadata
    pages: list[PageArtifact]
    scratch_folder: str

    def to_dict(self) -> dict:
        return {
            "metadata": {"title": self.metadata.title, "author": self.metadata.author},
            "pages": [p.to_dict() for p in self.pages],
            "scratch_folder": self.scratch_folder,
        }


@dataclass
class IngestionResult(_PipelineResult):
    """
    Outcome of the full-ingestion flow.

    Attributes:
        metadata: Title and author read from the cover.
        pages: One artifact per page, re-hosted in object storage.
        original_source_id: Render provider id of the uploaded PDF.
        original_source_version: Render provider version of the upload.
    """
    metadata: BookMetadata
    pages: list[PageArtifact]
    original_source_id: str
    original_source_version: Union[str, int]

    def to_dict(self) -> dict:
        return {
            "metadata": {"title": self.metadata.title, "author": self.metadata.author},
            "pages": [p.to_dict() for p in self.pages],
            "original_source_id": self.original_source_id,
            "original_source_version": self.original_source_version,
        }


# ============================================================
# Pipeline Orchestrator
# ============================================================

class IngestionPipeline:
    """
    End-to-end ingestion of one PDF per invocation.

    Invocations share no mutable state; each gets its own scratch
    workspace, so several may run concurrently on one instance.

    Args:
        render: Render provider used to register the source and locate pages.
        extractor: Cover metadata extractor.
        materializer: Page materializer (owns the download client).
        scratch_root: Parent directory for per-run scratch workspaces.
        closeables: Extra clients to close in aclose().

    Example:
        >>> pipeline = build_pipeline(settings)
        >>> result = await pipeline.extract_only("scan.pdf")
        >>> result.metadata.title
        'The Great Gatsby'
    """

    def __init__(
        self,
        render: RenderProvider,
        extractor: MetadataExtractor,
        materializer: PageMaterializer,
        scratch_root: Union[str, Path],
        closeables: Optional[list] = None,
    ):
        self.render = render
        self.extractor = extractor
        self.materializer = materializer
        self.scratch_root = Path(scratch_root)
        self._closeables = list(closeables or [])

        logger.info("IngestionPipeline initialized")

    async def extract_only(
        self,
        document: Union[Document, str, Path],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExtractionResult:
        """Register → extract cover metadata → passthrough render URLs."""
        return await self.run(document, PageStorageStrategy.PASSTHROUGH, cancel_event=cancel_event)

    async def ingest(
        self,
        document: Union[Document, str, Path],
        book_id: Union[str, int],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> IngestionResult:
        """Register → extract cover metadata → re-host every page under ``book_id``."""
        if book_id is None or str(book_id).strip() == "":
            raise InvalidArgument("Full ingestion requires a book_id")
        return await self.run(
            document, PageStorageStrategy.REHOST, book_id=book_id, cancel_event=cancel_event
        )

    async def run(
        self,
        document: Union[Document, str, Path],
        strategy: PageStorageStrategy,
        book_id: Optional[Union[str, int]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Union[ExtractionResult, IngestionResult]:
        """
        Run one ingestion end-to-end.

        Args:
            document: The source PDF (or a path to it).
            strategy: PASSTHROUGH (ExtractionResult) or REHOST (IngestionResult).
            book_id: Namespace for page ids and storage folders. Defaults to
                the render source id's last path segment.
            cancel_event: Set it to stop the run at the next stage boundary.

        Raises:
            PipelineError: Any stage failed or the run was cancelled. The
                workspace has already been cleaned up when this is raised.
        """
        run = PipelineRun()
        workspace: Optional[ScratchWorkspace] = None

        try:
            if not isinstance(document, Document):
                document = Document.from_path(document)

            logger.info(
                f"Pipeline starting — file: [bold]{document.path.name}[/bold], "
                f"strategy: {strategy.value}"
            )

            workspace = ScratchWorkspace.create(self.scratch_root)
            with workspace:
                # --- Step 1: Register the source with the render provider ---
                run.begin(PipelineStage.REGISTERED)
                self._check_cancelled(cancel_event, "before registration")
                handle = await self.render.register_source(document)
                run.complete()

                # --- Step 2: OCR the cover page ---
                run.begin(PipelineStage.COVER_EXTRACTED)
                self._check_cancelled(cancel_event, "before OCR")
                cover_text = await self.extractor.recognize_cover(
                    self.render.page_locator(handle, 1)
                )
                run.complete()

                # --- Step 3: Resolve metadata through the model candidates ---
                run.begin(PipelineStage.METADATA_RESOLVED)
                metadata = await self.extractor.resolve(cover_text)
                run.complete()

                # --- Step 4: Materialize every page ---
                run.begin(PipelineStage.PAGES_MATERIALIZED)
                self._check_cancelled(cancel_event, "before page materialization")
                namespace = book_id if book_id is not None else handle.source_id.rsplit("/", 1)[-1]
                pages = await self.materializer.materialize(
                    handle, strategy, namespace, workspace, cancel_event=cancel_event
                )
                run.complete()

            # --- Step 5: Workspace released by the with-block ---
            run.advance(PipelineStage.CLEANED)

        except (IngestionError, OSError) as e:
            failed_stage = run.fail()
            logger.error(
                f"Pipeline failed at [bold]{failed_stage.value}[/bold] after "
                f"{run.elapsed_ms:.0f}ms: {e}"
            )
            raise PipelineError(failed_stage.value, e) from e

        run.advance(PipelineStage.DONE)
        logger.info(
            f"Pipeline complete — \"{metadata.title}\" by {metadata.author}, "
            f"{len(pages)} pages, {run.elapsed_ms:.0f}ms total"
        )

        if strategy is PageStorageStrategy.PASSTHROUGH:
            return ExtractionResult(
                metadata=metadata,
                pages=pages,
                scratch_folder=str(workspace.path),
            )
        return IngestionResult(
            metadata=metadata,
            pages=pages,
            original_source_id=handle.source_id,
            original_source_version=handle.source_version,
        )

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event], where: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled(f"Cancelled {where}")

    async def aclose(self) -> None:
        """Close every HTTP client owned by the pipeline's adapters."""
        for closeable in [self.materializer, *self._closeables]:
            try:
                await closeable.aclose()
            except (httpx.HTTPError, RuntimeError) as e:
                logger.warning(f"Error closing {type(closeable).__name__}: {e}")


# ============================================================
# Factory
# ============================================================

def build_pipeline(config, transport: Optional[httpx.AsyncBaseTransport] = None) -> IngestionPipeline:
    """
    Wire concrete adapters from a Settings object.

    Settings are read here, once, and passed to each adapter's
    constructor; nothing downstream reads configuration on its own.
    Credentials and model candidates are validated before any HTTP
    client is opened, so a configuration error leaves nothing to close.

    Args:
        config: A config.settings.Settings instance.
        transport: Optional httpx transport shared by every HTTP client.

    Raises:
        InvalidArgument: If credentials are missing or malformed.
    """
    credentials = CloudinaryCredentials.from_url(config.cloudinary_url)
    candidates = build_gemini_candidates(
        config.gemini_api_key,
        config.gemini_model_candidates,
        timeout=config.model_timeout_s,
    )

    cloudinary = CloudinaryClient(
        credentials,
        timeout=config.upload_timeout_s,
        transport=transport,
    )
    render = CloudinaryRenderProvider(
        cloudinary,
        folder_prefix=config.render_folder_prefix,
        page_format=config.render_page_format,
    )
    engine = OCREngine(
        server_url=config.ocr_server_url,
        model_name=config.ocr_model_name,
        max_tokens=config.ocr_max_tokens,
        timeout=config.request_timeout_s,
        transport=transport,
    )
    extractor = MetadataExtractor(
        ocr=engine,
        candidates=candidates,
        language=config.ocr_language,
        generic_fallback=config.metadata_generic_fallback,
    )
    materializer = PageMaterializer(
        render=render,
        storage=CloudinaryObjectStorage(cloudinary),
        max_concurrency=config.max_concurrent_transfers,
        download_timeout=config.request_timeout_s,
        folder_prefix=config.render_folder_prefix,
        page_format=config.render_page_format,
        transport=transport,
    )
    return IngestionPipeline(
        render=render,
        extractor=extractor,
        materializer=materializer,
        scratch_root=config.scratch_root,
        closeables=[engine, cloudinary],
    )
