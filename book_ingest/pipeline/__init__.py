# book_ingest/pipeline/__init__.py
# ============================================================
# Pipeline Package
# ============================================================
# Contains the IngestionPipeline that sequences registration,
# cover metadata extraction and page materialization.
#
# Key classes:
#   - IngestionPipeline: extract_only() / ingest() / run()
#   - ExtractionResult, IngestionResult: flow outcomes
#   - build_pipeline: wires adapters from Settings
# ============================================================

from book_ingest.pipeline.orchestrator import (
    ExtractionResult,
    IngestionPipeline,
    IngestionResult,
    PipelineRun,
    PipelineStage,
    build_pipeline,
)

__all__ = [
    "ExtractionResult",
    "IngestionPipeline",
    "IngestionResult",
    "PipelineRun",
    "PipelineStage",
    "build_pipeline",
]
