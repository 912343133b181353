# cli/main.py
# ============================================================
# Book Ingestion — Command Line Interface
# ============================================================
# Typer-based CLI around the ingestion pipeline.
#
# Usage:
#   python -m cli.main ingest book.pdf --book-id 42 --output out/42.json
#   python -m cli.main extract book.pdf
#   python -m cli.main locate books/1700000000000/book_ab12 1712345678 --pages 12
#   python -m cli.main health
# ============================================================

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from book_ingest.errors import InvalidArgument, PipelineError
from book_ingest.ocr.engine import OCREngine
from book_ingest.pipeline.orchestrator import build_pipeline
from book_ingest.providers.base import RenderHandle
from book_ingest.render.provider import CloudinaryRenderProvider
from book_ingest.storage.cloudinary import CloudinaryClient, CloudinaryCredentials
from book_ingest.utils.logger import set_log_level
from config.settings import settings

# ============================================================
# CLI App Setup
# ============================================================

app = typer.Typer(
    name="book-ingest",
    help=(
        "📚 Book Ingestion — PDF → metadata + stored page images\n\n"
        "Registers a PDF with the render provider, reads title and author "
        "from the cover, and stores every page as an individual image."
    ),
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


# ============================================================
# Commands
# ============================================================

@app.command()
def ingest(
    pdf_path: str = typer.Argument(..., help="Path to the source PDF."),
    book_id: str = typer.Option(..., "--book-id", "-b", help="Library id that namespaces the stored pages."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the result as JSON to this file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """
    📥 Full ingestion: extract metadata and re-host every page in storage.
    """
    if verbose:
        set_log_level("DEBUG")

    _print_header("Full Ingestion", pdf_path, f"Book id: {book_id}")
    result = _run(lambda pipeline: pipeline.ingest(pdf_path, book_id=book_id))

    _print_results(result)
    console.print(f"Source: {result.original_source_id} (v{result.original_source_version})")
    if output:
        result.save_json(output)


@app.command()
def extract(
    pdf_path: str = typer.Argument(..., help="Path to the source PDF."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the result as JSON to this file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """
    🔍 Extract-only: read metadata and return render URLs for every page.
    """
    if verbose:
        set_log_level("DEBUG")

    _print_header("Extract Only", pdf_path)
    result = _run(lambda pipeline: pipeline.extract_only(pdf_path))

    _print_results(result)
    if output:
        result.save_json(output)


@app.command()
def locate(
    source_id: str = typer.Argument(..., help="Render provider id of a registered PDF."),
    version: str = typer.Argument(..., help="Render provider version of the upload."),
    pages: int = typer.Option(..., "--pages", "-n", help="Page count of the registered PDF."),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Only print this page's locator."),
):
    """
    🔗 Print page image locators for an already registered PDF (no network).
    """
    try:
        credentials = CloudinaryCredentials.from_url(settings.cloudinary_url)
    except InvalidArgument as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=2)

    client = CloudinaryClient(credentials)
    provider = CloudinaryRenderProvider(
        client,
        folder_prefix=settings.render_folder_prefix,
        page_format=settings.render_page_format,
    )
    try:
        handle = RenderHandle(source_id=source_id, source_version=version, page_count=pages)
        numbers = [page] if page is not None else range(1, pages + 1)
        for n in numbers:
            console.print(f"{n}\t{provider.page_locator(handle, n)}", soft_wrap=True)
    except InvalidArgument as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        asyncio.run(client.aclose())


@app.command()
def health():
    """
    🏥 Check configuration and OCR server reachability.
    """
    console.print("[bold]Running health check...[/bold]\n")

    async def _check() -> dict:
        engine = OCREngine(
            server_url=settings.ocr_server_url,
            model_name=settings.ocr_model_name,
            timeout=settings.request_timeout_s,
        )
        try:
            return await engine.health_check()
        finally:
            await engine.aclose()

    status = asyncio.run(_check())

    table = Table(title="Ingestion Health", show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value")

    status_color = "green" if status["status"] == "healthy" else "red"
    table.add_row("OCR Server", f"[{status_color}]{status['status']}[/{status_color}] ({status['server_url']})")
    table.add_row("OCR Model", f"{status['model_name']} {'✅' if status['model_available'] else '❌'}")
    table.add_row("Cloudinary", "✅ Configured" if settings.cloudinary_url else "❌ Missing")
    table.add_row("Gemini", "✅ Configured" if settings.gemini_api_key else "❌ Missing")
    table.add_row("Model Candidates", ", ".join(settings.gemini_model_candidates))
    table.add_row("Scratch Root", str(settings.scratch_root))

    if status["error"]:
        table.add_row("Error", f"[red]{status['error']}[/red]")

    console.print(table)

    if status["status"] != "healthy" or not (settings.cloudinary_url and settings.gemini_api_key):
        raise typer.Exit(code=1)


# ============================================================
# Helper Functions
# ============================================================

def _run(flow):
    """Build the pipeline, run one flow, always close its clients."""
    async def run_pipeline():
        pipeline = build_pipeline(settings)
        try:
            return await flow(pipeline)
        finally:
            await pipeline.aclose()

    try:
        return asyncio.run(run_pipeline())
    except InvalidArgument as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=2)
    except PipelineError as e:
        where = f" (page {e.page_number})" if e.page_number is not None else ""
        console.print(f"[red]Failed at {e.stage}{where}:[/red] {e.cause}")
        raise typer.Exit(code=1)


def _print_header(title: str, pdf_path: str, extra: str = "") -> None:
    console.print(Panel(
        f"[bold blue]{title}[/bold blue]\n"
        f"Input:  {pdf_path}\n"
        f"Models: {', '.join(settings.gemini_model_candidates)}"
        + (f"\n{extra}" if extra else ""),
        title="📚 Book Ingest",
        border_style="blue",
    ))


def _print_results(result) -> None:
    """Print the metadata and a per-page summary table."""
    console.print(
        f"\n[bold]{result.metadata.title}[/bold] by [bold]{result.metadata.author}[/bold]\n"
    )

    table = Table(title="Stored Pages")
    table.add_column("Page", justify="center")
    table.add_column("Page Id")
    table.add_column("URL", overflow="fold")

    for page in result.pages:
        table.add_row(str(page.page_number), page.page_id, page.page_url)

    table.add_section()
    table.add_row("[bold]Total[/bold]", f"[bold]{len(result.pages)}[/bold]", "")

    console.print(table)


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    app()
