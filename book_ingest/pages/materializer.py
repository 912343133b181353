# book_ingest/pages/materializer.py
# ============================================================
# Page Materializer — Render Locators → Durable Page Artifacts
# ============================================================
# Produces one PageArtifact per page of a registered document.
#
# Flow:
#   1. Download every page's rendered image into the scratch
#      workspace (concurrently, bounded by a semaphore).
#   2. REHOST only: once *all* downloads succeeded, upload every
#      page to object storage under a fresh unique page id.
#   3. Return the artifacts ordered by page number.
#
# Design Decisions:
#   1. All-or-nothing. The first failure sets an abort flag so
#      queued pages are never started; transfers already in flight
#      finish, then the lowest failing page is reported as
#      PageMaterializationError. No artifacts are returned.
#   2. gather() waits for every task before raising, so no task
#      is still writing into the workspace when cleanup runs.
#   3. If an upload fails, the sibling pages that were already
#      stored are deleted again (best-effort, logged).
#   4. PASSTHROUGH still downloads each page to prove its render
#      URL resolves to an image before the URL is handed out.
#   5. Any unexpected exception from a transfer is reported as
#      that page's PageMaterializationError, so rollback and page
#      tagging apply to it too.
# ============================================================

import asyncio
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar, Union

import httpx

from book_ingest.errors import (
    InvalidArgument,
    PageMaterializationError,
    PipelineCancelled,
    StorageError,
)
from book_ingest.pages.ids import generate_page_id
from book_ingest.pages.workspace import ScratchWorkspace
from book_ingest.providers.base import ObjectStorage, RenderHandle, RenderProvider
from book_ingest.utils.image import verify_page_image
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Returned by page tasks that were never started because a sibling failed.
_SKIPPED = object()


class PageStorageStrategy(str, Enum):
    """
    Where a page's durable URL comes from.

    - PASSTHROUGH: the render provider's locator is the permanent address
    - REHOST: the rendered image is copied into object storage
    """
    PASSTHROUGH = "passthrough"
    REHOST = "rehost"


@dataclass(frozen=True)
class PageArtifact:
    """The durable result for one page. Never mutated after creation."""
    page_id: str
    page_number: int
    page_url: str
    storage_object_id: str

    def to_dict(self) -> dict:
        return asdict(self)


class PageMaterializer:
    """
    Downloads, verifies and (optionally) re-hosts every page of a document.

    Args:
        render: Provider that computes page locators.
        storage: Object store for REHOST. May be None for PASSTHROUGH only.
        max_concurrency: Maximum transfers in flight per phase.
        download_timeout: Per-download timeout in seconds.
        folder_prefix: Re-hosted pages go to ``<prefix>/<bookId>/pages``.
        page_format: File extension for scratch copies.
        verify_images: Decode each download with Pillow before accepting it.
        transport: Optional httpx transport for downloads (tests).
    """

    def __init__(
        self,
        render: RenderProvider,
        storage: Optional[ObjectStorage] = None,
        max_concurrency: int = 8,
        download_timeout: float = 60.0,
        folder_prefix: str = "books",
        page_format: str = "jpg",
        verify_images: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if max_concurrency < 1:
            raise InvalidArgument("max_concurrency must be at least 1")

        self.render = render
        self.storage = storage
        self.max_concurrency = max_concurrency
        self.folder_prefix = folder_prefix.strip("/")
        self.page_format = page_format
        self.verify_images = verify_images
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(download_timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def materialize(
        self,
        handle: RenderHandle,
        strategy: PageStorageStrategy,
        book_id: Union[str, int],
        workspace: ScratchWorkspace,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[PageArtifact]:
        """
        Produce the artifact set for every page of ``handle``.

        Raises:
            PageMaterializationError: If any page failed (nothing is returned).
            PipelineCancelled: If cancellation was observed before a transfer.
        """
        if strategy is PageStorageStrategy.REHOST and self.storage is None:
            raise InvalidArgument("REHOST strategy requires an object storage")

        page_numbers = list(range(1, handle.page_count + 1))
        start = time.perf_counter()

        # --- Phase 1: downloads ---
        logger.info(f"Downloading {len(page_numbers)} pages to {workspace.path}...")
        local_paths = await self._run_all(
            page_numbers,
            lambda n: self._download(handle, n, workspace),
            cancel_event,
        )
        logger.info(
            f"All {len(page_numbers)} pages downloaded in "
            f"{(time.perf_counter() - start) * 1000:.0f}ms"
        )

        # --- Phase 2: durable addresses ---
        if strategy is PageStorageStrategy.PASSTHROUGH:
            artifacts = [
                PageArtifact(
                    page_id=generate_page_id(book_id, n),
                    page_number=n,
                    page_url=self.render.page_locator(handle, n),
                    storage_object_id=handle.source_id,
                )
                for n in page_numbers
            ]
        else:
            artifacts = await self._upload_all(page_numbers, local_paths, book_id, cancel_event)

        logger.info(
            f"Materialized [green]{len(artifacts)}[/green] pages ({strategy.value}) in "
            f"{(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return artifacts

    async def _upload_all(
        self,
        page_numbers: list[int],
        local_paths: dict,
        book_id: Union[str, int],
        cancel_event: Optional[asyncio.Event],
    ) -> list[PageArtifact]:
        folder = f"{self.folder_prefix}/{book_id}/pages"
        logger.info(f"Uploading {len(page_numbers)} pages to {folder}...")

        uploaded: dict[int, PageArtifact] = {}

        async def _upload(n: int) -> PageArtifact:
            page_id = generate_page_id(book_id, n)
            try:
                stored = await self.storage.upload(local_paths[n], folder, page_id)
            except StorageError as e:
                raise PageMaterializationError(n, f"upload failed: {e}") from e
            artifact = PageArtifact(
                page_id=page_id,
                page_number=n,
                page_url=stored.public_url,
                storage_object_id=stored.object_handle,
            )
            uploaded[n] = artifact
            return artifact

        try:
            results = await self._run_all(page_numbers, _upload, cancel_event)
        except (PageMaterializationError, PipelineCancelled):
            await self._rollback(list(uploaded.values()))
            raise

        return [results[n] for n in page_numbers]

    async def _rollback(self, artifacts: list[PageArtifact]) -> None:
        if not artifacts:
            return
        logger.warning(f"Removing {len(artifacts)} already uploaded pages...")
        for artifact in artifacts:
            try:
                await self.storage.delete(artifact.storage_object_id)
            except StorageError as e:
                logger.warning(
                    f"Could not remove page {artifact.page_number} "
                    f"({artifact.storage_object_id}): {e}"
                )

    async def _download(self, handle: RenderHandle, page_number: int, workspace: ScratchWorkspace):
        url = self.render.page_locator(handle, page_number)
        dest = workspace.file_for(f"page-{page_number}.{self.page_format}")

        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()
                with dest.open("wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
        except httpx.HTTPStatusError as e:
            raise PageMaterializationError(
                page_number, f"download failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PageMaterializationError(page_number, f"download failed: {e!r}") from e
        except OSError as e:
            raise PageMaterializationError(page_number, f"could not write {dest.name}: {e}") from e

        if self.verify_images:
            try:
                verify_page_image(dest)
            except ValueError as e:
                raise PageMaterializationError(page_number, str(e)) from e

        logger.debug(f"  Page {page_number} → {dest.name}")
        return dest

    async def _run_all(
        self,
        page_numbers: list[int],
        work: Callable[[int], Awaitable[T]],
        cancel_event: Optional[asyncio.Event],
    ) -> dict[int, T]:
        """Run ``work`` for every page with bounded concurrency and abort-on-failure."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        abort = asyncio.Event()

        async def _guarded(n: int):
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    abort.set()
                    raise PipelineCancelled(f"Cancelled before transferring page {n}")
                if abort.is_set():
                    return _SKIPPED
                try:
                    return await work(n)
                except (PageMaterializationError, PipelineCancelled):
                    abort.set()
                    raise
                except Exception as e:
                    abort.set()
                    raise PageMaterializationError(n, f"{type(e).__name__}: {e}") from e

        results = await asyncio.gather(
            *(_guarded(n) for n in page_numbers), return_exceptions=True
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            if isinstance(failure, PipelineCancelled):
                raise failure
        if failures:
            page_failures = sorted(
                (f for f in failures if isinstance(f, PageMaterializationError)),
                key=lambda f: f.page_number,
            )
            first = page_failures[0] if page_failures else failures[0]
            logger.error(f"{len(failures)} of {len(page_numbers)} page transfers failed")
            raise first

        return dict(zip(page_numbers, results))

    async def aclose(self) -> None:
        await self._client.aclose()
