# tests/test_page_materializer.py
# ============================================================
# Unit Tests — Page Materializer
# ============================================================
# Downloads are served by the render_transport fixture; uploads
# go to the in-memory FakeStorage. Covers id generation, both
# storage strategies, all-or-nothing failure handling, the
# concurrency bound and cancellation.
# ============================================================

import asyncio
import re

import httpx
import pytest

from book_ingest.errors import InvalidArgument, PageMaterializationError, PipelineCancelled
from book_ingest.pages.ids import generate_page_id
from book_ingest.pages.materializer import PageArtifact, PageMaterializer, PageStorageStrategy
from book_ingest.pages.workspace import ScratchWorkspace

from conftest import FakeRenderProvider, FakeStorage

BOOK_ID = 42
PAGE_ID_RE = re.compile(r"^page_42_(\d+)_(\d+)_([a-z0-9]{9})$")


def _materialize(materializer, render, strategy, scratch_root, cancel_event=None, book_id=BOOK_ID):
    async def _run():
        handle = await render.register_source(None)
        with ScratchWorkspace.create(scratch_root) as workspace:
            try:
                return await materializer.materialize(
                    handle, strategy, book_id, workspace, cancel_event=cancel_event
                )
            finally:
                await materializer.aclose()

    return asyncio.run(_run())


# ============================================================
# Page Ids
# ============================================================

class TestGeneratePageId:

    def test_shape(self):
        match = PAGE_ID_RE.match(generate_page_id(42, 7))
        assert match is not None
        assert match.group(1) == "7"

    def test_many_ids_are_distinct(self):
        ids = {generate_page_id(42, 1) for _ in range(2000)}
        assert len(ids) == 2000


# ============================================================
# Strategies
# ============================================================

class TestRehost:
    """REHOST copies every page into object storage."""

    def test_one_artifact_per_page_in_order(self, render_transport, scratch_root):
        render = FakeRenderProvider(page_count=5)
        storage = FakeStorage()
        materializer = PageMaterializer(render, storage, transport=render_transport)

        pages = _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)

        assert [p.page_number for p in pages] == [1, 2, 3, 4, 5]
        assert len({p.page_id for p in pages}) == 5
        for page in pages:
            match = PAGE_ID_RE.match(page.page_id)
            assert match is not None
            assert int(match.group(1)) == page.page_number
            assert page.storage_object_id == f"books/42/pages/{page.page_id}"
            assert page.page_url.startswith("https://store.test/books/42/pages/")
        assert len(storage.objects) == 5

    def test_two_runs_never_collide(self, render_transport, scratch_root):
        render = FakeRenderProvider(page_count=3)
        storage = FakeStorage()

        first = _materialize(
            PageMaterializer(render, storage, transport=render_transport),
            render, PageStorageStrategy.REHOST, scratch_root,
        )
        second = _materialize(
            PageMaterializer(render, storage, transport=render_transport),
            render, PageStorageStrategy.REHOST, scratch_root,
        )

        assert not {p.page_id for p in first} & {p.page_id for p in second}
        assert len(storage.objects) == 6

    def test_requires_storage(self, render_transport, scratch_root):
        render = FakeRenderProvider()
        materializer = PageMaterializer(render, None, transport=render_transport)
        with pytest.raises(InvalidArgument):
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)

    def test_upload_bytes_match_download(self, render_transport, scratch_root, page_png):
        render = FakeRenderProvider(page_count=2)
        storage = FakeStorage()

        _materialize(
            PageMaterializer(render, storage, transport=render_transport),
            render, PageStorageStrategy.REHOST, scratch_root,
        )
        assert all(data == page_png for data in storage.objects.values())


class TestPassthrough:
    """PASSTHROUGH keeps the render locator as the durable URL."""

    def test_urls_are_render_locators(self, render_transport, scratch_root):
        render = FakeRenderProvider(page_count=4)
        materializer = PageMaterializer(render, None, transport=render_transport)

        pages = _materialize(materializer, render, PageStorageStrategy.PASSTHROUGH, scratch_root)

        assert [p.page_number for p in pages] == [1, 2, 3, 4]
        assert [p.page_url for p in pages] == [
            f"https://render.test/pg_{n}/v1712345678/books/1700000000000/sample_ab12.jpg"
            for n in range(1, 5)
        ]
        assert all(p.storage_object_id == render.source_id for p in pages)
        # every locator was fetched once to prove it resolves
        assert sorted(render_transport.requested) == sorted(p.page_url for p in pages)

    def test_artifact_serializes(self):
        artifact = PageArtifact("page_1_1_1_abcdefghi", 1, "https://x/1.jpg", "books/1/x")
        assert artifact.to_dict() == {
            "page_id": "page_1_1_1_abcdefghi",
            "page_number": 1,
            "page_url": "https://x/1.jpg",
            "storage_object_id": "books/1/x",
        }


# ============================================================
# Failure Handling
# ============================================================

class TestAllOrNothing:

    def test_failed_download_names_page_and_uploads_nothing(self, render_transport, scratch_root):
        render_transport.failing.add(3)
        render = FakeRenderProvider(page_count=5)
        storage = FakeStorage()
        materializer = PageMaterializer(render, storage, transport=render_transport)

        with pytest.raises(PageMaterializationError) as exc_info:
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)

        assert exc_info.value.page_number == 3
        assert "HTTP 500" in str(exc_info.value)
        assert storage.objects == {}

    def test_lowest_failing_page_reported(self, render_transport, scratch_root):
        render_transport.failing.update({2, 4})
        render = FakeRenderProvider(page_count=4)
        materializer = PageMaterializer(render, FakeStorage(), max_concurrency=4, transport=render_transport)

        with pytest.raises(PageMaterializationError) as exc_info:
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)
        assert exc_info.value.page_number == 2

    def test_non_image_body_rejected(self, scratch_root):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
        render = FakeRenderProvider(page_count=1)
        materializer = PageMaterializer(render, None, transport=transport)

        with pytest.raises(PageMaterializationError) as exc_info:
            _materialize(materializer, render, PageStorageStrategy.PASSTHROUGH, scratch_root)
        assert exc_info.value.page_number == 1

    def test_network_error_is_page_error(self, scratch_root):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        render = FakeRenderProvider(page_count=2)
        materializer = PageMaterializer(render, None, transport=httpx.MockTransport(handler))

        with pytest.raises(PageMaterializationError, match="download failed"):
            _materialize(materializer, render, PageStorageStrategy.PASSTHROUGH, scratch_root)

    def test_upload_failure_rolls_back_stored_pages(self, render_transport, scratch_root):
        render = FakeRenderProvider(page_count=4)
        storage = FakeStorage(fail_pages={4})
        materializer = PageMaterializer(render, storage, max_concurrency=1, transport=render_transport)

        with pytest.raises(PageMaterializationError) as exc_info:
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)

        assert exc_info.value.page_number == 4
        assert "upload failed" in str(exc_info.value)
        assert len(storage.deleted) == 3
        assert storage.objects == {}

    def test_unexpected_upload_exception_is_page_error(self, render_transport, scratch_root):
        class BrokenStorage(FakeStorage):
            async def upload(self, local_path, folder, object_id):
                if int(object_id.split("_")[2]) == 3:
                    raise AttributeError("'str' object has no attribute 'get'")
                return await super().upload(local_path, folder, object_id)

        render = FakeRenderProvider(page_count=4)
        storage = BrokenStorage()
        materializer = PageMaterializer(render, storage, max_concurrency=1, transport=render_transport)

        with pytest.raises(PageMaterializationError) as exc_info:
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)

        assert exc_info.value.page_number == 3
        assert "AttributeError" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, AttributeError)
        assert len(storage.deleted) == 2
        assert storage.objects == {}

    def test_scratch_files_removed_after_failure(self, render_transport, scratch_root):
        render_transport.failing.add(2)
        render = FakeRenderProvider(page_count=3)
        materializer = PageMaterializer(render, FakeStorage(), transport=render_transport)

        with pytest.raises(PageMaterializationError):
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)
        assert list(scratch_root.iterdir()) == []


# ============================================================
# Concurrency & Cancellation
# ============================================================

class TestConcurrency:

    def test_rejects_zero_concurrency(self):
        with pytest.raises(InvalidArgument):
            PageMaterializer(FakeRenderProvider(), max_concurrency=0)

    def test_upload_concurrency_is_bounded(self, render_transport, scratch_root):
        render = FakeRenderProvider(page_count=10)
        storage = FakeStorage(delay=0.01)
        materializer = PageMaterializer(render, storage, max_concurrency=3, transport=render_transport)

        pages = _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)

        assert len(pages) == 10
        assert 1 <= storage.max_active <= 3

    def test_sequential_when_limit_is_one(self, render_transport, scratch_root):
        render = FakeRenderProvider(page_count=4)
        storage = FakeStorage(delay=0.005)
        materializer = PageMaterializer(render, storage, max_concurrency=1, transport=render_transport)

        _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root)
        assert storage.max_active == 1


class TestCancellation:

    def test_cancelled_before_start_transfers_nothing(self, render_transport, scratch_root):
        cancel = asyncio.Event()
        cancel.set()
        render = FakeRenderProvider(page_count=3)
        storage = FakeStorage()
        materializer = PageMaterializer(render, storage, transport=render_transport)

        with pytest.raises(PipelineCancelled):
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root, cancel_event=cancel)

        assert render_transport.requested == []
        assert storage.objects == {}

    def test_cancel_during_uploads_rolls_back_stored_pages(self, render_transport, scratch_root):
        cancel = asyncio.Event()

        class CancellingStorage(FakeStorage):
            async def upload(self, local_path, folder, object_id):
                stored = await super().upload(local_path, folder, object_id)
                cancel.set()
                return stored

        render = FakeRenderProvider(page_count=3)
        storage = CancellingStorage()
        materializer = PageMaterializer(render, storage, max_concurrency=1, transport=render_transport)

        with pytest.raises(PipelineCancelled):
            _materialize(materializer, render, PageStorageStrategy.REHOST, scratch_root, cancel_event=cancel)

        assert len(storage.deleted) == 1
        assert storage.deleted[0].split("/")[-1].startswith("page_42_1_")
        assert storage.objects == {}
        assert len(render_transport.requested) == 3
