# tests/conftest.py
# ============================================================
# Shared Fixtures — In-Memory Providers
# ============================================================
# Fakes for the four external capabilities (render, OCR, text
# models, object storage) plus an httpx.MockTransport that serves
# rendered page images. No network or credentials are needed.
# ============================================================

import asyncio
import io
import re
from pathlib import Path

import httpx
import pytest
from PIL import Image
from pypdf import PdfWriter

from book_ingest.errors import InvalidArgument, OcrError, ProviderError, StorageError
from book_ingest.providers.base import (
    ObjectStorage,
    OcrProvider,
    RenderHandle,
    RenderProvider,
    StoredObject,
    TextModel,
)
from book_ingest.render.provider import Document

RENDER_HOST = "https://render.test"
_PAGE_URL_RE = re.compile(r"/pg_(\d+)/")


# ============================================================
# Fake Providers
# ============================================================

class FakeRenderProvider(RenderProvider):
    def __init__(self, page_count: int = 3, source_id: str = "books/1700000000000/sample_ab12", fail: bool = False):
        self.page_count = page_count
        self.source_id = source_id
        self.fail = fail
        self.registrations = 0

    async def register_source(self, document):
        from book_ingest.errors import UploadError

        self.registrations += 1
        if self.fail:
            raise UploadError("quota exceeded")
        return RenderHandle(source_id=self.source_id, source_version=1712345678, page_count=self.page_count)

    def page_locator(self, handle, page_number):
        if not 1 <= page_number <= handle.page_count:
            raise InvalidArgument(f"Page {page_number} out of range")
        return f"{RENDER_HOST}/pg_{page_number}/v{handle.source_version}/{handle.source_id}.jpg"


class FakeOcr(OcrProvider):
    def __init__(self, text: str = "THE GREAT GATSBY\nF. Scott Fitzgerald", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []

    async def recognize(self, image_url, language="eng"):
        self.calls.append((image_url, language))
        if self.error is not None:
            raise self.error
        if not self.text.strip():
            raise OcrError("OCR returned no text")
        return self.text.strip()


class FakeModel(TextModel):
    """Answers from a script: strings are returned, exceptions raised."""

    def __init__(self, name: str, *answers):
        self.name = name
        self.answers = list(answers)
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if self.answers else ProviderError(f"{self.name} has no answer")
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeStorage(ObjectStorage):
    def __init__(self, fail_pages=(), delay: float = 0.0):
        self.objects = {}
        self.fail_pages = set(fail_pages)
        self.delay = delay
        self.deleted = []
        self.active = 0
        self.max_active = 0

    async def upload(self, local_path, folder, object_id):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            page_number = int(object_id.split("_")[2])
            if page_number in self.fail_pages:
                raise StorageError(f"rejected {object_id}")
            handle = f"{folder}/{object_id}"
            if handle in self.objects:
                raise StorageError(f"{handle} already exists")
            self.objects[handle] = Path(local_path).read_bytes()
            return StoredObject(public_url=f"https://store.test/{handle}.jpg", object_handle=handle)
        finally:
            self.active -= 1

    async def delete(self, object_handle):
        self.deleted.append(object_handle)
        self.objects.pop(object_handle, None)


def answer(title: str, author: str) -> str:
    return f'{{"bookName": "{title}", "authorName": "{author}"}}'


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture(scope="session")
def page_png() -> bytes:
    """A small valid PNG served as every rendered page."""
    buffer = io.BytesIO()
    Image.new("RGB", (60, 80), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def render_transport(page_png):
    """
    MockTransport serving rendered pages. Add page numbers to
    ``transport.failing`` to make those pages answer HTTP 500.
    """
    failing = set()
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        match = _PAGE_URL_RE.search(request.url.path)
        page_number = int(match.group(1)) if match else None
        if page_number in failing:
            return httpx.Response(500, text="render failed")
        return httpx.Response(200, content=page_png, headers={"content-type": "image/png"})

    transport = httpx.MockTransport(handler)
    transport.failing = failing
    transport.requested = requested
    return transport


@pytest.fixture
def sample_pdf(tmp_path) -> Path:
    """A three-page blank PDF written with pypdf."""
    writer = PdfWriter()
    for _ in range(3):
        writer.add_blank_page(width=200, height=300)
    pdf_path = tmp_path / "sample.pdf"
    with pdf_path.open("wb") as fh:
        writer.write(fh)
    return pdf_path


@pytest.fixture
def document(sample_pdf) -> Document:
    return Document.from_path(sample_pdf)


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root
