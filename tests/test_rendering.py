"""
Unit tests for page rendering and the shared rendering backend provider.
"""
import asyncio
import base64
import io
import threading
import time

import pytest
from PIL import Image

from core.exceptions import (
    BackendInitError,
    DocumentOpenError,
    PageRenderError,
    UnreadableFileError,
)
from core.rendering import PageRenderer, RenderingBackendProvider
from core.schema import InputDocument


def decode_width(page) -> int:
    return Image.open(io.BytesIO(base64.b64decode(page.data))).size[0]


def test_image_is_passed_through(renderer, make_image, fake_backend):
    document = make_image("receipt.png", content=b"raw image bytes")

    pages = asyncio.run(renderer.render(document))

    assert len(pages) == 1
    assert pages[0].mime_type == "image/png"
    assert base64.b64decode(pages[0].data) == b"raw image bytes"
    # Images never touch the PDF backend
    assert fake_backend.opened == []
    assert not renderer.backend_provider.is_ready


def test_image_from_path(tmp_path, renderer):
    path = tmp_path / "scan.jpg"
    path.write_bytes(b"jpeg bytes")

    pages = asyncio.run(renderer.render(InputDocument.from_path(path)))

    assert pages[0].mime_type == "image/jpeg"
    assert base64.b64decode(pages[0].data) == b"jpeg bytes"


def test_unreadable_image(tmp_path, renderer):
    document = InputDocument(name="gone.png", media_type="image/png", path=tmp_path / "gone.png")

    with pytest.raises(UnreadableFileError) as exc_info:
        asyncio.run(renderer.render(document))

    assert exc_info.value.document_name == "gone.png"


def test_document_without_source_is_unreadable(renderer):
    document = InputDocument(name="empty.png", media_type="image/png")

    with pytest.raises(UnreadableFileError):
        asyncio.run(renderer.render(document))


def test_pdf_renders_every_page_in_order(renderer, make_pdf, fake_backend):
    pages = asyncio.run(renderer.render(make_pdf("statement.pdf", pages=4)))

    assert len(pages) == 4
    assert all(page.mime_type == "image/jpeg" for page in pages)
    # FakePage width is 8 * page_number * scale
    assert [decode_width(page) for page in pages] == [16, 32, 48, 64]
    assert fake_backend.opened[0].rendered == [1, 2, 3, 4]
    assert fake_backend.opened[0].closed


def test_pdf_with_zero_pages(renderer, make_pdf, fake_backend):
    assert asyncio.run(renderer.render(make_pdf("blank.pdf", pages=0))) == []
    assert fake_backend.opened[0].closed


def test_pdf_progress_labels(renderer, make_pdf):
    labels = []

    asyncio.run(renderer.render(make_pdf("march.pdf", pages=2), labels.append))

    assert labels == [
        "Loading PDF library for march.pdf...",
        "Processing PDF: march.pdf...",
        "Rendering page 1 of 2 from march.pdf...",
        "Rendering page 2 of 2 from march.pdf...",
    ]


def test_corrupt_pdf_fails_before_any_page(renderer, fake_backend):
    document = InputDocument(name="broken.pdf", media_type="application/pdf", content=b"%PDF-garbage")

    with pytest.raises(DocumentOpenError) as exc_info:
        asyncio.run(renderer.render(document))

    assert exc_info.value.document_name == "broken.pdf"
    assert fake_backend.opened == []


def test_page_failure_aborts_whole_document(renderer, make_pdf, fake_backend):
    with pytest.raises(PageRenderError) as exc_info:
        asyncio.run(renderer.render(make_pdf("statement.pdf", pages=5, fail=3)))

    assert exc_info.value.page_number == 3
    assert exc_info.value.document_name == "statement.pdf"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    document = fake_backend.opened[0]
    assert document.rendered == [1, 2, 3]
    assert document.closed


def test_render_scale_is_applied(backend_provider, make_pdf):
    renderer = PageRenderer(backend_provider, scale=1.0)

    pages = asyncio.run(renderer.render(make_pdf("statement.pdf", pages=1)))

    assert decode_width(pages[0]) == 8


def test_pages_render_on_one_worker_thread(backend_provider, make_pdf, fake_backend, monkeypatch):
    renderer = PageRenderer(backend_provider)
    threads = []
    original_render_page = renderer._render_page

    def tracking_render_page(handle, page_number):
        threads.append(threading.get_ident())
        return original_render_page(handle, page_number)

    monkeypatch.setattr(renderer, "_render_page", tracking_render_page)

    async def scenario():
        loop_thread = threading.get_ident()
        await asyncio.gather(
            renderer.render(make_pdf("jan.pdf", pages=3)),
            renderer.render(make_pdf("feb.pdf", pages=3)),
        )
        return loop_thread

    loop_thread = asyncio.run(scenario())

    assert len(threads) == 6
    assert len(set(threads)) == 1
    assert loop_thread not in threads
    assert all(document.closed for document in fake_backend.opened)


def test_provider_initializes_once_for_concurrent_callers(fake_backend):
    calls = []

    def factory():
        calls.append(threading.get_ident())
        time.sleep(0.05)
        return fake_backend

    provider = RenderingBackendProvider(factory=factory)

    async def scenario():
        return await asyncio.gather(*(provider.get() for _ in range(5)))

    backends = asyncio.run(scenario())

    assert len(calls) == 1
    assert all(backend is fake_backend for backend in backends)
    assert provider.is_ready


def test_provider_caches_backend(fake_backend):
    calls = []

    def factory():
        calls.append(1)
        return fake_backend

    provider = RenderingBackendProvider(factory=factory)

    async def scenario():
        first = await provider.get()
        second = await provider.get()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert len(calls) == 1


def test_provider_failure_reaches_all_waiters_then_allows_retry(fake_backend):
    attempts = []

    def factory():
        attempts.append(1)
        time.sleep(0.05)
        if len(attempts) == 1:
            raise ImportError("No module named 'pymupdf'")
        return fake_backend

    provider = RenderingBackendProvider(factory=factory)

    async def scenario():
        results = await asyncio.gather(*(provider.get() for _ in range(3)), return_exceptions=True)
        retried = await provider.get()
        return results, retried

    results, retried = asyncio.run(scenario())

    assert all(isinstance(result, BackendInitError) for result in results)
    assert isinstance(results[0].__cause__, ImportError)
    assert retried is fake_backend
    assert len(attempts) == 2


def test_backend_failure_surfaces_from_pdf_render(make_pdf):
    def factory():
        raise RuntimeError("library missing")

    renderer = PageRenderer(RenderingBackendProvider(factory=factory))

    with pytest.raises(BackendInitError):
        asyncio.run(renderer.render(make_pdf("statement.pdf", pages=1)))


def test_pymupdf_backend_renders_real_pdf():
    pymupdf = pytest.importorskip("pymupdf")

    doc = pymupdf.open()
    for _ in range(2):
        doc.new_page(width=200, height=100)
    pdf_bytes = doc.tobytes()
    doc.close()

    renderer = PageRenderer(RenderingBackendProvider())
    document = InputDocument(name="real.pdf", media_type="application/pdf", content=pdf_bytes)

    pages = asyncio.run(renderer.render(document))

    assert len(pages) == 2
    assert decode_width(pages[0]) == 400


def test_pymupdf_backend_rejects_garbage():
    pytest.importorskip("pymupdf")

    renderer = PageRenderer(RenderingBackendProvider())
    document = InputDocument(name="junk.pdf", media_type="application/pdf", content=b"definitely not a pdf")

    with pytest.raises(DocumentOpenError):
        asyncio.run(renderer.render(document))


def test_pymupdf_backend_rejects_encrypted_pdf():
    pymupdf = pytest.importorskip("pymupdf")

    doc = pymupdf.open()
    doc.new_page(width=200, height=100)
    pdf_bytes = doc.tobytes(
        encryption=pymupdf.PDF_ENCRYPT_AES_256,
        owner_pw="owner-secret",
        user_pw="user-secret",
    )
    doc.close()

    renderer = PageRenderer(RenderingBackendProvider())
    document = InputDocument(name="locked.pdf", media_type="application/pdf", content=pdf_bytes)

    with pytest.raises(DocumentOpenError) as exc_info:
        asyncio.run(renderer.render(document))

    assert exc_info.value.details["document_name"] == "locked.pdf"
    assert "password" in exc_info.value.details["error"]
