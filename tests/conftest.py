"""
Shared fixtures: environment, fake rendering backend and fake extraction client.
"""
import os

os.environ.setdefault("GEMINI_API_KEY", "test-key")

import pytest
from PIL import Image

from core.config import Settings, reset_settings
from core.rendering import PageRenderer, RenderingBackendProvider
from core.schema import InputDocument


class FakePage:
    def __init__(self, page_number: int, fail: bool = False):
        self.page_number = page_number
        self.fail = fail

    def rasterize(self, scale: float) -> Image.Image:
        if self.fail:
            raise RuntimeError(f"broken page {self.page_number}")
        # Width encodes the page number so tests can check ordering
        return Image.new("RGB", (int(8 * self.page_number * scale), 8), color=(255, 255, 255))


class FakeDocument:
    def __init__(self, page_count: int, failing_pages=()):
        self._page_count = page_count
        self.failing_pages = set(failing_pages)
        self.closed = False
        self.rendered = []

    @property
    def page_count(self) -> int:
        return self._page_count

    def get_page(self, page_number: int) -> FakePage:
        self.rendered.append(page_number)
        return FakePage(page_number, fail=page_number in self.failing_pages)

    def close(self) -> None:
        self.closed = True


class FakeBackend:
    """
    Opens "PDF" bytes of the form b"pages=N" or b"pages=N;fail=K".
    Anything else is treated as corrupt.
    """

    def __init__(self):
        self.opened = []

    def open(self, data: bytes) -> FakeDocument:
        text = data.decode("utf-8", errors="replace")
        if not text.startswith("pages="):
            raise RuntimeError("cannot open broken document")
        fields = dict(part.split("=") for part in text.split(";"))
        failing = [int(fields["fail"])] if "fail" in fields else []
        document = FakeDocument(int(fields["pages"]), failing_pages=failing)
        self.opened.append(document)
        return document


class FakeExtractionClient:
    def __init__(self, response: str = "[]", error: Exception = None):
        self.response = response
        self.error = error
        self.batches = []

    async def extract(self, batch) -> str:
        self.batches.append(batch)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture(autouse=True)
def clean_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    return Settings(GEMINI_API_KEY="test-key", _env_file=None)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def backend_provider(fake_backend):
    return RenderingBackendProvider(factory=lambda: fake_backend)


@pytest.fixture
def renderer(backend_provider):
    return PageRenderer(backend_provider, scale=2.0, jpeg_quality=80)


@pytest.fixture
def make_pdf():
    def _make(name: str, pages: int = 1, fail: int = None) -> InputDocument:
        content = f"pages={pages}" + (f";fail={fail}" if fail else "")
        return InputDocument(name=name, media_type="application/pdf", content=content.encode())
    return _make


@pytest.fixture
def make_image():
    def _make(name: str, content: bytes = b"\x89PNG fake image", media_type: str = "image/png") -> InputDocument:
        return InputDocument(name=name, media_type=media_type, content=content)
    return _make


@pytest.fixture
def make_client():
    def _make(response: str = "[]", error: Exception = None) -> FakeExtractionClient:
        return FakeExtractionClient(response=response, error=error)
    return _make
