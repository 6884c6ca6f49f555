"""
Page rendering: turns input documents into encoded page images.

PDFs are rasterized page by page through a rendering backend (PyMuPDF by
default) that is loaded lazily and shared by every render. Images are passed
through as-is.
"""
import asyncio
import io
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Protocol

from PIL import Image

from core.exceptions import (
    BackendInitError,
    DocumentOpenError,
    PageRenderError,
    StatementOCRException,
)
from core.logger import setup_logger
from core.schema import EncodedPage, InputDocument

logger = setup_logger(__name__)

ProgressCallback = Callable[[str], None]

DEFAULT_RENDER_SCALE = 2.0
DEFAULT_JPEG_QUALITY = 90
JPEG_MEDIA_TYPE = "image/jpeg"


class PageHandle(Protocol):
    def rasterize(self, scale: float) -> Image.Image: ...


class DocumentHandle(Protocol):
    @property
    def page_count(self) -> int: ...

    def get_page(self, page_number: int) -> PageHandle: ...

    def close(self) -> None: ...


class RenderingBackend(Protocol):
    def open(self, data: bytes) -> DocumentHandle: ...


class PyMuPDFPage:
    """A single page of an open PyMuPDF document."""

    def __init__(self, pymupdf_module: Any, page: Any):
        self._pymupdf = pymupdf_module
        self._page = page

    def rasterize(self, scale: float) -> Image.Image:
        matrix = self._pymupdf.Matrix(scale, scale)
        pix = self._page.get_pixmap(matrix=matrix, alpha=False)
        mode = "RGB" if pix.n < 4 else "RGBA"
        img = Image.frombytes(mode, [pix.width, pix.height], pix.samples)
        if mode == "RGBA":
            img = img.convert("RGB")
        return img


class PyMuPDFDocument:
    """An open PDF; pages are numbered from 1."""

    def __init__(self, pymupdf_module: Any, doc: Any):
        self._pymupdf = pymupdf_module
        self._doc = doc

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def get_page(self, page_number: int) -> PyMuPDFPage:
        return PyMuPDFPage(self._pymupdf, self._doc.load_page(page_number - 1))

    def close(self) -> None:
        self._doc.close()


class PyMuPDFBackend:
    """Rendering backend built on PyMuPDF."""

    def __init__(self, pymupdf_module: Any):
        self._pymupdf = pymupdf_module

    def open(self, data: bytes) -> PyMuPDFDocument:
        doc = self._pymupdf.open(stream=data, filetype="pdf")
        if doc.needs_pass:
            doc.close()
            raise ValueError("document is password-protected")
        return PyMuPDFDocument(self._pymupdf, doc)


def load_pymupdf_backend() -> PyMuPDFBackend:
    """Import PyMuPDF and wrap it as a rendering backend."""
    import pymupdf

    logger.info(f"Loaded PyMuPDF {pymupdf.version[0]}")
    return PyMuPDFBackend(pymupdf)


class RenderingBackendProvider:
    """
    Lazily initializes the rendering backend and hands out the shared handle.

    Initialization runs at most once at a time: concurrent callers await the
    same in-flight future and all observe its outcome. A failed attempt is
    forgotten so the next caller starts a fresh one.
    """

    def __init__(self, factory: Callable[[], RenderingBackend] = load_pymupdf_backend):
        self._factory = factory
        self._backend: Optional[RenderingBackend] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def is_ready(self) -> bool:
        return self._backend is not None

    async def get(self) -> RenderingBackend:
        """
        Return the rendering backend, initializing it on first use.

        Raises:
            BackendInitError: If the backend cannot be loaded
        """
        if self._backend is not None:
            return self._backend

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._initialize())

        # Shielded so one cancelled waiter does not cancel the shared attempt
        return await asyncio.shield(self._pending)

    async def _initialize(self) -> RenderingBackend:
        loop = asyncio.get_running_loop()
        try:
            backend = await loop.run_in_executor(None, self._factory)
        except Exception as e:
            self._pending = None
            logger.error(f"Rendering backend failed to load: {e}")
            raise BackendInitError(
                "PDF processing library failed to load. Please try again.",
                details={"error": str(e)}
            ) from e

        self._backend = backend
        self._pending = None
        return backend


class PageRenderer:
    """
    Converts one input document into an ordered list of encoded pages.

    Backend calls run on a single worker thread: PyMuPDF documents are not
    thread-safe, and the event loop stays free while pages rasterize.
    """

    def __init__(
        self,
        backend_provider: RenderingBackendProvider,
        scale: float = DEFAULT_RENDER_SCALE,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY
    ):
        self.backend_provider = backend_provider
        self.scale = scale
        self.jpeg_quality = jpeg_quality
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="page-render")

    async def render(
        self,
        document: InputDocument,
        on_progress: Optional[ProgressCallback] = None
    ) -> List[EncodedPage]:
        """
        Render a document into encoded pages.

        Args:
            document: Image or PDF document
            on_progress: Optional callback receiving progress labels

        Returns:
            One EncodedPage for an image, one per page for a PDF

        Raises:
            UnreadableFileError: If the document bytes cannot be read
            BackendInitError: If the PDF backend cannot be loaded
            DocumentOpenError: If the PDF cannot be opened
            PageRenderError: If any page fails to rasterize
        """
        notify = on_progress or (lambda message: None)

        if not document.is_pdf:
            raw = document.read_bytes()
            logger.debug(f"Encoded image {document.name} ({len(raw)} bytes)")
            return [EncodedPage.from_bytes(raw, document.media_type)]

        notify(f"Loading PDF library for {document.name}...")
        backend = await self.backend_provider.get()
        raw = document.read_bytes()

        notify(f"Processing PDF: {document.name}...")
        loop = asyncio.get_running_loop()
        try:
            handle = await loop.run_in_executor(self._executor, backend.open, raw)
        except Exception as e:
            logger.error(f"Failed to open PDF {document.name}: {e}")
            raise DocumentOpenError(document.name, details={"error": str(e)}) from e

        try:
            return await self._render_pages(handle, document.name, notify)
        finally:
            await loop.run_in_executor(self._executor, handle.close)

    async def _render_pages(
        self,
        handle: DocumentHandle,
        document_name: str,
        notify: ProgressCallback
    ) -> List[EncodedPage]:
        loop = asyncio.get_running_loop()
        total = handle.page_count
        pages: List[EncodedPage] = []

        for page_number in range(1, total + 1):
            notify(f"Rendering page {page_number} of {total} from {document_name}...")
            try:
                data = await loop.run_in_executor(self._executor, self._render_page, handle, page_number)
            except StatementOCRException:
                raise
            except Exception as e:
                logger.error(f"Failed to render page {page_number} of {document_name}: {e}")
                raise PageRenderError(page_number, document_name, details={"error": str(e)}) from e
            pages.append(EncodedPage.from_bytes(data, JPEG_MEDIA_TYPE))

        logger.info(f"Rendered {len(pages)} page(s) from {document_name}")
        return pages

    def _render_page(self, handle: DocumentHandle, page_number: int) -> bytes:
        image = handle.get_page(page_number).rasterize(self.scale)
        return self._encode_jpeg(image)

    def _encode_jpeg(self, image: Image.Image) -> bytes:
        if image.mode != "RGB":
            image = image.convert("RGB")
        with io.BytesIO() as buf:
            image.save(buf, format="JPEG", quality=self.jpeg_quality)
            return buf.getvalue()
