"""Unit tests for document rasterization."""

import io
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image
from pypdf import PdfWriter

from faxocr.pipeline.core.exceptions import RasterizationError
from faxocr.pipeline.processors import rasterizer as rasterizer_module
from faxocr.pipeline.processors.rasterizer import (
    PageRasterizer,
    count_pdf_pages,
    encode_page,
    render_pdf_pages,
)
from tests.fakes import make_jpeg


def _blank_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=595, height=842)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def fake_poppler(monkeypatch):
    """Replace poppler rendering with a per-page colored bitmap."""
    rendered = []

    def convert(data, dpi, first_page, last_page):
        rendered.append((first_page, last_page))
        return [Image.new("RGB", (3000, 1500), (first_page * 40, 0, 0))]

    monkeypatch.setattr(rasterizer_module, "convert_from_bytes", convert)
    return rendered


@pytest.fixture
def thread_rasterizer():
    executor = ThreadPoolExecutor(max_workers=1)
    yield PageRasterizer(executor=executor)
    executor.shutdown(wait=True)


class TestEncoding:
    """Tests for page encoding helpers."""

    def test_encode_bounds_longest_side(self):
        """Test pages are downscaled to the max dimension as JPEG."""
        data = encode_page(Image.new("RGBA", (5000, 2500)), 2500, 0.8)
        image = Image.open(io.BytesIO(data))
        assert image.format == "JPEG"
        assert image.size == (2500, 1250)

    def test_encode_keeps_small_pages(self):
        """Test pages under the limit are not upscaled."""
        data = encode_page(Image.new("RGB", (800, 600)), 2500, 0.8)
        assert Image.open(io.BytesIO(data)).size == (800, 600)

    def test_count_pages(self):
        """Test pypdf page counting."""
        assert count_pdf_pages(_blank_pdf(3)) == 3


class TestRenderPdfPages:
    """Tests for the worker-side render function."""

    def test_renders_pages_in_order(self, fake_poppler):
        """Test one request per page in document order."""
        pages = render_pdf_pages(_blank_pdf(2))
        assert len(pages) == 2
        assert fake_poppler == [(1, 1), (2, 2)]

    def test_rejects_too_many_pages(self, fake_poppler):
        """Test page cap is enforced before rendering."""
        with pytest.raises(ValueError, match="max: 2"):
            render_pdf_pages(_blank_pdf(3), max_pages=2)
        assert fake_poppler == []


class TestPageRasterizer:
    """Tests for the async rasterizer front end."""

    @pytest.mark.asyncio
    async def test_image_passthrough(self, thread_rasterizer):
        """Test raster images become a single unchanged page."""
        data = make_jpeg()
        pages = await thread_rasterizer.rasterize(data, "image/jpeg", "fax.jpg")
        assert len(pages) == 1
        assert pages[0].data == data
        assert pages[0].content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_pdf_pages(self, thread_rasterizer, fake_poppler):
        """Test PDF pages are rendered to bounded JPEGs and named by page."""
        pages = await thread_rasterizer.rasterize(_blank_pdf(2), "application/pdf", "order.pdf")

        assert [p.name for p in pages] == ["order_page_1.jpg", "order_page_2.jpg"]
        assert all(p.content_type == "image/jpeg" for p in pages)
        first = Image.open(io.BytesIO(pages[0].data))
        assert max(first.size) == 2500

    @pytest.mark.asyncio
    async def test_corrupt_pdf(self, thread_rasterizer):
        """Test unreadable PDFs raise RasterizationError."""
        with pytest.raises(RasterizationError) as exc_info:
            await thread_rasterizer.rasterize(b"%PDF-1.4 garbage", "application/pdf", "bad.pdf")
        assert exc_info.value.file_name == "bad.pdf"

    @pytest.mark.asyncio
    async def test_unsupported_type(self, thread_rasterizer):
        """Test non-image, non-PDF content is rejected."""
        with pytest.raises(RasterizationError):
            await thread_rasterizer.rasterize(b"hello", "text/plain", "a.txt")
