"""Convert uploaded documents into page images.

PDF pages are rendered with pdf2image (poppler), bounded to a maximum pixel
dimension with Pillow, and re-encoded as JPEG. Rendering happens in a worker
process so large conversions never stall the event loop. Each document is
one request to the worker and one response or error back.

Raster images are passed through unchanged as a single page.
"""

import asyncio
import functools
import io
import logging
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pdf2image import convert_from_bytes
from PIL import Image
from pypdf import PdfReader

from faxocr.pipeline.core.config import (
    MAX_PDF_PAGES,
    RASTER_CONTENT_TYPE,
    RASTER_DPI,
    RASTER_FORMAT,
    RASTER_MAX_DIMENSION,
    RASTER_QUALITY,
)
from faxocr.pipeline.core.exceptions import RasterizationError
from faxocr.pipeline.utils.file_detection import is_paginated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RasterPage:
    data: bytes
    content_type: str
    name: str


def count_pdf_pages(data: bytes) -> int:
    """Count pages with pypdf, decrypting empty-password PDFs first."""
    reader = PdfReader(io.BytesIO(data))
    if reader.is_encrypted:
        reader.decrypt("")
    return len(reader.pages)


def encode_page(image: Image.Image, max_dimension: int, quality: float) -> bytes:
    """Bound the longest side to ``max_dimension`` and encode as JPEG."""
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format=RASTER_FORMAT, quality=int(round(quality * 100)))
    return buffer.getvalue()


def render_pdf_pages(
    data: bytes,
    dpi: int = RASTER_DPI,
    max_dimension: int = RASTER_MAX_DIMENSION,
    quality: float = RASTER_QUALITY,
    max_pages: int = MAX_PDF_PAGES,
) -> list[bytes]:
    """Render every page of a PDF in document order.

    Runs inside the worker process. Pages are rendered one at a time to keep
    peak memory at a single page bitmap.

    Raises:
        ValueError: If the document has no pages or too many pages
    """
    page_count = count_pdf_pages(data)
    if page_count == 0:
        raise ValueError("PDF contains no pages")
    if page_count > max_pages:
        raise ValueError(f"PDF has {page_count} pages (max: {max_pages})")

    pages: list[bytes] = []
    for page_number in range(1, page_count + 1):
        images = convert_from_bytes(
            data, dpi=dpi, first_page=page_number, last_page=page_number
        )
        if not images:
            raise ValueError(f"Page {page_number} could not be rendered")
        pages.append(encode_page(images[0], max_dimension, quality))
    return pages


class PageRasterizer:
    """Async front end to the rendering worker.

    Args:
        executor: Executor that runs ``render_pdf_pages``. A single-worker
            process pool is created on first use when omitted.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        max_dimension: int = RASTER_MAX_DIMENSION,
        quality: float = RASTER_QUALITY,
        dpi: int = RASTER_DPI,
        max_pages: int = MAX_PDF_PAGES,
        max_workers: int = 1,
    ):
        self._executor = executor
        self._owns_executor = executor is None
        self.max_dimension = max_dimension
        self.quality = quality
        self.dpi = dpi
        self.max_pages = max_pages
        self.max_workers = max_workers

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ProcessPoolExecutor(max_workers=self.max_workers)
        return self._executor

    async def rasterize(
        self, data: bytes, content_type: str, file_name: str
    ) -> list[RasterPage]:
        """Turn one source document into an ordered list of page images.

        Raises:
            RasterizationError: If no pages can be produced
        """
        if not is_paginated(content_type):
            if content_type.startswith("image/"):
                return [RasterPage(data=data, content_type=content_type, name=file_name)]
            raise RasterizationError(
                f"対応していないファイル形式です: {content_type}", file_name
            )

        start = time.perf_counter()
        loop = asyncio.get_running_loop()
        render = functools.partial(
            render_pdf_pages,
            data,
            dpi=self.dpi,
            max_dimension=self.max_dimension,
            quality=self.quality,
            max_pages=self.max_pages,
        )
        try:
            encoded = await loop.run_in_executor(self._get_executor(), render)
        except Exception as exc:
            logger.error(
                "PDF rasterization failed: %s",
                file_name,
                extra={"error_code": "RASTERIZATION_FAILED"},
                exc_info=True,
            )
            raise RasterizationError(
                f"PDFの変換に失敗しました: {exc}", file_name
            ) from exc

        if not encoded:
            raise RasterizationError("PDFからページを取得できませんでした", file_name)

        stem = Path(file_name).stem
        logger.info(
            "Rasterized %s into %d pages",
            file_name,
            len(encoded),
            extra={"duration_ms": int((time.perf_counter() - start) * 1000)},
        )
        return [
            RasterPage(
                data=page,
                content_type=RASTER_CONTENT_TYPE,
                name=f"{stem}_page_{index + 1}.jpg",
            )
            for index, page in enumerate(encoded)
        ]

    def shutdown(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
