"""Scripted collaborators and sample data for pipeline tests."""

import asyncio
import io
from typing import Optional

from PIL import Image

from faxocr.pipeline.core.exceptions import ExternalServiceError, ExtractionError
from faxocr.pipeline.models.template import Template
from faxocr.pipeline.processors.item_mapper import map_dynamic_row, map_fixed_row
from faxocr.pipeline.processors.rasterizer import RasterPage


def make_jpeg(color: str = "white", size=(40, 60)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


def fixed_row(no: str, total: int = 3, dists: str = "101:1|102:2") -> dict:
    return {"no": no, "name": f"商品{no}", "rTotal": total, "dists": dists}


class FakeRasterizer:
    """Returns a fixed page list per call and counts calls."""

    def __init__(self, pages: list[bytes], error: Optional[Exception] = None):
        self.pages = pages
        self.error = error
        self.calls = 0

    async def rasterize(self, data: bytes, content_type: str, file_name: str):
        self.calls += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return [
            RasterPage(data=page, content_type="image/jpeg", name=f"{file_name}_{i}")
            for i, page in enumerate(self.pages)
        ]

    def shutdown(self) -> None:
        pass


class FakeExtraction:
    """Scripted extraction keyed by page index.

    ``rows[page_index]`` is either a list of raw rows or an exception that
    fails the page. ``gates[page_index]`` optionally holds an ``asyncio.Event``
    the call waits on before answering.
    """

    def __init__(self, rows=None, gates=None):
        self.rows = rows or {}
        self.gates = gates or {}
        self.calls: list[int] = []

    async def _rows(self, page_index: int):
        self.calls.append(page_index)
        gate = self.gates.get(page_index)
        if gate is not None:
            await gate.wait()
        await asyncio.sleep(0)
        result = self.rows.get(page_index, [])
        if isinstance(result, Exception):
            raise ExtractionError(page_index, result)
        return result

    async def extract_fixed(self, image: bytes, mime_type: str, page_index: int):
        return [map_fixed_row(row) for row in await self._rows(page_index)]

    async def extract_dynamic(self, image: bytes, mime_type: str, page_index: int, template: Template):
        return [map_dynamic_row(row, template.id) for row in await self._rows(page_index)]


def gemini_down() -> Exception:
    return ExternalServiceError("GEMINI", "unavailable")
