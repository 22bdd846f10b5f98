"""Page-level extraction: admission, remote call, response parsing, row mapping."""

import logging
from typing import Any, Protocol

from faxocr.pipeline.core.exceptions import ExtractionError
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem
from faxocr.pipeline.models.template import Template
from faxocr.pipeline.processors.fixed_schema import (
    FIXED_EXTRACTION_SCHEMA,
    FIXED_SYSTEM_PROMPT,
)
from faxocr.pipeline.processors.item_mapper import (
    map_dynamic_row,
    map_fixed_row,
    parse_response_rows,
)
from faxocr.pipeline.processors.schema_generator import (
    generate_schema,
    generate_system_prompt,
)
from faxocr.pipeline.resilience.admission import AdmissionQueue

logger = logging.getLogger(__name__)


class VisionTransport(Protocol):
    async def generate(
        self,
        image: bytes,
        mime_type: str,
        schema: dict[str, Any],
        prompt: str,
    ) -> str: ...


class ExtractionClient:
    """Runs one page image through the vision model.

    Every call passes through the shared ``AdmissionQueue``; calls beyond its
    limit wait in arrival order. Any failure surfaces as ``ExtractionError``
    carrying the page index.
    """

    def __init__(self, transport: VisionTransport, admission: AdmissionQueue):
        self.transport = transport
        self.admission = admission

    async def _extract_rows(
        self,
        image: bytes,
        mime_type: str,
        page_index: int,
        schema: dict[str, Any],
        prompt: str,
    ) -> list[dict[str, Any]]:
        try:
            async with self.admission:
                text = await self.transport.generate(
                    image=image, mime_type=mime_type, schema=schema, prompt=prompt
                )
            return parse_response_rows(text)
        except Exception as exc:
            raise ExtractionError(page_index, exc) from exc

    async def extract_fixed(
        self, image: bytes, mime_type: str, page_index: int
    ) -> list[OCRItem]:
        rows = await self._extract_rows(
            image, mime_type, page_index, FIXED_EXTRACTION_SCHEMA, FIXED_SYSTEM_PROMPT
        )
        try:
            return [map_fixed_row(row) for row in rows]
        except Exception as exc:
            raise ExtractionError(page_index, exc) from exc

    async def extract_dynamic(
        self, image: bytes, mime_type: str, page_index: int, template: Template
    ) -> list[DynamicOCRItem]:
        rows = await self._extract_rows(
            image,
            mime_type,
            page_index,
            generate_schema(template),
            generate_system_prompt(template),
        )
        try:
            return [map_dynamic_row(row, template.id) for row in rows]
        except Exception as exc:
            raise ExtractionError(page_index, exc) from exc
