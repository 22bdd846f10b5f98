"""Map raw extraction rows into item records.

The fixed picking-list rules are kept bit-for-bit compatible with data that
was exported before: distribution strings, quantity parsing, total coercion
and vendor-code cleanup all behave exactly as below.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Optional

from faxocr.pipeline.models.items import Distribution, DynamicOCRItem, OCRItem

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_WHITESPACE_RUN = re.compile(r"[\s\u3000\t\r\n\u00a0]+")
_FENCE_START = re.compile(r"^```json\s*")
_FENCE_END = re.compile(r"\s*```$")


def clean_response_text(text: Optional[str]) -> str:
    """Strip code fences and keep the outermost ``{...}`` span.

    Returns an empty string when no object delimiters are present.
    """
    if not text:
        return ""
    cleaned = _FENCE_END.sub("", _FENCE_START.sub("", text))
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        return ""
    return cleaned[start : end + 1]


def parse_response_rows(text: Optional[str]) -> list[dict[str, Any]]:
    """Decode a model response into its list of row objects.

    Raises:
        ValueError: On empty/non-JSON text or when ``items`` is not a list
            of objects
    """
    cleaned = clean_response_text(text)
    if not cleaned:
        raise ValueError("No valid JSON response from Gemini")
    payload = json.loads(cleaned)
    rows = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        raise ValueError("Response JSON has no 'items' list")
    if not all(isinstance(row, dict) for row in rows):
        raise ValueError("Response 'items' must contain objects")
    return rows


def parse_quantity(value: str) -> int:
    """Leading-integer parse, 0 when no digits lead the string."""
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else 0


def parse_distributions(raw: Any) -> list[Distribution]:
    """Parse ``"code1:qty1|code2:qty2"`` keeping input order.

    Segments without both a code and a quantity are dropped.
    """
    if not isinstance(raw, str):
        return []
    distributions = []
    for part in raw.split("|"):
        pieces = part.split(":")
        shop = pieces[0]
        qty = pieces[1] if len(pieces) > 1 else ""
        if shop and qty:
            distributions.append(
                Distribution(shop_code=shop.strip(), quantity=parse_quantity(qty.strip()))
            )
    return distributions


def coerce_number(value: Any) -> int | float:
    """Numeric coercion defaulting to 0 for anything non-numeric."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
    else:
        return 0
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            return 0
        if number.is_integer():
            return int(number)
    return number


def normalize_vendor_code(value: Any) -> str:
    """Collapse whitespace (incl. U+3000, U+00A0) and keep the last token.

    ``"0000 00 995668D"`` becomes ``"995668D"``.
    """
    if not value:
        return ""
    normalized = _WHITESPACE_RUN.sub(" ", str(value)).strip()
    return normalized.split(" ")[-1]


def coerce_bounding_box(value: Any) -> Optional[list[float]]:
    if (
        isinstance(value, list)
        and len(value) == 4
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
    ):
        return [float(v) for v in value]
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def map_fixed_row(row: dict[str, Any]) -> OCRItem:
    """Map one picking-list row (short keys) into an ``OCRItem``."""
    return OCRItem(
        no=_text(row.get("no")),
        jan_code=_text(row.get("jan")),
        product_name=_text(row.get("name")),
        vendor_product_code=normalize_vendor_code(row.get("vCode")),
        size=_text(row.get("sz")),
        color=_text(row.get("col")),
        reported_total=coerce_number(row.get("rTotal")),
        distributions=parse_distributions(row.get("dists")),
        is_verified=False,
        bounding_box=coerce_bounding_box(row.get("box_2d")),
    )


def map_dynamic_row(row: dict[str, Any], template_id: str) -> DynamicOCRItem:
    """Keep the raw row as ``data`` and lift the bounding box."""
    box = row.get("boundingBox") or row.get("box_2d")
    return DynamicOCRItem(
        template_id=template_id,
        data=dict(row),
        bounding_box=coerce_bounding_box(box),
        is_verified=False,
    )
