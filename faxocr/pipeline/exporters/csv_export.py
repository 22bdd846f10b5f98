"""CSV export for fixed and template-driven items.

Files are UTF-8 with a leading BOM (so spreadsheet tools detect the
encoding), use ``\\n`` line endings, and are named ``{prefix}_{unixMillis}.csv``.
"""

import csv
import io
import json
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from faxocr.pipeline.core.config import CSV_BOM, DYNAMIC_CSV_PREFIX, FIXED_CSV_PREFIX
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem
from faxocr.pipeline.models.job import now_millis
from faxocr.pipeline.models.template import FieldType, Template

FIXED_HEADERS = [
    "ページ",
    "No",
    "商品名",
    "JANコード",
    "メーカー品番",
    "サイズ",
    "カラー",
    "記載合計",
    "店番号",
    "数量",
    "算出合計",
    "確認",
]

STATUS_OK = "OK"
STATUS_NEEDS_REVIEW = "確認要"
YES = "はい"
NO = "いいえ"


@dataclass(frozen=True)
class CsvExport:
    filename: str
    content: bytes
    row_count: int

    media_type: str = "text/csv; charset=utf-8"


def _filename(prefix: str, timestamp: Optional[int]) -> str:
    return f"{prefix}_{timestamp if timestamp is not None else now_millis()}.csv"


def _number(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _compact_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _render(headers: list[str], rows: list[list[Any]], prefix: str, timestamp: Optional[int]) -> CsvExport:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    text = CSV_BOM + buffer.getvalue().rstrip("\n")
    return CsvExport(
        filename=_filename(prefix, timestamp),
        content=text.encode("utf-8"),
        row_count=len(rows),
    )


def export_fixed_csv(
    items: Iterable[OCRItem],
    prefix: str = FIXED_CSV_PREFIX,
    timestamp: Optional[int] = None,
) -> CsvExport:
    """One row per (item, distribution); items without distributions get one row."""
    rows: list[list[Any]] = []
    for item in items:
        base = [
            item.page_number if item.page_number else "",
            item.no,
            item.product_name,
            item.jan_code,
            item.vendor_product_code,
            item.size,
            item.color,
            _number(item.reported_total),
        ]
        status = STATUS_OK if item.is_correct else STATUS_NEEDS_REVIEW
        if item.distributions:
            for dist in item.distributions:
                rows.append(base + [dist.shop_code, dist.quantity, item.calculated_total, status])
        else:
            rows.append(base + ["", "", item.calculated_total, status])
    return _render(FIXED_HEADERS, rows, prefix, timestamp)


def format_dynamic_value(value: Any, field_type: FieldType) -> str:
    if value is None:
        return ""
    if field_type == FieldType.ARRAY:
        if not isinstance(value, list):
            return ""
        if value and isinstance(value[0], (dict, list)):
            return _compact_json(value)
        return ", ".join(_scalar_text(v) for v in value)
    if field_type == FieldType.OBJECT:
        return _compact_json(value)
    if field_type == FieldType.BOOLEAN:
        return YES if value else NO
    return _scalar_text(value)


def export_dynamic_csv(
    items: Iterable[DynamicOCRItem],
    template: Template,
    prefix: str = DYNAMIC_CSV_PREFIX,
    timestamp: Optional[int] = None,
) -> CsvExport:
    """Header is page, one column per field label, then verified."""
    headers = ["ページ", *[f.label for f in template.fields], "確認済み"]
    rows = [
        [
            item.page_number if item.page_number else "",
            *[format_dynamic_value(item.data.get(f.name), f.type) for f in template.fields],
            YES if item.is_verified else NO,
        ]
        for item in items
    ]
    return _render(headers, rows, prefix, timestamp)
