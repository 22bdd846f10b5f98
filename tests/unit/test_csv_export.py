"""Unit tests for CSV export."""

from faxocr.pipeline.exporters.csv_export import (
    FIXED_HEADERS,
    export_dynamic_csv,
    export_fixed_csv,
    format_dynamic_value,
)
from faxocr.pipeline.models.items import Distribution, DynamicOCRItem, OCRItem
from faxocr.pipeline.models.template import FieldType, Template

BOM = "\ufeff"


def _lines(export):
    text = export.content.decode("utf-8")
    assert text.startswith(BOM)
    return text[len(BOM):].split("\n")


class TestFixedExport:
    """Tests for the built-in picking-list CSV."""

    def test_one_row_per_distribution(self):
        """Test items expand to one row per distribution."""
        item = OCRItem(
            page_number=1,
            no="1",
            product_name="靴下",
            jan_code="4901234567890",
            reported_total=5,
            distributions=[
                Distribution(shop_code="101", quantity=2),
                Distribution(shop_code="102", quantity=3),
            ],
        )
        export = export_fixed_csv([item], timestamp=1700000000000)

        lines = _lines(export)
        assert export.filename == "hokkaido_sanki_ocr_1700000000000.csv"
        assert export.row_count == 2
        assert lines[0] == ",".join(f'"{h}"' for h in FIXED_HEADERS)
        assert lines[1] == '1,"1","靴下","4901234567890","","","",5,"101",2,5,"OK"'
        assert lines[2] == '1,"1","靴下","4901234567890","","","",5,"102",3,5,"OK"'

    def test_item_without_distributions(self):
        """Test an item without distributions still gets one row."""
        item = OCRItem(page_number=2, reported_total=4)
        lines = _lines(export_fixed_csv([item], timestamp=1))
        assert lines[1] == '2,"","","","","","",4,"","",0,"確認要"'

    def test_empty_export_is_header_only(self):
        """Test no items produce a header-only file without trailing newline."""
        export = export_fixed_csv([], timestamp=1)
        assert export.row_count == 0
        assert _lines(export) == [",".join(f'"{h}"' for h in FIXED_HEADERS)]

    def test_quotes_are_escaped(self):
        """Test embedded quotes are doubled."""
        item = OCRItem(product_name='3" ボタン')
        lines = _lines(export_fixed_csv([item], timestamp=1))
        assert '"3"" ボタン"' in lines[1]


class TestDynamicExport:
    """Tests for template-driven CSV."""

    def test_header_and_values(self):
        """Test header follows template labels and values are formatted."""
        template = Template.model_validate(
            {
                "id": "t",
                "name": "t",
                "fields": [
                    {"name": "name", "label": "品名"},
                    {"name": "qty", "label": "数量", "type": "number"},
                    {"name": "gift", "label": "ギフト", "type": "boolean"},
                    {"name": "tags", "label": "タグ", "type": "array"},
                ],
            }
        )
        item = DynamicOCRItem(
            template_id="t",
            page_number=3,
            is_verified=True,
            data={"name": "帽子", "qty": 2.0, "gift": False, "tags": ["a", "b"]},
        )
        export = export_dynamic_csv([item], template, timestamp=42)

        lines = _lines(export)
        assert export.filename == "ocr_export_42.csv"
        assert lines[0] == '"ページ","品名","数量","ギフト","タグ","確認済み"'
        assert lines[1] == '3,"帽子","2","いいえ","a, b","はい"'

    def test_format_dynamic_value(self):
        """Test value formatting per field type."""
        assert format_dynamic_value(None, FieldType.STRING) == ""
        assert format_dynamic_value(True, FieldType.BOOLEAN) == "はい"
        assert format_dynamic_value({"a": 1}, FieldType.OBJECT) == '{"a":1}'
        assert format_dynamic_value([{"s": "M"}], FieldType.ARRAY) == '[{"s":"M"}]'
        assert format_dynamic_value("x", FieldType.ARRAY) == ""
        assert format_dynamic_value(7, FieldType.NUMBER) == "7"
