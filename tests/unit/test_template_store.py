"""Unit tests for template persistence and JSON exchange."""

import json

import pytest

from faxocr.pipeline.core.exceptions import ResourceNotFoundError, TemplateValidationError
from faxocr.pipeline.templates.store import export_template, parse_template_json


class TestTemplateCrud:
    """Tests for save/get/list/delete."""

    @pytest.mark.asyncio
    async def test_save_stamps_timestamps(self, template_store, sample_template):
        """Test saving sets created_at once and refreshes updated_at."""
        saved = await template_store.save_template(sample_template)
        assert saved.created_at > 0
        assert saved.updated_at >= saved.created_at

        again = await template_store.save_template(saved.model_copy(update={"name": "改"}))
        assert again.created_at == saved.created_at
        assert (await template_store.require_template(saved.id)).name == "改"

    @pytest.mark.asyncio
    async def test_list_and_delete(self, template_store, sample_template):
        """Test listing and deleting templates."""
        await template_store.save_template(sample_template)
        assert [t.id for t in await template_store.list_templates()] == ["order-sheet"]

        await template_store.delete_template("order-sheet")
        assert await template_store.list_templates() == []
        with pytest.raises(ResourceNotFoundError):
            await template_store.delete_template("order-sheet")

    @pytest.mark.asyncio
    async def test_require_missing(self, template_store):
        """Test requiring an unknown template raises 404."""
        with pytest.raises(ResourceNotFoundError):
            await template_store.require_template("nope")

    @pytest.mark.asyncio
    async def test_invalid_id_rejected(self, template_store, sample_template):
        """Test ids that are not plain file names are refused."""
        with pytest.raises(TemplateValidationError):
            await template_store.save_template(sample_template.model_copy(update={"id": "../x"}))

    @pytest.mark.asyncio
    async def test_duplicate(self, template_store, sample_template):
        """Test duplication creates a renamed deep copy."""
        await template_store.save_template(sample_template)
        copy = await template_store.duplicate_template("order-sheet")

        assert copy.id.startswith("order-sheet-copy-")
        assert copy.name == "注文書 (コピー)"
        assert [f.name for f in copy.fields] == ["productName", "quantity"]
        assert len(await template_store.list_templates()) == 2

        named = await template_store.duplicate_template("order-sheet", "別名")
        assert named.name == "別名"


class TestExchangeFormat:
    """Tests for JSON export and import."""

    def test_export_is_camel_case(self, sample_template):
        """Test exported JSON uses camelCase keys and keeps Japanese text."""
        text = export_template(sample_template.model_copy(update={"system_prompt": "指示"}))
        payload = json.loads(text)
        assert payload["systemPrompt"] == "指示"
        assert "createdAt" in payload
        assert "注文書" in text
        assert text.startswith('{\n  "id"')

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[]",
            '{"name": "x", "fields": []}',
            '{"id": "x", "fields": []}',
            '{"id": "x", "name": "x", "fields": {}}',
        ],
    )
    def test_parse_rejects_malformed(self, raw):
        """Test malformed documents fail before anything is written."""
        with pytest.raises(TemplateValidationError) as exc_info:
            parse_template_json(raw)
        assert exc_info.value.message.startswith("インポートに失敗しました")

    def test_parse_rejects_bad_field(self):
        """Test a field without a name is rejected."""
        with pytest.raises(TemplateValidationError):
            parse_template_json('{"id": "x", "name": "x", "fields": [{"type": "string"}]}')

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, template_store, sample_template):
        """Test an exported template imports into an empty store unchanged."""
        text = export_template(sample_template)
        imported = await template_store.import_template(text.encode("utf-8"))
        assert imported.id == sample_template.id
        assert imported.fields == sample_template.fields

    @pytest.mark.asyncio
    async def test_import_collision_renames(self, template_store, sample_template):
        """Test importing an existing id stores a renamed copy."""
        await template_store.save_template(sample_template)
        imported = await template_store.import_template(export_template(sample_template))

        assert imported.id.startswith("order-sheet-imported-")
        assert imported.name == "注文書 (インポート)"
        original = await template_store.require_template("order-sheet")
        assert original.name == "注文書"
        assert len(await template_store.list_templates()) == 2

    @pytest.mark.asyncio
    async def test_invalid_import_writes_nothing(self, template_store):
        """Test a rejected import leaves the store empty."""
        with pytest.raises(TemplateValidationError):
            await template_store.import_template("{broken")
        assert await template_store.list_templates() == []
