"""Unit tests for the item working set."""

import pytest

from faxocr.pipeline.core.exceptions import ResourceNotFoundError, ValidationError
from faxocr.pipeline.models.items import Distribution, DynamicOCRItem, OCRItem


def _fixed(job_id="j1", page=1, **kw):
    return OCRItem(job_id=job_id, page_number=page, **kw)


class TestAddAndQuery:
    """Tests for adding and listing items."""

    @pytest.mark.asyncio
    async def test_add_assigns_sequence_and_persists(self, working_set, gateway):
        """Test items get increasing seq numbers and are written through."""
        a, b = _fixed(), _fixed()
        await working_set.add_items([a, b])

        assert (a.seq, b.seq) == (1, 2)
        assert len(working_set) == 2
        assert {i.id for i in await gateway.get_all_items()} == {a.id, b.id}

    @pytest.mark.asyncio
    async def test_list_by_job(self, working_set):
        """Test filtering by job id."""
        await working_set.add_items([_fixed("j1"), _fixed("j2")])
        assert [i.job_id for i in working_set.list_items("j2")] == ["j2"]
        assert len(working_set.list_items()) == 2

    def test_get_unknown(self, working_set):
        """Test unknown item ids raise 404."""
        with pytest.raises(ResourceNotFoundError):
            working_set.get("missing")

    @pytest.mark.asyncio
    async def test_load_continues_sequence(self, working_set, handles):
        """Test restored items keep their order and new ones follow."""
        old = _fixed(seq=7, source_image_url=handles.create(b"x", "image/jpeg"))
        working_set.load([old])
        new = _fixed()
        await working_set.add_items([new])
        assert new.seq == 8


class TestUpdateItem:
    """Tests for patching items."""

    @pytest.mark.asyncio
    async def test_quantity_fix_flips_is_correct(self, working_set, gateway):
        """Test correcting a distribution makes a 4/5 item correct."""
        item = _fixed(
            reported_total=5,
            distributions=[Distribution(shop_code="101", quantity=4)],
        )
        await working_set.add_items([item])
        assert item.is_correct is False

        updated = await working_set.update_item(
            item.id, {"distributions": [{"shop_code": "101", "quantity": 5}]}
        )

        assert updated.calculated_total == 5
        assert updated.is_correct is True
        stored = await gateway.get_item(item.id)
        assert stored.is_correct is True

    @pytest.mark.asyncio
    async def test_reported_total_change_rechecks(self, working_set):
        """Test changing the reported total re-derives correctness."""
        item = _fixed(reported_total=3, distributions=[Distribution(shop_code="1", quantity=3)])
        await working_set.add_items([item])
        updated = await working_set.update_item(item.id, {"reported_total": 4})
        assert updated.is_correct is False

    @pytest.mark.asyncio
    async def test_derived_fields_cannot_be_forced(self, working_set):
        """Test client-supplied totals are ignored."""
        item = _fixed(reported_total=3)
        await working_set.add_items([item])
        updated = await working_set.update_item(
            item.id, {"calculated_total": 3, "is_correct": True}
        )
        assert updated.calculated_total == 0
        assert updated.is_correct is False

    @pytest.mark.asyncio
    async def test_handle_kept_across_update(self, working_set, handles):
        """Test the image handle survives a patch."""
        handle = handles.create(b"img", "image/jpeg")
        item = _fixed(source_image_url=handle)
        await working_set.add_items([item])
        updated = await working_set.update_item(
            item.id, {"product_name": "修正", "source_image_url": "blob:other"}
        )
        assert updated.source_image_url == handle
        assert updated.product_name == "修正"
        assert handle in handles

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field,value",
        [("job_id", "other"), ("page_number", 7), ("source_file", "other.pdf")],
    )
    async def test_immutable_fields_rejected(self, working_set, field, value):
        """Test identity and page-binding fields cannot be patched."""
        item = _fixed()
        await working_set.add_items([item])
        with pytest.raises(ValidationError) as exc_info:
            await working_set.update_item(item.id, {field: value})
        assert exc_info.value.details["field"] == field
        assert working_set.get(item.id).page_number == item.page_number

    @pytest.mark.asyncio
    async def test_invalid_value_rejected(self, working_set):
        """Test type-invalid patches raise ValidationError."""
        item = _fixed()
        await working_set.add_items([item])
        with pytest.raises(ValidationError):
            await working_set.update_item(item.id, {"distributions": "101:1"})
        assert working_set.get(item.id).distributions == []

    @pytest.mark.asyncio
    async def test_dynamic_data_merged(self, working_set):
        """Test dynamic data patches merge key by key."""
        item = DynamicOCRItem(template_id="t", job_id="j1", data={"a": 1, "b": 2})
        await working_set.add_items([item])
        updated = await working_set.update_item(item.id, {"data": {"b": 3}, "is_verified": True})
        assert updated.data == {"a": 1, "b": 3}
        assert updated.is_verified is True


class TestDeletion:
    """Tests for removing items and releasing handles."""

    @pytest.mark.asyncio
    async def test_delete_by_job_releases_handles(self, working_set, handles, gateway):
        """Test job purge releases every handle and storage."""
        items = [_fixed(source_image_url=handles.create(b"i", "image/jpeg")) for _ in range(3)]
        keep = _fixed("j2", source_image_url=handles.create(b"k", "image/jpeg"))
        await working_set.add_items(items + [keep])

        removed = await working_set.delete_by_job("j1")

        assert removed == 3
        assert len(handles) == 1
        assert working_set.list_items() == [keep]
        assert await gateway.get_items_by_job_id("j1") == []

    @pytest.mark.asyncio
    async def test_delete_by_page(self, working_set):
        """Test only the given page's items are removed."""
        p1, p2 = _fixed(page=1), _fixed(page=2)
        await working_set.add_items([p1, p2])
        assert await working_set.delete_by_page("j1", 1) == 1
        assert working_set.list_items() == [p2]

    @pytest.mark.asyncio
    async def test_delete_by_ids(self, working_set, handles):
        """Test bulk delete ignores unknown ids."""
        a = _fixed(source_image_url=handles.create(b"a", "image/jpeg"))
        await working_set.add_items([a])
        assert await working_set.delete_by_ids([a.id, "ghost"]) == 1
        assert len(handles) == 0

    @pytest.mark.asyncio
    async def test_clear(self, working_set, handles):
        """Test clear drops items and handles."""
        await working_set.add_items([_fixed(source_image_url=handles.create(b"a", "image/jpeg"))])
        working_set.clear()
        assert len(working_set) == 0
        assert len(handles) == 0
