"""Unit tests for local-disk persistence."""

import pytest

from faxocr.pipeline.core.exceptions import PersistenceError
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem
from faxocr.pipeline.models.job import Job, JobStatus
from tests.fakes import make_jpeg


def _job(**kw):
    return Job(file_name="fax.pdf", content_type="application/pdf", **kw)


class TestJobs:
    """Tests for the jobs collection."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, gateway):
        """Test a job round-trips through storage."""
        job = _job(status=JobStatus.PROCESSING, total_pages=2, failed_pages=[2])
        await gateway.save_job(job)
        assert await gateway.get_job(job.id) == job

    @pytest.mark.asyncio
    async def test_save_is_idempotent_upsert(self, gateway):
        """Test saving twice keeps one record with the latest values."""
        job = _job()
        await gateway.save_job(job)
        await gateway.save_job(job.model_copy(update={"processed_pages": 1}))
        jobs = await gateway.get_all_jobs()
        assert len(jobs) == 1
        assert jobs[0].processed_pages == 1

    @pytest.mark.asyncio
    async def test_get_all_sorted_by_added_at(self, gateway):
        """Test jobs come back in upload order."""
        later = _job(added_at=200)
        earlier = _job(added_at=100)
        await gateway.save_jobs([later, earlier])
        assert [j.id for j in await gateway.get_all_jobs()] == [earlier.id, later.id]

    @pytest.mark.asyncio
    async def test_missing_job(self, gateway):
        """Test unknown ids return None."""
        assert await gateway.get_job("nope") is None

    @pytest.mark.asyncio
    async def test_delete_cascades(self, gateway):
        """Test deleting a job removes its items, pages and source only."""
        job, other = _job(), _job()
        await gateway.save_jobs([job, other])
        await gateway.save_items([OCRItem(job_id=job.id), OCRItem(job_id=other.id)])
        await gateway.save_page_images(job.id, [b"p0", b"p1"])
        await gateway.save_page_images(other.id, [b"o0"])
        await gateway.save_source(job.id, b"%PDF")

        await gateway.delete_job(job.id)

        assert await gateway.get_job(job.id) is None
        assert await gateway.get_items_by_job_id(job.id) == []
        assert await gateway.get_page_images(job.id) == []
        assert await gateway.get_source(job.id) is None
        assert len(await gateway.get_items_by_job_id(other.id)) == 1
        assert await gateway.get_page_images(other.id) == [b"o0"]

    @pytest.mark.asyncio
    async def test_rejects_unsafe_ids(self, gateway):
        """Test path-like ids surface as persistence errors."""
        with pytest.raises(PersistenceError):
            await gateway.get_job("../etc")


class TestItems:
    """Tests for the items collection."""

    @pytest.mark.asyncio
    async def test_items_round_trip_both_kinds(self, gateway):
        """Test fixed and dynamic items restore as their own classes."""
        fixed = OCRItem(job_id="j1", seq=1, reported_total=2, source_image_url="blob:x")
        dynamic = DynamicOCRItem(job_id="j1", seq=2, template_id="t", data={"a": 1})
        await gateway.save_items([fixed, dynamic])

        restored = await gateway.get_all_items()

        assert [type(i) for i in restored] == [OCRItem, DynamicOCRItem]
        assert restored[0].source_image_url is None
        assert restored[1].data == {"a": 1}

    @pytest.mark.asyncio
    async def test_delete_by_ids(self, gateway):
        """Test deleting selected items."""
        a, b = OCRItem(job_id="j1"), OCRItem(job_id="j1")
        await gateway.save_items([a, b])
        await gateway.delete_items_by_ids([a.id, "unknown"])
        assert await gateway.get_item(a.id) is None
        assert (await gateway.get_item(b.id)).id == b.id

    @pytest.mark.asyncio
    async def test_delete_by_job(self, gateway):
        """Test deleting a job's items leaves the job record."""
        job = _job()
        await gateway.save_job(job)
        await gateway.save_item(OCRItem(job_id=job.id))
        await gateway.delete_items_by_job_id(job.id)
        assert await gateway.get_items_by_job_id(job.id) == []
        assert await gateway.get_job(job.id) is not None


class TestPageImages:
    """Tests for page image storage."""

    @pytest.mark.asyncio
    async def test_pages_until_first_gap(self, gateway):
        """Test stored pages are read in index order up to a gap."""
        await gateway.save_page_image("j1", 0, b"a")
        await gateway.save_page_image("j1", 1, b"b")
        await gateway.save_page_image("j1", 3, b"d")
        assert await gateway.get_page_images("j1") == [b"a", b"b"]

    @pytest.mark.asyncio
    async def test_job_id_prefix_not_confused(self, gateway):
        """Test deleting job "j1" keeps pages of job "j1_0"."""
        await gateway.save_page_images("j1", [b"a"])
        await gateway.save_page_images("j1_0", [b"b"])
        await gateway.delete_job("j1")
        assert await gateway.get_page_images("j1_0") == [b"b"]


class TestRestore:
    """Tests for load_all_data and clear_all."""

    @pytest.mark.asyncio
    async def test_attaches_one_handle_per_item(self, gateway, handles):
        """Test each restored item gets its own handle to its page image."""
        page = make_jpeg()
        job = _job()
        await gateway.save_job(job)
        await gateway.save_page_images(job.id, [page])
        await gateway.save_items(
            [
                OCRItem(job_id=job.id, page_number=1, seq=1),
                OCRItem(job_id=job.id, page_number=1, seq=2),
                OCRItem(job_id=job.id, page_number=2, seq=3),
            ]
        )

        jobs, items = await gateway.load_all_data()

        assert [j.id for j in jobs] == [job.id]
        first, second, missing_page = items
        assert first.source_image_url != second.source_image_url
        assert handles.get(first.source_image_url).data == page
        assert handles.get(first.source_image_url).content_type == "image/jpeg"
        assert missing_page.source_image_url is None
        assert len(handles) == 2

    @pytest.mark.asyncio
    async def test_restore_twice_yields_same_records(self, gateway, handles):
        """Test repeated restores return equal records with fresh handles."""
        job = _job()
        await gateway.save_job(job)
        await gateway.save_page_images(job.id, [make_jpeg("white"), make_jpeg("black")])
        await gateway.save_items(
            [
                OCRItem(job_id=job.id, page_number=1, seq=1, product_name="靴下"),
                OCRItem(job_id=job.id, page_number=2, seq=2, product_name="帽子"),
            ]
        )

        first_jobs, first_items = await gateway.load_all_data()
        second_jobs, second_items = await gateway.load_all_data()

        def stored(items):
            return [i.model_dump(exclude={"source_image_url"}) for i in items]

        assert first_jobs == second_jobs
        assert stored(first_items) == stored(second_items)
        first_handles = {i.source_image_url for i in first_items}
        second_handles = {i.source_image_url for i in second_items}
        assert None not in first_handles | second_handles
        assert first_handles.isdisjoint(second_handles)
        assert len(handles) == 4

    @pytest.mark.asyncio
    async def test_empty_store(self, gateway):
        """Test restoring from an empty root."""
        assert await gateway.load_all_data() == ([], [])

    @pytest.mark.asyncio
    async def test_corrupt_record_raises(self, gateway):
        """Test unreadable records raise PersistenceError."""
        gateway.jobs_dir.mkdir(parents=True)
        (gateway.jobs_dir / "bad.json").write_text("{not json")
        with pytest.raises(PersistenceError):
            await gateway.load_all_data()

    @pytest.mark.asyncio
    async def test_clear_all(self, gateway):
        """Test clear_all empties every collection."""
        job = _job()
        await gateway.save_job(job)
        await gateway.save_item(OCRItem(job_id=job.id))
        await gateway.save_page_images(job.id, [b"x"])
        await gateway.clear_all()
        assert await gateway.load_all_data() == ([], [])
        assert await gateway.get_page_images(job.id) == []
