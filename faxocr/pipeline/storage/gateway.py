"""Local-disk persistence for jobs, items, page images and source documents.

Layout under the storage root::

    jobs/{job_id}.json
    items/{job_id}/{item_id}.json
    page_images/{job_id}_{page_index}
    sources/{job_id}

Blocking file I/O runs in the default executor. Writes go through a single
asyncio lock, so they reach disk in the order they were issued. Every file is
replaced atomically, which leaves the store consistent with the last
completed write after a crash.
"""

import asyncio
import functools
import logging
import re
import shutil
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from faxocr.pipeline.core.config import (
    ITEMS_DIR,
    JOBS_DIR,
    PAGE_IMAGES_DIR,
    RASTER_CONTENT_TYPE,
    SOURCES_DIR,
)
from faxocr.pipeline.core.exceptions import PersistenceError
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem, parse_item
from faxocr.pipeline.models.job import Job
from faxocr.pipeline.storage.handles import ImageHandleRegistry
from faxocr.pipeline.utils.file_detection import detect_content_type
from faxocr.pipeline.utils.io_utils import read_bytes, read_json, write_bytes_atomic, write_json

logger = logging.getLogger(__name__)

AnyItem = Union[OCRItem, DynamicOCRItem]

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")
_ORPHAN_DIR = "_unassigned"


def page_image_key(job_id: str, page_index: int) -> str:
    return f"{job_id}_{page_index}"


def _safe(key: str) -> str:
    if not key or not _SAFE_KEY.match(key) or key in {".", ".."}:
        raise ValueError(f"Invalid storage key: {key!r}")
    return key


class PersistenceGateway:
    """Durable key-value store with three logical collections plus sources."""

    def __init__(self, root: Union[str, Path], handles: ImageHandleRegistry):
        self.root = Path(root)
        self.handles = handles
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def jobs_dir(self) -> Path:
        return self.root / JOBS_DIR

    @property
    def items_dir(self) -> Path:
        return self.root / ITEMS_DIR

    @property
    def page_images_dir(self) -> Path:
        return self.root / PAGE_IMAGES_DIR

    @property
    def sources_dir(self) -> Path:
        return self.root / SOURCES_DIR

    def _job_path(self, job_id: str) -> Path:
        return self.jobs_dir / f"{_safe(job_id)}.json"

    def _item_path(self, item: AnyItem) -> Path:
        folder = _safe(item.job_id) if item.job_id else _ORPHAN_DIR
        return self.items_dir / folder / f"{_safe(item.id)}.json"

    def _page_path(self, job_id: str, page_index: int) -> Path:
        return self.page_images_dir / page_image_key(_safe(job_id), int(page_index))

    def _source_path(self, job_id: str) -> Path:
        return self.sources_dir / _safe(job_id)

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    async def _run(self, operation: str, func: Callable[..., Any], *args) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args))
        except (OSError, ValueError, PydanticValidationError) as exc:
            logger.error(
                "Storage operation failed: %s",
                operation,
                extra={"error_code": "PERSISTENCE_ERROR"},
                exc_info=True,
            )
            raise PersistenceError(operation, exc) from exc

    async def _write(self, operation: str, func: Callable[..., Any], *args) -> Any:
        async with self._write_lock:
            return await self._run(operation, func, *args)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def save_job(self, job: Job) -> None:
        await self._write("save_job", self._save_jobs_sync, [job])

    async def save_jobs(self, jobs: Iterable[Job]) -> None:
        await self._write("save_jobs", self._save_jobs_sync, list(jobs))

    def _save_jobs_sync(self, jobs: list[Job]) -> None:
        for job in jobs:
            write_json(self._job_path(job.id), job.model_dump(mode="json"))

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self._run("get_job", self._get_job_sync, job_id)

    def _get_job_sync(self, job_id: str) -> Optional[Job]:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        return Job.model_validate(read_json(path))

    async def get_all_jobs(self) -> list[Job]:
        return await self._run("get_all_jobs", self._get_all_jobs_sync)

    def _get_all_jobs_sync(self) -> list[Job]:
        if not self.jobs_dir.exists():
            return []
        jobs = [Job.model_validate(read_json(p)) for p in self.jobs_dir.glob("*.json")]
        return sorted(jobs, key=lambda j: (j.added_at, j.id))

    async def delete_job(self, job_id: str) -> None:
        """Delete a job with its items, page images and source document."""
        await self._write("delete_job", self._delete_job_sync, job_id)

    def _delete_job_sync(self, job_id: str) -> None:
        self._job_path(job_id).unlink(missing_ok=True)
        self._delete_items_by_job_sync(job_id)
        self._delete_page_images_sync(job_id)
        self._source_path(job_id).unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def save_item(self, item: AnyItem) -> None:
        await self._write("save_item", self._save_items_sync, [item])

    async def save_items(self, items: Iterable[AnyItem]) -> None:
        await self._write("save_items", self._save_items_sync, list(items))

    def _save_items_sync(self, items: list[AnyItem]) -> None:
        for item in items:
            write_json(self._item_path(item), item.to_storage())

    async def get_item(self, item_id: str) -> Optional[AnyItem]:
        return await self._run("get_item", self._get_item_sync, item_id)

    def _find_item_paths(self, item_id: str) -> list[Path]:
        if not self.items_dir.exists():
            return []
        return list(self.items_dir.glob(f"*/{_safe(item_id)}.json"))

    def _get_item_sync(self, item_id: str) -> Optional[AnyItem]:
        paths = self._find_item_paths(item_id)
        if not paths:
            return None
        return parse_item(read_json(paths[0]))

    async def get_all_items(self) -> list[AnyItem]:
        return await self._run("get_all_items", self._get_all_items_sync)

    def _get_all_items_sync(self) -> list[AnyItem]:
        if not self.items_dir.exists():
            return []
        items = [parse_item(read_json(p)) for p in self.items_dir.glob("*/*.json")]
        return sorted(items, key=lambda i: (i.seq, i.id))

    async def get_items_by_job_id(self, job_id: str) -> list[AnyItem]:
        return await self._run("get_items_by_job_id", self._get_items_by_job_sync, job_id)

    def _get_items_by_job_sync(self, job_id: str) -> list[AnyItem]:
        folder = self.items_dir / _safe(job_id)
        if not folder.exists():
            return []
        items = [parse_item(read_json(p)) for p in folder.glob("*.json")]
        return sorted(items, key=lambda i: (i.seq, i.id))

    async def delete_items_by_job_id(self, job_id: str) -> None:
        await self._write("delete_items_by_job_id", self._delete_items_by_job_sync, job_id)

    def _delete_items_by_job_sync(self, job_id: str) -> None:
        folder = self.items_dir / _safe(job_id)
        if folder.exists():
            shutil.rmtree(folder)

    async def delete_items_by_ids(self, item_ids: Iterable[str]) -> None:
        await self._write("delete_items_by_ids", self._delete_items_by_ids_sync, list(item_ids))

    def _delete_items_by_ids_sync(self, item_ids: list[str]) -> None:
        for item_id in item_ids:
            for path in self._find_item_paths(item_id):
                path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Page images and sources
    # ------------------------------------------------------------------

    async def save_page_image(self, job_id: str, page_index: int, data: bytes) -> None:
        await self._write(
            "save_page_image", write_bytes_atomic, self._page_path(job_id, page_index), data
        )

    async def save_page_images(self, job_id: str, pages: list[bytes]) -> None:
        """Write all pages of a job as one storage operation."""
        await self._write("save_page_images", self._save_page_images_sync, job_id, pages)

    def _save_page_images_sync(self, job_id: str, pages: list[bytes]) -> None:
        for index, data in enumerate(pages):
            write_bytes_atomic(self._page_path(job_id, index), data)

    async def get_page_image(self, job_id: str, page_index: int) -> Optional[bytes]:
        return await self._run("get_page_image", read_bytes, self._page_path(job_id, page_index))

    async def get_page_images(self, job_id: str) -> list[bytes]:
        """Stored pages for a job, from index 0 up to the first gap."""
        pages: list[bytes] = []
        while True:
            data = await self.get_page_image(job_id, len(pages))
            if data is None:
                return pages
            pages.append(data)

    def _delete_page_images_sync(self, job_id: str) -> None:
        if not self.page_images_dir.exists():
            return
        pattern = re.compile(rf"^{re.escape(_safe(job_id))}_\d+$")
        for path in self.page_images_dir.iterdir():
            if pattern.match(path.name):
                path.unlink(missing_ok=True)

    async def save_source(self, job_id: str, data: bytes) -> None:
        await self._write("save_source", write_bytes_atomic, self._source_path(job_id), data)

    async def get_source(self, job_id: str) -> Optional[bytes]:
        return await self._run("get_source", read_bytes, self._source_path(job_id))

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    async def load_all_data(self) -> tuple[list[Job], list[AnyItem]]:
        """Restore jobs and items, attaching a fresh image handle per item.

        Items whose page image is missing are returned without a handle.
        The caller owns releasing the allocated handles.
        """
        jobs = await self.get_all_jobs()
        items = await self.get_all_items()

        page_cache: dict[tuple[str, int], Optional[bytes]] = {}
        for item in items:
            if not item.job_id or not item.page_number:
                continue
            key = (item.job_id, item.page_number - 1)
            if key not in page_cache:
                page_cache[key] = await self.get_page_image(*key)
            data = page_cache[key]
            if data is not None:
                item.source_image_url = self.handles.create(
                    data, detect_content_type(data, RASTER_CONTENT_TYPE)
                )

        logger.info("Restored %d jobs and %d items from storage", len(jobs), len(items))
        return jobs, items

    async def clear_all(self) -> None:
        await self._write("clear_all", self._clear_all_sync)

    def _clear_all_sync(self) -> None:
        for folder in (self.jobs_dir, self.items_dir, self.page_images_dir, self.sources_dir):
            if folder.exists():
                shutil.rmtree(folder)
