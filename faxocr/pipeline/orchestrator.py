"""Job orchestration: queued -> converting -> processing -> completed | error.

Each job run carries a run token. Page completions re-check the token (and
that the job still exists) before writing anything, so results that arrive
after a delete or retry are dropped instead of resurrecting stale state.
In-flight extraction calls are never cancelled by delete or retry.

Every job mutation updates memory first and is then persisted through the
gateway, whose writes land in call order.
"""

import asyncio
import logging
from typing import Optional, Union

from faxocr.pipeline.clients.extraction_client import ExtractionClient
from faxocr.pipeline.core.config import (
    MSG_ANALYZING,
    MSG_COMPLETED,
    MSG_COMPLETED_WITH_FAILURES,
    MSG_CONVERTING,
    MSG_ERROR,
    MSG_FAILED,
    MSG_INTERRUPTED,
    MSG_PREPARING,
    MSG_PROCESSING,
    MSG_REPROCESS_FAILED,
    MSG_REPROCESSING_PAGE,
    MSG_RESUMING,
    MSG_RETRY_QUEUED,
    RASTER_CONTENT_TYPE,
)
from faxocr.pipeline.core.exceptions import (
    BaseError,
    ExtractionError,
    PageNotFoundError,
    PersistenceError,
    RasterizationError,
    ResourceNotFoundError,
)
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem
from faxocr.pipeline.models.job import Job, JobStatus, SourceDocument, new_id
from faxocr.pipeline.models.template import Template
from faxocr.pipeline.processors.rasterizer import PageRasterizer, RasterPage
from faxocr.pipeline.reconciliation import ItemWorkingSet
from faxocr.pipeline.storage.gateway import PersistenceGateway
from faxocr.pipeline.storage.handles import ImageHandleRegistry
from faxocr.pipeline.templates.store import TemplateStore
from faxocr.pipeline.utils.file_detection import detect_content_type, is_paginated

logger = logging.getLogger(__name__)

AnyItem = Union[OCRItem, DynamicOCRItem]


class StaleRunError(Exception):
    """The run was superseded by a retry or its job was deleted."""


class JobOrchestrator:
    def __init__(
        self,
        gateway: PersistenceGateway,
        working_set: ItemWorkingSet,
        rasterizer: PageRasterizer,
        extraction: ExtractionClient,
        templates: TemplateStore,
        handles: ImageHandleRegistry,
        resume_interrupted: bool = True,
    ):
        self.gateway = gateway
        self.working_set = working_set
        self.rasterizer = rasterizer
        self.extraction = extraction
        self.templates = templates
        self.handles = handles
        self.resume_interrupted = resume_interrupted
        self._jobs: dict[str, Job] = {}
        self._run_tokens: dict[str, str] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_jobs(self) -> list[Job]:
        return sorted(self._jobs.values(), key=lambda j: (j.added_at, j.id))

    def get_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise ResourceNotFoundError("Job", job_id)
        return job

    @property
    def active_runs(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _is_current(self, job_id: str, token: Optional[str]) -> bool:
        if job_id not in self._jobs:
            return False
        return token is None or self._run_tokens.get(job_id) == token

    def _ensure_current(self, job_id: str, token: str) -> None:
        if not self._is_current(job_id, token):
            raise StaleRunError(job_id)

    async def _update_job(
        self, job_id: str, token: Optional[str] = None, **changes
    ) -> Optional[Job]:
        """Apply changes in memory, then persist. No-op for stale runs."""
        if not self._is_current(job_id, token):
            return None
        updated = self._jobs[job_id].model_copy(update=changes)
        self._jobs[job_id] = updated
        await self.gateway.save_job(updated)
        return updated

    def _start(self, job_id: str) -> None:
        token = new_id()
        self._run_tokens[job_id] = token
        task = asyncio.create_task(self._run_job(job_id, token), name=f"job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def enqueue(
        self, documents: list[SourceDocument], template_id: Optional[str] = None
    ) -> list[Job]:
        """Create one queued job per document and start processing in the background.

        A job becomes visible and starts only once its source and record are
        stored. When storage fails partway through a batch, the jobs stored
        before the failure keep running and the error propagates.

        Raises:
            ResourceNotFoundError: ``template_id`` names no stored template
            PersistenceError: A source or job record could not be stored
        """
        if template_id is not None:
            await self.templates.require_template(template_id)

        jobs = []
        for doc in documents:
            job = Job(
                file_name=doc.file_name,
                content_type=doc.content_type,
                template_id=template_id,
            )
            try:
                await self.gateway.save_source(job.id, doc.data)
                await self.gateway.save_job(job)
            except PersistenceError:
                logger.error(
                    "Could not store upload, %d of %d queued",
                    len(jobs),
                    len(documents),
                    extra={"job_id": job.id, "error_code": "PERSISTENCE_ERROR"},
                )
                raise

            self._jobs[job.id] = job
            self._start(job.id)
            jobs.append(job)
            logger.info(
                "Job queued: %s",
                doc.file_name,
                extra={"job_id": job.id, "template_id": template_id},
            )
        return jobs

    async def retry_job(self, job_id: str, message: str = MSG_RETRY_QUEUED) -> Job:
        """Purge the job's items, reset it to queued and run it again."""
        self.get_job(job_id)
        self._run_tokens.pop(job_id, None)

        removed = await self.working_set.delete_by_job(job_id)
        job = await self._update_job(
            job_id,
            status=JobStatus.QUEUED,
            processed_pages=0,
            failed_pages=[],
            error_message=None,
            progress_message=message,
        )
        logger.info("Job retry: purged %d items", removed, extra={"job_id": job_id})
        self._start(job_id)
        return job

    async def reprocess_page(self, job_id: str, page_number: int) -> list[AnyItem]:
        """Re-extract one stored page; only the progress message changes on the job.

        Raises:
            PageNotFoundError: No stored image for that page
        """
        job = self.get_job(job_id)
        await self.working_set.delete_by_page(job_id, page_number)
        await self._update_job(
            job_id, progress_message=MSG_REPROCESSING_PAGE.format(page=page_number)
        )

        page_index = page_number - 1
        data = await self.gateway.get_page_image(job_id, page_index) if page_index >= 0 else None
        if data is None:
            error = PageNotFoundError(job_id, page_number)
            await self._update_job(
                job_id,
                progress_message=MSG_REPROCESS_FAILED.format(page=page_number, error=error.message),
            )
            raise error

        page = RasterPage(
            data=data,
            content_type=detect_content_type(data, RASTER_CONTENT_TYPE),
            name=f"{job.file_name}_p{page_index}.jpg",
        )
        try:
            template = await self._resolve_template(job)
            items = await self._extract(page, page_index, template)
        except (ExtractionError, ResourceNotFoundError) as exc:
            logger.warning(
                "Page reprocess failed",
                extra={"job_id": job_id, "page_number": page_number},
                exc_info=True,
            )
            await self._update_job(
                job_id,
                progress_message=MSG_REPROCESS_FAILED.format(page=page_number, error=exc.message),
            )
            return []

        if job_id not in self._jobs:
            logger.info("Job deleted during page reprocess", extra={"job_id": job_id})
            return []

        self._tag_items(items, job, page_number, page)
        await self.working_set.add_items(items)
        await self._update_job(job_id, progress_message=MSG_COMPLETED)
        return items

    async def delete_job(self, job_id: str) -> None:
        """Delete a job with its items, page images and source."""
        self.get_job(job_id)
        self._jobs.pop(job_id, None)
        self._run_tokens.pop(job_id, None)
        await self.working_set.delete_by_job(job_id, persist=False)
        await self.gateway.delete_job(job_id)
        logger.info("Job deleted", extra={"job_id": job_id})

    async def clear_all(self) -> None:
        self._jobs.clear()
        self._run_tokens.clear()
        self.working_set.clear()
        await self.gateway.clear_all()
        logger.info("All jobs and items cleared")

    async def restore(self) -> None:
        """Load persisted jobs and items; degrade to empty on storage failure.

        Jobs left in a non-terminal state by a previous process are retried
        when ``resume_interrupted`` is set, reusing stored page images.
        """
        try:
            jobs, items = await self.gateway.load_all_data()
        except PersistenceError:
            logger.error(
                "Restore failed, starting with an empty working set",
                extra={"error_code": "PERSISTENCE_ERROR"},
                exc_info=True,
            )
            jobs, items = [], []

        self._jobs = {job.id: job for job in jobs}
        self._run_tokens.clear()
        self.working_set.load(items)

        if not self.resume_interrupted:
            return
        for job in jobs:
            if job.is_terminal:
                continue
            try:
                await self.retry_job(job.id, MSG_INTERRUPTED)
            except PersistenceError:
                logger.error(
                    "Could not resume interrupted job",
                    extra={"job_id": job.id},
                    exc_info=True,
                )

    async def wait_idle(self) -> None:
        """Wait until every background run, including ones started meanwhile, finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background runs and release every image handle.

        Interrupted jobs keep their non-terminal status on disk and are
        resumed by the next ``restore``.
        """
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.working_set.release_all()
        self.handles.release_all()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_job(self, job_id: str, token: str) -> None:
        try:
            await self._process(job_id, token)
        except StaleRunError:
            logger.info("Run superseded, stopping", extra={"job_id": job_id, "run_token": token})
        except Exception as exc:
            message = exc.message if isinstance(exc, BaseError) else str(exc)
            logger.error(
                "Job failed",
                extra={
                    "job_id": job_id,
                    "error_code": getattr(exc, "error_code", "JOB_FAILED"),
                },
                exc_info=True,
            )
            try:
                await self._update_job(
                    job_id,
                    token,
                    status=JobStatus.ERROR,
                    error_message=message or MSG_FAILED,
                    progress_message=MSG_ERROR,
                )
            except PersistenceError:
                logger.error("Could not persist job failure", extra={"job_id": job_id}, exc_info=True)
            finally:
                # Sibling pages still in flight must not touch the failed run
                if self._run_tokens.get(job_id) == token:
                    self._run_tokens.pop(job_id, None)

    async def _resolve_template(self, job: Job) -> Optional[Template]:
        if job.template_id is None:
            return None
        return await self.templates.require_template(job.template_id)

    async def _process(self, job_id: str, token: str) -> None:
        job = await self._update_job(
            job_id, token, status=JobStatus.CONVERTING, progress_message=MSG_PREPARING
        )
        if job is None:
            raise StaleRunError(job_id)

        template = await self._resolve_template(job)
        pages = await self._prepare_pages(job, token)
        total = len(pages)

        job = await self._update_job(
            job_id,
            token,
            status=JobStatus.PROCESSING,
            total_pages=total,
            processed_pages=0,
            failed_pages=[],
            progress_message=MSG_PROCESSING.format(total=total),
        )
        if job is None:
            raise StaleRunError(job_id)

        await asyncio.gather(
            *(
                self._process_page(job, token, index, page, template)
                for index, page in enumerate(pages)
            )
        )

        self._ensure_current(job_id, token)
        failed = self._jobs[job_id].failed_pages
        await self._update_job(
            job_id,
            token,
            status=JobStatus.COMPLETED,
            processed_pages=total,
            progress_message=(
                MSG_COMPLETED_WITH_FAILURES.format(failed=len(failed)) if failed else MSG_COMPLETED
            ),
        )
        logger.info(
            "Job completed: %d pages, %d failed",
            total,
            len(failed),
            extra={"job_id": job_id},
        )

    async def _prepare_pages(self, job: Job, token: str) -> list[RasterPage]:
        """Reuse stored page images when present, otherwise rasterize the source."""
        if await self.gateway.get_page_image(job.id, 0) is not None:
            await self._update_job(job.id, token, progress_message=MSG_RESUMING)
            stored = await self.gateway.get_page_images(job.id)
            logger.info(
                "Resuming from %d stored page images", len(stored), extra={"job_id": job.id}
            )
            return [
                RasterPage(
                    data=data,
                    content_type=detect_content_type(data, RASTER_CONTENT_TYPE),
                    name=f"{job.file_name}_p{index}.jpg",
                )
                for index, data in enumerate(stored)
            ]

        source = await self.gateway.get_source(job.id)
        if source is None:
            raise RasterizationError("元のファイルが見つかりません", job.file_name)

        if is_paginated(job.content_type):
            await self._update_job(job.id, token, progress_message=MSG_CONVERTING)
        pages = await self.rasterizer.rasterize(source, job.content_type, job.file_name)

        self._ensure_current(job.id, token)
        await self.gateway.save_page_images(job.id, [page.data for page in pages])
        return pages

    async def _extract(
        self, page: RasterPage, page_index: int, template: Optional[Template]
    ) -> list[AnyItem]:
        if template is None:
            return await self.extraction.extract_fixed(page.data, page.content_type, page_index)
        return await self.extraction.extract_dynamic(
            page.data, page.content_type, page_index, template
        )

    def _tag_items(
        self, items: list[AnyItem], job: Job, page_number: int, page: RasterPage
    ) -> None:
        for item in items:
            item.job_id = job.id
            item.page_number = page_number
            item.source_file = job.file_name
            item.source_image_url = self.handles.create(page.data, page.content_type)

    async def _process_page(
        self,
        job: Job,
        token: str,
        page_index: int,
        page: RasterPage,
        template: Optional[Template],
    ) -> None:
        """Extract one page. Failures stay local to the page."""
        page_number = page_index + 1
        failed = False
        try:
            items = await self._extract(page, page_index, template)
        except ExtractionError:
            logger.warning(
                "Page extraction failed",
                extra={"job_id": job.id, "page_number": page_number, "error_code": "EXTRACTION_FAILED"},
                exc_info=True,
            )
            items, failed = [], True

        if not self._is_current(job.id, token):
            logger.info(
                "Discarding late page result",
                extra={"job_id": job.id, "page_number": page_number, "run_token": token},
            )
            return

        if items:
            self._tag_items(items, job, page_number, page)
            await self.working_set.add_items(items)

        if not self._is_current(job.id, token):
            return
        current = self._jobs[job.id]
        done = min(current.processed_pages + 1, current.total_pages)
        failed_pages = sorted({*current.failed_pages, page_number}) if failed else current.failed_pages
        await self._update_job(
            job.id,
            token,
            processed_pages=done,
            failed_pages=failed_pages,
            progress_message=MSG_ANALYZING.format(done=done, total=current.total_pages),
        )
