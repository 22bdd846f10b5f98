"""Job intake and lifecycle endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status

from faxocr.api.file_validation import read_upload_file
from faxocr.api.schemas import EnqueueResponse, JobListResponse, ProblemDetail, ReprocessResponse
from faxocr.core.dependencies import get_orchestrator
from faxocr.pipeline.core.exceptions import ValidationError
from faxocr.pipeline.models.job import Job
from faxocr.pipeline.orchestrator import JobOrchestrator

router = APIRouter(prefix="/v1/jobs", tags=["jobs"])
logger = logging.getLogger(__name__)

_ERRORS = {
    404: {"description": "Not Found", "model": ProblemDetail},
    422: {"description": "Validation Error", "model": ProblemDetail},
}


@router.post(
    "",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={**_ERRORS, 413: {"description": "File too large", "model": ProblemDetail}},
)
async def enqueue_jobs(
    request: Request,
    files: list[UploadFile] = File(..., description="PDF or image files"),
    template_id: Optional[str] = Form(None, description="Template for dynamic extraction"),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    trace_id = getattr(request.state, "trace_id", None)
    if not files:
        raise ValidationError(message="No files uploaded", field="files")

    documents = [await read_upload_file(f) for f in files]
    jobs = await orchestrator.enqueue(documents, template_id=template_id or None)

    logger.info(
        "[NEW REQUEST] %d file(s) queued",
        len(jobs),
        extra={"trace_id": trace_id, "template_id": template_id},
    )
    return EnqueueResponse(jobs=jobs)


@router.get("", response_model=JobListResponse)
async def list_jobs(orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    return JobListResponse(jobs=orchestrator.list_jobs())


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_all(orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """Delete every job, item, page image and source. Templates are kept."""
    await orchestrator.clear_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{job_id}", response_model=Job, responses=_ERRORS)
async def get_job(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_job(job_id)


@router.post(
    "/{job_id}/retry",
    response_model=Job,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ERRORS,
)
async def retry_job(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.retry_job(job_id)


@router.post(
    "/{job_id}/pages/{page_number}/reprocess",
    response_model=ReprocessResponse,
    responses=_ERRORS,
)
async def reprocess_page(
    job_id: str,
    page_number: int,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Re-extract a single stored page and replace its items."""
    items = await orchestrator.reprocess_page(job_id, page_number)
    return ReprocessResponse(job=orchestrator.get_job(job_id), items=items)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def delete_job(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    await orchestrator.delete_job(job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
