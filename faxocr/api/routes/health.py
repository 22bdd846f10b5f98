from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from faxocr import __version__
from faxocr.api.schemas import ExtractionGateStatus, HealthResponse
from faxocr.core.dependencies import get_orchestrator
from faxocr.pipeline.orchestrator import JobOrchestrator

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    request: Request, orchestrator: JobOrchestrator = Depends(get_orchestrator)
):
    admission = getattr(request.app.state, "admission", None)
    gate = ExtractionGateStatus(
        limit=admission.limit if admission else 0,
        in_flight=admission.in_flight if admission else 0,
        waiting=admission.waiting if admission else 0,
    )
    healthy = admission is not None

    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        service="fax-ocr-api",
        version=__version__,
        jobs=len(orchestrator.list_jobs()),
        items=len(orchestrator.working_set),
        active_runs=orchestrator.active_runs,
        extraction=gate,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
