"""Pydantic request/response schemas for API endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from faxocr.pipeline.models.items import Item
from faxocr.pipeline.models.job import Job


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    See: https://www.rfc-editor.org/rfc/rfc7807
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary of the problem")
    status: int = Field(..., description="HTTP status code for this problem")
    detail: Optional[str] = Field(
        None, description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None,
        description="URI reference identifying this specific occurrence (e.g., request path)",
    )

    # Extension members (allowed by RFC 7807)
    code: str = Field(..., description="Application-specific error code")
    category: str = Field(
        ..., description="Error category (client_error, server_error, etc.)"
    )
    retryable: bool = Field(
        default=False, description="Whether the request can be retried"
    )
    trace_id: Optional[str] = Field(
        None, description="Distributed tracing ID for correlation across services"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "/errors/PAGE_NOT_FOUND",
                "title": "ページ 3 の画像が見つかりません",
                "status": 404,
                "instance": "/v1/jobs/4f1c.../pages/3/reprocess",
                "code": "PAGE_NOT_FOUND",
                "category": "client_error",
                "retryable": False,
                "trace_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
            }
        }
    )


class ExtractionGateStatus(BaseModel):
    limit: int
    in_flight: int
    waiting: int


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy | degraded")
    service: str
    version: str
    jobs: int = Field(..., description="Jobs in the working set")
    items: int = Field(..., description="Items in the working set")
    active_runs: int = Field(..., description="Background job runs in flight")
    extraction: ExtractionGateStatus


class EnqueueResponse(BaseModel):
    jobs: list[Job]


class JobListResponse(BaseModel):
    jobs: list[Job]


ItemPayload = Item


class ItemListResponse(BaseModel):
    items: list[ItemPayload]


class ItemUpdateResponse(BaseModel):
    item: ItemPayload
    errors: list[str] = Field(
        default_factory=list,
        description="Template validation messages for dynamic items (advisory)",
    )


class ItemDeleteResponse(BaseModel):
    deleted: int


class ReprocessResponse(BaseModel):
    job: Job
    items: list[ItemPayload]


class DuplicateTemplateRequest(BaseModel):
    name: Optional[str] = Field(None, description="Name for the copy")


class TemplateArtifacts(BaseModel):
    """Generated extraction schema and instruction text for a template."""

    schema_: dict[str, Any] = Field(..., alias="schema")
    prompt: str

    model_config = ConfigDict(populate_by_name=True)
