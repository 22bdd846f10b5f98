"""Template management, generated artifacts and template-scoped export."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Response, UploadFile, status

from faxocr.api.routes.items import csv_response
from faxocr.api.schemas import DuplicateTemplateRequest, ProblemDetail, TemplateArtifacts
from faxocr.core.dependencies import get_template_store, get_working_set
from faxocr.pipeline.exporters.csv_export import export_dynamic_csv
from faxocr.pipeline.models.items import DynamicOCRItem
from faxocr.pipeline.models.template import ColumnDefinition, Template
from faxocr.pipeline.processors.schema_generator import (
    generate_column_definitions,
    generate_schema,
    generate_system_prompt,
)
from faxocr.pipeline.reconciliation import ItemWorkingSet
from faxocr.pipeline.templates.store import TemplateStore

router = APIRouter(prefix="/v1/templates", tags=["templates"])
logger = logging.getLogger(__name__)

_ERRORS = {
    404: {"description": "Not Found", "model": ProblemDetail},
    422: {"description": "Validation Error", "model": ProblemDetail},
}


@router.get("", response_model=list[Template])
async def list_templates(templates: TemplateStore = Depends(get_template_store)):
    return await templates.list_templates()


@router.post("", response_model=Template, status_code=status.HTTP_201_CREATED, responses=_ERRORS)
async def save_template(
    template: Template, templates: TemplateStore = Depends(get_template_store)
):
    """Create or overwrite a template by id."""
    return await templates.save_template(template)


@router.post(
    "/import",
    response_model=Template,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
)
async def import_template(
    file: UploadFile = File(..., description="Exported template JSON"),
    templates: TemplateStore = Depends(get_template_store),
):
    raw = await file.read()
    template = await templates.import_template(raw)
    logger.info("Template imported from %s", file.filename, extra={"template_id": template.id})
    return template


@router.get("/{template_id}", response_model=Template, responses=_ERRORS)
async def get_template(template_id: str, templates: TemplateStore = Depends(get_template_store)):
    return await templates.require_template(template_id)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def delete_template(
    template_id: str, templates: TemplateStore = Depends(get_template_store)
):
    await templates.delete_template(template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{template_id}/duplicate",
    response_model=Template,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
)
async def duplicate_template(
    template_id: str,
    body: Optional[DuplicateTemplateRequest] = Body(None),
    templates: TemplateStore = Depends(get_template_store),
):
    return await templates.duplicate_template(template_id, body.name if body else None)


@router.get("/{template_id}/export", response_class=Response, responses=_ERRORS)
async def export_template(
    template_id: str, templates: TemplateStore = Depends(get_template_store)
):
    content = await templates.export_template(template_id)
    return Response(
        content=content.encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="template_{template_id}.json"'},
    )


@router.get("/{template_id}/columns", response_model=list[ColumnDefinition], responses=_ERRORS)
async def get_columns(template_id: str, templates: TemplateStore = Depends(get_template_store)):
    return generate_column_definitions(await templates.require_template(template_id))


@router.get("/{template_id}/schema", response_model=TemplateArtifacts, responses=_ERRORS)
async def get_schema(template_id: str, templates: TemplateStore = Depends(get_template_store)):
    """Extraction schema and instruction text sent to the vision model."""
    template = await templates.require_template(template_id)
    return TemplateArtifacts(schema=generate_schema(template), prompt=generate_system_prompt(template))


@router.get("/{template_id}/export.csv", response_class=Response, responses=_ERRORS)
async def export_template_items_csv(
    template_id: str,
    templates: TemplateStore = Depends(get_template_store),
    working_set: ItemWorkingSet = Depends(get_working_set),
):
    template = await templates.require_template(template_id)
    items = [
        i
        for i in sorted(working_set.list_items(), key=lambda i: i.seq)
        if isinstance(i, DynamicOCRItem) and i.template_id == template_id
    ]
    return csv_response(export_dynamic_csv(items, template))
