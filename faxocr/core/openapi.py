from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from faxocr.api.schemas import ProblemDetail


def custom_openapi(app: FastAPI):
    """OpenAPI schema that documents errors as RFC 7807 problem details only."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    for path in openapi_schema.get("paths", {}).values():
        for operation in path.values():
            responses = operation.get("responses", {})
            schema = responses.get("422", {}).get("content", {}).get("application/json", {}).get("schema", {})
            if "HTTPValidationError" in schema.get("$ref", ""):
                responses["422"] = {
                    "description": "Validation Error",
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/ProblemDetail"}}
                    },
                }

    schemas = openapi_schema.setdefault("components", {}).setdefault("schemas", {})
    schemas.pop("HTTPValidationError", None)
    schemas.pop("ValidationError", None)
    schemas.setdefault("ProblemDetail", ProblemDetail.model_json_schema())

    app.openapi_schema = openapi_schema
    return app.openapi_schema
