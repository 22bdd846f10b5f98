"""FastAPI application entry point."""

from dotenv import load_dotenv

load_dotenv()

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic_core import ValidationError as PydanticCoreValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from faxocr import __version__
from faxocr.api.routes import health, images, items, jobs, templates
from faxocr.core.error_handlers import (
    handle_app_error,
    handle_http_error,
    handle_pydantic_error,
    handle_unknown_error,
    handle_validation_error,
)
from faxocr.core.lifespan import lifespan
from faxocr.core.middleware import trace_id_middleware
from faxocr.core.openapi import custom_openapi
from faxocr.core.settings import app_settings
from faxocr.core.validation import validate_all_settings
from faxocr.pipeline.core.exceptions import BaseError
from faxocr.pipeline.logging.config import configure_structured_logging

# Configure logging
configure_structured_logging(level=app_settings.LOG_LEVEL, json_format=app_settings.LOG_JSON)
logger = logging.getLogger(__name__)

# Validate environment before starting application
validate_all_settings()

app = FastAPI(
    title="FAX OCR Digitization API",
    version=__version__,
    description="Turns faxed order sheets into reviewable, exportable line items",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.openapi = lambda: custom_openapi(app)

# 1. Register Middleware
app.middleware("http")(trace_id_middleware)

# 2. Register Exception Handlers
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(PydanticCoreValidationError, handle_pydantic_error)
app.add_exception_handler(StarletteHTTPException, handle_http_error)
app.add_exception_handler(BaseError, handle_app_error)
app.add_exception_handler(Exception, handle_unknown_error)

# Routes
app.include_router(health.router)
app.include_router(jobs.router)
app.include_router(items.router)
app.include_router(templates.router)
app.include_router(images.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "faxocr.main:app",
        host=app_settings.HOST,
        port=app_settings.PORT,
        log_config=None,
    )
