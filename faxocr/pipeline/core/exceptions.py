"""Exception hierarchy for the FAX-OCR service.

Every error knows how to render itself as an RFC 7807 problem document
(``to_dict``). Client errors (4xx) are never retryable; server errors decide
per instance. The pipeline-specific errors at the bottom are the ones the
orchestrator reacts to:

* ``RasterizationError``: job-fatal, the job moves to ``error``.
* ``ExtractionError``: page-local, siblings keep running.
* ``PersistenceError``: storage failure; restore degrades to empty.
"""

from enum import Enum
from typing import Any, Optional

TRANSIENT_ERROR_TYPES = frozenset({"timeout", "unavailable", "rate_limit"})

_EXTERNAL_STATUS = {"timeout": 504, "unavailable": 503}


class ErrorCategory(str, Enum):
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    EXTERNAL_SERVICE = "external_service"


class BaseError(Exception):
    """Base exception for all FAX-OCR errors.

    Attributes:
        message: Human-readable error message (problem ``title``)
        error_code: Machine-readable code, also the problem ``type`` suffix
        category: Error category for classification
        http_status: HTTP status code to return
        details: Extra context; ``details["detail"]`` becomes the problem ``detail``
        retryable: Whether repeating the same call may succeed
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        http_status: int,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.http_status = http_status
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": f"/errors/{self.error_code}",
            "title": self.message,
            "status": self.http_status,
            "code": self.error_code,
            "detail": self.details.get("detail"),
            "category": self.category.value,
            "retryable": self.retryable,
        }


class ClientError(BaseError):
    """4xx. The request itself is wrong, so repeating it cannot help."""

    def __init__(
        self,
        message: str,
        error_code: str,
        http_status: int = 400,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            error_code,
            ErrorCategory.CLIENT_ERROR,
            http_status,
            details=details,
            retryable=False,
        )


class ValidationError(ClientError):
    """Upload, item patch or template input rejected (422)."""

    def __init__(
        self,
        message: str,
        field: str,
        error_code: str = "VALIDATION_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            error_code,
            http_status=422,
            details={**(details or {}), "field": field},
        )
        self.field = field


class ResourceNotFoundError(ClientError):
    """Unknown job, item, template or image handle (404)."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        message: Optional[str] = None,
        error_code: str = "RESOURCE_NOT_FOUND",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message or f"{resource_type} not found",
            error_code,
            http_status=404,
            details={
                **(details or {}),
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class PayloadTooLargeError(ClientError):
    def __init__(self, max_size_mb: int, actual_size_mb: float):
        super().__init__(
            f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb}MB)",
            "PAYLOAD_TOO_LARGE",
            http_status=413,
            details={"max_size_mb": max_size_mb, "actual_size_mb": actual_size_mb},
        )


class ServerError(BaseError):
    """5xx. Subclasses decide whether a retry is worthwhile."""

    def __init__(
        self,
        message: str,
        error_code: str,
        http_status: int = 500,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
        category: ErrorCategory = ErrorCategory.SERVER_ERROR,
    ):
        super().__init__(
            message,
            error_code,
            category,
            http_status,
            details=details,
            retryable=retryable,
        )


class ExternalServiceError(ServerError):
    """Failure talking to an upstream service such as Gemini.

    ``error_type`` is one of ``timeout`` (504), ``unavailable`` (503),
    ``rate_limit`` or ``error`` (502). Only the first three are retryable.
    """

    def __init__(
        self,
        service_name: str,
        error_type: str,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            f"{service_name} service {error_type}",
            f"{service_name.upper()}_{error_type.upper()}",
            http_status=_EXTERNAL_STATUS.get(error_type, 502),
            details={**(details or {}), "service": service_name, "error_type": error_type},
            retryable=error_type in TRANSIENT_ERROR_TYPES,
            category=ErrorCategory.EXTERNAL_SERVICE,
        )
        self.service_name = service_name
        self.error_type = error_type


class RasterizationError(ServerError):
    """Source document could not be turned into page images.

    Job-fatal: the orchestrator moves the job to ``error`` and never receives a
    partial page list.
    """

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="RASTERIZATION_FAILED",
            http_status=422,
            details={"file_name": file_name, "detail": message},
        )
        self.file_name = file_name


class ExtractionError(ServerError):
    """Extraction for one page failed.

    Args:
        page_index: 0-based index of the page that failed
        cause: Underlying exception (transport, parsing, schema violation)
    """

    def __init__(self, page_index: int, cause: BaseException):
        super().__init__(
            message=f"Extraction failed for page {page_index + 1}: {cause}",
            error_code="EXTRACTION_FAILED",
            http_status=502,
            retryable=True,
            details={
                "page_index": page_index,
                "cause": type(cause).__name__,
                "detail": str(cause),
            },
        )
        self.page_index = page_index
        self.cause = cause


class PageNotFoundError(ResourceNotFoundError):
    """Stored page image requested for reprocessing does not exist."""

    def __init__(self, job_id: str, page_number: int):
        super().__init__(
            resource_type="Page image",
            resource_id=f"{job_id}_{page_number - 1}",
            message=f"ページ {page_number} の画像が見つかりません",
            error_code="PAGE_NOT_FOUND",
            details={"job_id": job_id, "page_number": page_number},
        )
        self.job_id = job_id
        self.page_number = page_number


class TemplateValidationError(ValidationError):
    """Imported or saved template is malformed. Raised before any write."""

    def __init__(self, message: str, field: str = "template"):
        super().__init__(message, field, error_code="TEMPLATE_INVALID")


class PersistenceError(ServerError):
    """Storage layer unavailable or returned unreadable data."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(
            message=f"Storage {operation} failed: {cause}",
            error_code="PERSISTENCE_ERROR",
            http_status=503,
            retryable=True,
            details={"operation": operation, "detail": str(cause)},
        )
        self.operation = operation
        self.cause = cause
