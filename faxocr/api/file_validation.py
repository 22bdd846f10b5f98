"""File upload validation utilities.

Content type, size and magic-byte checks for uploaded source documents.
"""

import logging

from fastapi import UploadFile

from faxocr.core.settings import pipeline_settings
from faxocr.pipeline.core.config import ALLOWED_CONTENT_TYPES
from faxocr.pipeline.core.exceptions import PayloadTooLargeError, ValidationError
from faxocr.pipeline.models.job import SourceDocument
from faxocr.pipeline.utils.file_detection import detect_file_type_from_bytes

logger = logging.getLogger(__name__)


def _validate_file_size(size: int, max_size_mb: int) -> None:
    if size == 0:
        raise ValidationError(
            message="File is empty (0 bytes)",
            field="files",
            details={"file_size": 0},
        )

    if size > max_size_mb * 1024 * 1024:
        raise PayloadTooLargeError(
            max_size_mb=max_size_mb,
            actual_size_mb=size / (1024 * 1024),
        )


async def read_upload_file(file: UploadFile) -> SourceDocument:
    """Validate an uploaded file and return it as a source document.

    The stored content type is the one implied by the magic bytes; a
    mismatching header is logged and overridden.

    Raises:
        ValidationError: If file fails validation checks
        PayloadTooLargeError: If file exceeds size limit
    """
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            message=f"Invalid content type: {file.content_type}",
            field="files",
            details={"allowed_types": sorted(ALLOWED_CONTENT_TYPES)},
        )

    data = await file.read()
    _validate_file_size(len(data), pipeline_settings.MAX_FILE_SIZE_MB)

    result = detect_file_type_from_bytes(data[:12])
    if result is None:
        raise ValidationError(
            message="Unsupported file type (invalid magic bytes)",
            field="files",
            details={
                "magic_bytes": data[:8].hex(),
                "expected_types": ["pdf", "jpeg", "png", "tiff", "webp"],
            },
        )

    detected_type, detected_content_type = result

    if file.content_type != detected_content_type:
        logger.warning(
            "Content-Type mismatch: header=%s detected=%s",
            file.content_type,
            detected_content_type,
        )

    logger.info(
        "File validated: type=%s size=%d content_type=%s",
        detected_type,
        len(data),
        detected_content_type,
    )
    return SourceDocument(
        file_name=file.filename or f"upload.{detected_type}",
        content_type=detected_content_type,
        data=data,
    )
