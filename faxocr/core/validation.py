"""Application startup validation checks.

Validates critical settings before the application starts serving.
"""

import logging
import re

logger = logging.getLogger(__name__)


def validate_all_settings() -> None:
    """Validate all critical settings at application startup.

    A missing Gemini key is only a warning: jobs can still be queued and
    stored, and every page fails extraction until the key is configured.

    Raises:
        RuntimeError: If any setting is invalid
    """
    from faxocr.core.settings import (
        gemini_settings,
        pipeline_settings,
        storage_settings,
    )

    problems = []

    if not re.match(r"^https?://.+", gemini_settings.GEMINI_BASE_URL):
        problems.append(
            f"  - GEMINI_BASE_URL={gemini_settings.GEMINI_BASE_URL} "
            "(must start with http:// or https://)"
        )
    if pipeline_settings.EXTRACTION_CONCURRENCY < 1:
        problems.append(
            f"  - EXTRACTION_CONCURRENCY must be >= 1, got {pipeline_settings.EXTRACTION_CONCURRENCY}"
        )
    if not (0 < pipeline_settings.RASTER_QUALITY <= 1):
        problems.append(
            f"  - RASTER_QUALITY must be in (0, 1], got {pipeline_settings.RASTER_QUALITY}"
        )
    if pipeline_settings.RASTER_MAX_DIMENSION < 1:
        problems.append(
            f"  - RASTER_MAX_DIMENSION must be positive, got {pipeline_settings.RASTER_MAX_DIMENSION}"
        )
    if gemini_settings.GEMINI_MAX_ATTEMPTS < 1:
        problems.append(
            f"  - GEMINI_MAX_ATTEMPTS must be >= 1, got {gemini_settings.GEMINI_MAX_ATTEMPTS}"
        )

    if problems:
        error_msg = "Invalid configuration:\n" + "\n".join(problems)
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    if not gemini_settings.GEMINI_API_KEY.get_secret_value().strip():
        logger.warning("GEMINI_API_KEY is not set; extraction calls will fail")

    logger.info("All critical settings validated successfully")
    logger.info(f"  - Storage: {storage_settings.storage_dir}")
    logger.info(f"  - Gemini: {gemini_settings.GEMINI_MODEL} @ {gemini_settings.GEMINI_BASE_URL}")
    logger.info(f"  - Extraction concurrency: {pipeline_settings.EXTRACTION_CONCURRENCY}")
