"""Structured logging configuration.

JSON-formatted records with job/page context so that a single job can be
followed across rasterization, extraction and persistence in the log stream.
"""

import json
import logging
import time

_CONTEXT_KEYS = (
    "trace_id",
    "job_id",
    "page_index",
    "page_number",
    "item_id",
    "template_id",
    "run_token",
    "error_code",
    "service",
    "duration_ms",
    "http_status",
    "retry_attempt",
)

# Third-party loggers and the lowest level worth emitting for each
_QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "PIL": logging.WARNING,
    "pypdf": logging.ERROR,
    "multipart": logging.WARNING,
}

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Known context keys passed through ``extra`` are copied to the top level;
    anything else in ``extra`` is ignored.

    Example:
        >>> logger.info("Page extracted", extra={"job_id": "ab12", "page_index": 0})
        {"timestamp": "2026-01-05T08:52:00.123Z", "level": "INFO", ...,
         "message": "Page extracted", "job_id": "ab12", "page_index": 0}
    """

    def formatTime(self, record, datefmt=None):
        stamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        return f"{stamp}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        log_data.update(
            {key: getattr(record, key) for key in _CONTEXT_KEYS if hasattr(record, key)}
        )

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_structured_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ...)
        json_format: ``StructuredFormatter`` when true, a plain text line otherwise
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else logging.Formatter(_TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level.upper())

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
