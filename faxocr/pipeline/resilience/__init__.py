"""Resilience utilities for extraction calls.

- Admission queue: global FIFO concurrency ceiling
- Retry logic: handles transient transport errors
"""

from faxocr.pipeline.resilience.admission import AdmissionQueue
from faxocr.pipeline.resilience.retry import RetryConfig, retry_async

__all__ = [
    "AdmissionQueue",
    "RetryConfig",
    "retry_async",
]
