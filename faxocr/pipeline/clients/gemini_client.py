"""Gemini generateContent transport for page images."""

import base64
import logging
import time
from http import HTTPStatus
from typing import Any, Dict, Optional

import httpx

from faxocr.pipeline.core.config import (
    DEFAULT_TEMPERATURE,
    ERROR_BODY_MAX_CHARS,
    GEMINI_API_BASE_URL,
    GEMINI_MODEL,
    GEMINI_REQUEST_TIMEOUT_SECONDS,
    MAX_OUTPUT_TOKENS,
    RESPONSE_MIME_TYPE,
)
from faxocr.pipeline.core.exceptions import ExternalServiceError
from faxocr.pipeline.resilience.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)


def _raise_gemini_error(
    error_type: str,
    details: Dict[str, Any],
    exc: Optional[Exception] = None,
) -> None:
    raise ExternalServiceError(
        service_name="GEMINI",
        error_type=error_type,
        details=details,
    ) from exc


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ExternalServiceError) and exc.retryable


def build_payload(
    image: bytes,
    mime_type: str,
    schema: dict[str, Any],
    prompt: str,
    temperature: float = DEFAULT_TEMPERATURE,
    max_output_tokens: int = MAX_OUTPUT_TOKENS,
) -> dict[str, Any]:
    """generateContent request body: inline image, instruction, structured output."""
    return {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(image).decode("ascii"),
                        }
                    },
                    {"text": prompt},
                ],
            }
        ],
        "generationConfig": {
            "responseMimeType": RESPONSE_MIME_TYPE,
            "responseSchema": schema,
            "temperature": temperature,
            "maxOutputTokens": max_output_tokens,
        },
    }


def extract_response_text(body: dict[str, Any]) -> str:
    """Concatenate the answer text of the first candidate, skipping thoughts."""
    candidates = body.get("candidates") or []
    if not candidates:
        feedback = body.get("promptFeedback") or {}
        _raise_gemini_error(
            "error",
            {"reason": "No candidates in response", "block_reason": feedback.get("blockReason")},
        )
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(
        part.get("text", "") for part in parts if isinstance(part, dict) and not part.get("thought")
    )


class GeminiVisionTransport:
    """Gemini ``generateContent`` over REST.

    Transport failures become ``ExternalServiceError``; rate limits, 5xx and
    timeouts are retried with backoff before giving up.
    """

    def __init__(
        self,
        api_key: str,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_API_BASE_URL,
        timeout: float = GEMINI_REQUEST_TIMEOUT_SECONDS,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.retry_config = retry_config or RetryConfig()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(
        self,
        image: bytes,
        mime_type: str,
        schema: dict[str, Any],
        prompt: str,
    ) -> str:
        """Return the raw response text for one image.

        Raises:
            ExternalServiceError: On any network, HTTP or payload failure
        """
        payload = build_payload(image, mime_type, schema, prompt)
        return await retry_async(self._post, self.retry_config, is_transient, payload)

    async def _post(self, payload: dict[str, Any]) -> str:
        start = time.perf_counter()
        try:
            resp = await self._client.post(
                f"/models/{self.model}:generateContent", json=payload
            )
        except httpx.TimeoutException as e:
            _raise_gemini_error("timeout", {"reason": str(e)}, e)
        except httpx.HTTPError as e:
            _raise_gemini_error("unavailable", {"reason": str(e)}, e)

        if resp.status_code >= 400:
            if resp.status_code == HTTPStatus.TOO_MANY_REQUESTS:
                error_type = "rate_limit"
            elif resp.status_code >= 500:
                error_type = "unavailable"
            else:
                error_type = "error"
            _raise_gemini_error(
                error_type,
                {
                    "http_code": resp.status_code,
                    "body": resp.text[:ERROR_BODY_MAX_CHARS],
                },
            )

        try:
            body = resp.json()
        except ValueError as e:
            _raise_gemini_error("error", {"reason": "Response is not JSON"}, e)

        logger.debug(
            "Gemini call finished",
            extra={
                "service": "GEMINI",
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return extract_response_text(body)
