"""Vision extraction over an OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

import asyncio
import logging

import httpx

from qsnap.domain.errors import (
    InvalidCredentialsError,
    MalformedResponseError,
    RetriesExhaustedError,
    RetryableUpstreamError,
    UpstreamError,
)
from qsnap.domain.models import ExtractionResult, GradeLevel
from qsnap.extraction.parsing import message_content, parse_extraction_content
from qsnap.extraction.prompts import build_messages
from qsnap.infra.ports.extraction import ExtractionPort, Sleep

logger = logging.getLogger(__name__)

BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 10000


def backoff_delay_ms(attempt: int) -> int:
    """Delay after the failed ``attempt`` (0-based): 1s, 2s, 4s, ... capped at 10s."""
    return min(BACKOFF_BASE_MS * (2**attempt), BACKOFF_CAP_MS)


def _is_retryable_http(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(body.get("message"), str):
            return body["message"]
    return response.text[:300]


class OpenAICompatibleExtractor(ExtractionPort):
    provider_name = "openai-compatible"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model_name: str,
        timeout_seconds: float = 60,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.timeout_seconds = max(3.0, float(timeout_seconds))
        self.max_retries = max(1, int(max_retries))
        self._transport = transport
        self._sleep = sleep

    def build_request_payload(self, encoded_image: str, grade_level: GradeLevel) -> dict:
        return {
            "model": self.model_name,
            "messages": build_messages(image_data_url=encoded_image, grade_level=grade_level),
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def extract(
        self,
        encoded_image: str,
        grade_level: GradeLevel = "middle",
        max_retries: int | None = None,
    ) -> ExtractionResult:
        attempts = max(1, int(max_retries)) if max_retries is not None else self.max_retries
        payload = self.build_request_payload(encoded_image, grade_level)

        last_error: RetryableUpstreamError | None = None
        async with self._client() as client:
            for attempt in range(attempts):
                try:
                    return await self._attempt(client, payload)
                except RetryableUpstreamError as exc:
                    last_error = exc
                    if attempt + 1 >= attempts:
                        break
                    delay_ms = backoff_delay_ms(attempt)
                    logger.warning(
                        "extraction attempt %d/%d failed (%s); retrying in %dms",
                        attempt + 1,
                        attempts,
                        exc,
                        delay_ms,
                    )
                    await self._sleep(delay_ms / 1000)

        logger.error("extraction gave up after %d attempts: %s", attempts, last_error)
        raise RetriesExhaustedError(attempts, last_error) from last_error

    async def _attempt(self, client: httpx.AsyncClient, payload: dict) -> ExtractionResult:
        try:
            response = await client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as exc:
            raise UpstreamError(
                f"The AI service did not respond within {self.timeout_seconds:.0f}s. Please try again."
            ) from exc
        except httpx.TransportError as exc:
            raise UpstreamError(f"Could not reach the AI service: {exc}") from exc

        status = response.status_code
        if status == 401:
            raise InvalidCredentialsError()
        if _is_retryable_http(status):
            raise RetryableUpstreamError(
                f"AI service error ({status}): {_error_detail(response)}",
                status_code=status,
            )
        if status >= 400:
            raise UpstreamError(
                f"AI service error ({status}): {_error_detail(response)}",
                status_code=status,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                "The AI service returned a response that is not JSON.",
                raw=response.text,
            ) from exc

        content = message_content(body)
        if content is None:
            raise RetryableUpstreamError("Empty response from AI", status_code=status)

        return parse_extraction_content(content)
