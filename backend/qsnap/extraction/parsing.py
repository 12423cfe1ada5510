"""Turn the model's message content into a validated ``ExtractionResult``."""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from qsnap.domain.errors import MalformedResponseError
from qsnap.domain.models import ExtractionResult

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def _strip_code_fence(text: str) -> str:
    match = _FENCE.match(text.strip())
    return match.group(1) if match else text.strip()


def parse_extraction_content(content: str) -> ExtractionResult:
    """Parse and validate; any failure raises ``MalformedResponseError`` carrying ``content``."""
    try:
        data = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            "The AI response could not be read. Please try again.",
            raw=content,
        ) from exc

    if not isinstance(data, dict):
        raise MalformedResponseError("The AI response is not a JSON object.", raw=content)

    try:
        return ExtractionResult.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")}))
        raise MalformedResponseError(
            f"The AI response is missing or has invalid fields: {fields or 'unknown'}.",
            raw=content,
        ) from exc


def message_content(body: object) -> str | None:
    """Return ``choices[0].message.content`` from a chat-completions body, or None when absent/empty."""
    if not isinstance(body, dict):
        return None
    choices = body.get("choices") or []
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message") or {}
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, list):
        # Some compatible endpoints return content parts instead of a plain string.
        texts = [part.get("text") for part in content if isinstance(part, dict) and part.get("type") == "text"]
        content = "".join(text for text in texts if isinstance(text, str))
    if not isinstance(content, str) or not content.strip():
        return None
    return content
