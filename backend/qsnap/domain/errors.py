"""Error taxonomy shared by every layer.

Each error carries a stable ``kind`` (used by the HTTP surface and in logs) and a
message written for direct display to a student.
"""

from __future__ import annotations


class QsnapError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ── Validation ──────────────────────────────────────────────────────


class ValidationError(QsnapError):
    kind = "validation_error"


class UnsupportedFormatError(ValidationError):
    kind = "unsupported_format"

    def __init__(self, declared_type: str | None):
        self.declared_type = declared_type
        super().__init__(
            "Invalid file format. Please upload an image file (JPEG, PNG, or WebP). "
            f"Your file type: {declared_type or 'unknown'}"
        )


class TooLargeError(ValidationError):
    kind = "too_large"

    def __init__(self, size_mb: float):
        self.size_mb = size_mb
        super().__init__(f"Image is too large ({size_mb:.2f}MB). Please use an image under 5MB.")


# ── Encoding ────────────────────────────────────────────────────────


class EncodingError(QsnapError):
    kind = "encoding_error"


class ReadError(EncodingError):
    kind = "read_error"


class DecodeError(EncodingError):
    kind = "decode_error"


# ── Extraction ──────────────────────────────────────────────────────


class ExtractionError(QsnapError):
    kind = "extraction_error"


class InvalidCredentialsError(ExtractionError):
    kind = "invalid_credentials"

    def __init__(self, message: str = "API key is invalid. Please check your configuration."):
        super().__init__(message)


class MalformedResponseError(ExtractionError):
    kind = "malformed_response"

    def __init__(self, message: str, *, raw: str | None):
        super().__init__(message)
        self.raw = raw


class UpstreamError(ExtractionError):
    """Non-retryable failure talking to the AI service."""

    kind = "upstream_error"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableUpstreamError(UpstreamError):
    """Rate limit, server error or empty payload; eligible for backoff."""

    kind = "retryable_upstream_error"


class RetriesExhaustedError(ExtractionError):
    kind = "retries_exhausted"

    def __init__(self, attempts: int, last_error: Exception | None):
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"Failed after {attempts} attempts: {detail}")


# ── Store ───────────────────────────────────────────────────────────


class StoreError(QsnapError):
    kind = "store_error"


class NotFoundError(StoreError):
    kind = "not_found"

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question not found: {question_id}")


class QuotaExceededError(StoreError):
    kind = "quota_exceeded"

    def __init__(self, message: str = "Storage is full. Please delete old questions to make space."):
        super().__init__(message)


class SchemaMigrationRequiredError(StoreError):
    kind = "schema_migration_required"

    def __init__(self, found: str | None, expected: str):
        self.found = found
        self.expected = expected
        super().__init__(f"Schema migration needed: {found or 'unknown'} → {expected}")


class CorruptStoreError(StoreError):
    kind = "corrupt_store"


class PersistenceError(StoreError):
    kind = "persistence_error"


class ConfirmationRejectedError(StoreError):
    kind = "confirmation_rejected"

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(
            f"Question {question_id} has a failed extraction and cannot be confirmed. Retry the scan first."
        )


# ── Capture sessions ────────────────────────────────────────────────


class SessionError(QsnapError):
    kind = "session_error"


class SessionNotFoundError(SessionError):
    kind = "session_not_found"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Upload session not found: {session_id}")


class SessionStateError(SessionError):
    kind = "session_state"
