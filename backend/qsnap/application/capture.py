"""Upload session flow: validate → encode → extract → confirm or retry.

A session keeps the extraction candidate in memory only; nothing reaches the
question store until ``confirm``, which also drops the session. The saved record's
``fileSize`` and ``fileFormat`` describe the uploaded file even when the stored image
is the compressed JPEG.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from qsnap.domain.errors import (
    EncodingError,
    ExtractionError,
    MalformedResponseError,
    QsnapError,
    SessionNotFoundError,
    SessionStateError,
    StoreError,
    ValidationError,
)
from qsnap.domain.models import ExtractionResult, GradeLevel, ImageUpload, QuestionRecord
from qsnap.imaging.encoding import DEFAULT_JPEG_QUALITY, compress_image, encode_image
from qsnap.imaging.validation import validate_image
from qsnap.infra.ports.extraction import ExtractionPort
from qsnap.store.questions import QuestionStore
from qsnap.utils.ids import new_public_id

logger = logging.getLogger(__name__)

SessionStatus = Literal["uploading", "validating", "extracting", "confirming", "complete", "error"]


@dataclass
class CaptureSession:
    session_id: str
    upload: ImageUpload
    grade_level: GradeLevel
    status: SessionStatus = "uploading"
    preview_data_url: str | None = None
    candidate: ExtractionResult | None = None
    error_kind: str | None = None
    error_message: str | None = None
    error_raw: str | None = None
    question_id: str | None = None
    attempts: int = 0
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class CaptureService:
    def __init__(
        self,
        *,
        extractor: ExtractionPort,
        store: QuestionStore,
        max_retries: int = 3,
        jpeg_quality: float = DEFAULT_JPEG_QUALITY,
        compress_on_save: bool = False,
        max_sessions: int = 50,
    ):
        self.extractor = extractor
        self.store = store
        self.max_retries = max_retries
        self.jpeg_quality = jpeg_quality
        self.compress_on_save = compress_on_save
        self.max_sessions = max(1, max_sessions)
        self._sessions: dict[str, CaptureSession] = {}

    def get(self, session_id: str) -> CaptureSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def discard(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)

    @staticmethod
    def _fail(session: CaptureSession, exc: QsnapError) -> None:
        session.status = "error"
        session.error_kind = exc.kind
        session.error_message = exc.message
        session.error_raw = exc.raw if isinstance(exc, MalformedResponseError) else None

    async def start(self, upload: ImageUpload, grade_level: GradeLevel = "middle") -> CaptureSession:
        session = CaptureSession(
            session_id=new_public_id("cap_"),
            upload=upload,
            grade_level=grade_level,
            status="validating",
        )

        # Files that cannot be validated or encoded never become retryable sessions.
        try:
            validate_image(upload)
            session.preview_data_url = await asyncio.to_thread(encode_image, upload)
        except (ValidationError, EncodingError) as exc:
            logger.info("rejected upload %s: %s", upload.filename, exc.kind)
            raise

        self._evict_oldest()
        self._sessions[session.session_id] = session
        await self._extract(session)
        return session

    def _evict_oldest(self) -> None:
        idle = [sid for sid, s in self._sessions.items() if s.status != "extracting"]
        while idle and len(self._sessions) >= self.max_sessions:
            evicted = idle.pop(0)
            del self._sessions[evicted]
            logger.info("session %s: evicted", evicted)

    async def retry(self, session_id: str) -> CaptureSession:
        session = self.get(session_id)
        await self._extract(session)
        return session

    async def _extract(self, session: CaptureSession) -> None:
        if session.status == "extracting":
            raise SessionStateError("An extraction is already running for this upload.")
        if session.preview_data_url is None:
            raise SessionStateError("This upload has no encoded image to extract from.")

        session.status = "extracting"
        session.candidate = None
        session.error_kind = None
        session.error_message = None
        session.error_raw = None
        session.attempts += 1
        logger.debug("session %s: extraction #%d", session.session_id, session.attempts)

        try:
            result = await self.extractor.extract(
                session.preview_data_url,
                session.grade_level,
                self.max_retries,
            )
        except ExtractionError as exc:
            # Surfaced on the session so the caller can present it and offer a retry.
            self._fail(session, exc)
            logger.warning("session %s: extraction failed (%s): %s", session.session_id, exc.kind, exc.message)
            return
        except BaseException:
            session.status = "error"
            session.error_kind = "extraction_interrupted"
            session.error_message = "The extraction was interrupted. Please try again."
            logger.exception("session %s: extraction interrupted", session.session_id)
            raise

        session.candidate = result
        session.status = "confirming"
        if result.failed:
            session.error_message = result.errorMessage

    async def confirm(self, session_id: str) -> QuestionRecord:
        session = self.get(session_id)
        if session.status != "confirming" or session.candidate is None:
            raise SessionStateError("There is no extracted question to save for this upload.")
        if session.candidate.failed:
            raise SessionStateError("The question could not be extracted. Please retry the scan before saving.")

        upload = session.upload
        image = session.preview_data_url
        if self.compress_on_save:
            image = await asyncio.to_thread(compress_image, upload, quality=self.jpeg_quality)
        if image is None:
            raise SessionStateError("This upload has no encoded image to save.")

        try:
            if session.question_id is None:
                session.question_id = self.store.create(
                    image,
                    upload.size,
                    upload.content_type,  # type: ignore[arg-type]
                    session.candidate,
                    grade_level=session.grade_level,
                )
            record = self.store.confirm(session.question_id)
        except StoreError:
            if self.store.has_unsaved_changes:
                self.store.reload()
            raise

        session.status = "complete"
        self._sessions.pop(session.session_id, None)
        logger.info("session %s: saved question %s", session.session_id, record.id)
        return record
