"""Versioned question container persisted through a ``StoragePort``.

The whole container is serialized under one key, so every mutation rewrites it in a
single ``set`` call together with ``lastModified`` and ``totalQuestions``. A failed
write leaves the mutated container in memory (``has_unsaved_changes``); callers either
``flush()`` it later or ``reload()`` to discard it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone

import pydantic

from qsnap.domain.errors import (
    ConfirmationRejectedError,
    CorruptStoreError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    SchemaMigrationRequiredError,
)
from qsnap.domain.models import (
    SCHEMA_VERSION,
    ExtractionResult,
    GradeLevel,
    ImageFormat,
    ProcessingStatus,
    QuestionRecord,
    StorageMetrics,
    StoreContainer,
    StoreMetadata,
    status_for,
)
from qsnap.infra.ports.storage import StoragePort, WriteStatus, encoded_size
from qsnap.utils.ids import new_public_id

logger = logging.getLogger(__name__)

STORAGE_KEY = "incorrect-questions-data"
VERSION_KEY = "incorrect-questions-schema-version"
FALLBACK_QUOTA_BYTES = 5 * 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuestionStore:
    def __init__(self, storage: StoragePort, *, clock: Callable[[], datetime] = _utcnow):
        self._storage = storage
        self._clock = clock
        self._container: StoreContainer | None = None
        self._dirty = False

    # ── container lifecycle ─────────────────────────────────────────

    def initialize(self) -> StoreContainer:
        """Load the persisted container, creating and saving an empty one on first use.

        While a failed write is pending, the unsaved in-memory container is returned as is.
        """
        if self._dirty and self._container is not None:
            return self._container

        raw = self._storage.get(STORAGE_KEY)
        if raw is not None:
            self._container = self._parse(raw)
            self._dirty = False
            return self._container

        now = self._clock()
        self._container = StoreContainer(
            version=SCHEMA_VERSION,
            questions={},
            metadata=StoreMetadata(createdAt=now, lastModified=now, totalQuestions=0),
        )
        self._persist()
        logger.info("created empty question container (schema %s)", SCHEMA_VERSION)
        return self._container

    @staticmethod
    def _parse(raw: str) -> StoreContainer:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptStoreError("Saved questions could not be read (invalid JSON).") from exc
        if not isinstance(data, dict):
            raise CorruptStoreError("Saved questions could not be read (unexpected format).")

        version = data.get("version")
        if version != SCHEMA_VERSION:
            logger.warning("schema migration needed: %s -> %s", version, SCHEMA_VERSION)
            raise SchemaMigrationRequiredError(version if isinstance(version, str) else None, SCHEMA_VERSION)

        try:
            return StoreContainer.model_validate(data)
        except pydantic.ValidationError as exc:
            raise CorruptStoreError(f"Saved questions could not be read: {exc.error_count()} invalid field(s).") from exc

    def _load(self) -> StoreContainer:
        return self.initialize()

    def _write(self, key: str, value: str) -> None:
        result = self._storage.set(key, value)
        if result.status is WriteStatus.QUOTA_EXCEEDED:
            self._dirty = True
            logger.warning("storage quota exceeded writing %s: %s", key, result.detail)
            raise QuotaExceededError()
        if not result.ok:
            self._dirty = True
            raise PersistenceError(f"Failed to save questions: {result.detail or 'unknown storage error'}")

    def _persist(self) -> None:
        if self._container is None:
            raise RuntimeError("question container is not loaded")
        self._write(STORAGE_KEY, self._container.model_dump_json())
        self._write(VERSION_KEY, SCHEMA_VERSION)
        self._dirty = False

    def _touch(self, container: StoreContainer) -> datetime:
        now = self._clock()
        container.metadata.lastModified = now
        return now

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    def flush(self) -> None:
        """Retry persisting a container left unsaved by an earlier failed write."""
        if self._dirty and self._container is not None:
            self._persist()

    def reload(self) -> StoreContainer:
        """Drop unsaved in-memory changes and re-read the backend."""
        self._dirty = False
        self._container = None
        return self.initialize()

    # ── CRUD ────────────────────────────────────────────────────────

    def create(
        self,
        image: str,
        file_size: int,
        file_format: ImageFormat,
        extraction: ExtractionResult,
        *,
        grade_level: GradeLevel | None = None,
        subject: str | None = None,
    ) -> str:
        container = self._load()

        question_id = new_public_id("q_")
        while question_id in container.questions:
            question_id = new_public_id("q_")

        now = self._clock()
        record = QuestionRecord(
            id=question_id,
            imageBase64=image,
            fileSize=file_size,
            fileFormat=file_format,
            extractedText=extraction.questionText,
            confidence=extraction.confidence,
            noiseFiltered=extraction.noiseFiltered,
            processingStatus=status_for(extraction),
            errorMessage=extraction.errorMessage,
            uploadTimestamp=now,
            confirmedAt=None,
            gradeLevel=grade_level or extraction.educationLevel,
            subject=subject,
        )

        container.questions[question_id] = record
        container.metadata.totalQuestions += 1
        container.metadata.lastModified = now
        self._persist()
        return question_id

    def get_all(self) -> list[QuestionRecord]:
        return [record.model_copy() for record in self._load().questions.values()]

    def get_by_id(self, question_id: str) -> QuestionRecord | None:
        record = self._load().questions.get(question_id)
        return record.model_copy() if record is not None else None

    def get_by_status(self, status: ProcessingStatus) -> list[QuestionRecord]:
        return [record for record in self.get_all() if record.processingStatus == status]

    def get_confirmed(self) -> list[QuestionRecord]:
        """Confirmed records, most recently confirmed first."""
        confirmed = [record for record in self.get_all() if record.confirmedAt is not None]
        confirmed.sort(key=lambda record: record.confirmedAt, reverse=True)
        return confirmed

    def confirm(self, question_id: str) -> QuestionRecord:
        container = self._load()
        record = container.questions.get(question_id)
        if record is None:
            raise NotFoundError(question_id)
        if record.processingStatus == "failed":
            raise ConfirmationRejectedError(question_id)

        now = self._touch(container)
        record.confirmedAt = max(now, record.uploadTimestamp)
        record.processingStatus = "success"
        self._persist()
        return record.model_copy()

    def update_extraction(self, question_id: str, extraction: ExtractionResult) -> QuestionRecord:
        container = self._load()
        record = container.questions.get(question_id)
        if record is None:
            raise NotFoundError(question_id)

        record.extractedText = extraction.questionText
        record.confidence = extraction.confidence
        record.noiseFiltered = extraction.noiseFiltered
        record.errorMessage = extraction.errorMessage
        # A confirmed record keeps confirmedAt, so a clean re-extraction stays "success".
        status = status_for(extraction)
        if status == "pending" and record.confirmedAt is not None:
            status = "success"
        record.processingStatus = status
        self._touch(container)
        self._persist()
        return record.model_copy()

    def delete(self, question_id: str) -> None:
        container = self._load()
        if question_id not in container.questions:
            raise NotFoundError(question_id)

        del container.questions[question_id]
        container.metadata.totalQuestions = max(0, container.metadata.totalQuestions - 1)
        self._touch(container)
        self._persist()

    def clear_all(self) -> None:
        container = self._load()
        container.questions = {}
        container.metadata.totalQuestions = 0
        self._touch(container)
        self._persist()

    # ── metrics ─────────────────────────────────────────────────────

    def get_metrics(self) -> StorageMetrics:
        container = self._load()
        questions = list(container.questions.values())

        size_bytes = encoded_size(container.model_dump_json())
        quota_bytes = self._storage.estimate_quota() or FALLBACK_QUOTA_BYTES

        return StorageMetrics(
            totalQuestions=container.metadata.totalQuestions,
            confirmedQuestions=sum(1 for q in questions if q.confirmedAt is not None),
            pendingQuestions=sum(1 for q in questions if q.processingStatus == "pending"),
            successQuestions=sum(1 for q in questions if q.processingStatus == "success"),
            failedQuestions=sum(1 for q in questions if q.processingStatus == "failed"),
            estimatedSizeBytes=size_bytes,
            estimatedSizeKB=round(size_bytes / 1024),
            quotaBytes=quota_bytes,
            percentUsed=round(size_bytes / quota_bytes * 100, 2),
        )
