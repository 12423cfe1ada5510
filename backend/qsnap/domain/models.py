from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

GradeLevel = Literal["elementary", "middle", "high"]
ProcessingStatus = Literal["pending", "success", "failed"]
ImageFormat = Literal["image/jpeg", "image/png", "image/webp"]
ConfidenceBand = Literal["high", "medium", "low"]

GRADE_LEVELS: tuple[str, ...] = ("elementary", "middle", "high")
PROCESSING_STATUSES: tuple[str, ...] = ("pending", "success", "failed")
SUPPORTED_FORMATS: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp")

SCHEMA_VERSION = "1.0.0"


@dataclass(frozen=True)
class ImageUpload:
    """Metadata and content source for one picked file.

    ``data`` holds the raw bytes when the file was received in memory (HTTP upload);
    otherwise ``path`` points at a file on disk that is read lazily by the encoder.
    """

    filename: str | None
    content_type: str | None
    size: int
    data: bytes | None = None
    path: Path | None = None

    @classmethod
    def from_bytes(cls, data: bytes, *, content_type: str | None, filename: str | None = None) -> ImageUpload:
        return cls(filename=filename, content_type=content_type, size=len(data), data=data)

    @classmethod
    def from_path(cls, path: Path, *, content_type: str | None) -> ImageUpload:
        return cls(filename=path.name, content_type=content_type, size=path.stat().st_size, path=path)


class ExtractionResult(BaseModel):
    """Structured answer expected from the vision model.

    The payload comes from an external service, so types are checked strictly and
    ``confidence`` / ``educationLevel`` are range- and enum-checked.
    """

    questionText: str = Field(strict=True)
    confidence: float = Field(ge=0, le=1, strict=True)
    noiseFiltered: bool = Field(strict=True)
    errorMessage: str | None = Field(strict=True)
    educationLevel: GradeLevel

    @field_validator("errorMessage")
    @classmethod
    def _blank_error_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def failed(self) -> bool:
        return self.errorMessage is not None


class QuestionRecord(BaseModel):
    id: str
    imageBase64: str
    fileSize: int = Field(ge=0)
    fileFormat: ImageFormat
    extractedText: str = ""
    confidence: float = Field(default=0.0, ge=0, le=1)
    noiseFiltered: bool = False
    processingStatus: ProcessingStatus
    errorMessage: str | None = None
    uploadTimestamp: datetime
    confirmedAt: datetime | None = None
    gradeLevel: GradeLevel | None = None
    subject: str | None = None


class StoreMetadata(BaseModel):
    createdAt: datetime
    lastModified: datetime
    totalQuestions: int = Field(default=0, ge=0)


class StoreContainer(BaseModel):
    version: str = SCHEMA_VERSION
    questions: dict[str, QuestionRecord] = Field(default_factory=dict)
    metadata: StoreMetadata


class StorageMetrics(BaseModel):
    totalQuestions: int
    confirmedQuestions: int
    pendingQuestions: int
    successQuestions: int
    failedQuestions: int
    estimatedSizeBytes: int
    estimatedSizeKB: int
    quotaBytes: int
    percentUsed: float


def status_for(result: ExtractionResult) -> ProcessingStatus:
    return "failed" if result.errorMessage is not None else "pending"


def confidence_band(confidence: float) -> ConfidenceBand:
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.6:
        return "medium"
    return "low"
