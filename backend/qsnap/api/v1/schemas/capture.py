from pydantic import BaseModel

from qsnap.domain.models import ConfidenceBand, ExtractionResult, GradeLevel


class CaptureResponse(BaseModel):
    sessionId: str
    status: str
    gradeLevel: GradeLevel
    fileName: str | None = None
    fileSize: int
    fileFormat: str | None = None
    previewDataUrl: str | None = None
    attempts: int = 0
    candidate: ExtractionResult | None = None
    confidenceBand: ConfidenceBand | None = None
    errorKind: str | None = None
    errorMessage: str | None = None
    rawResponse: str | None = None
    questionId: str | None = None
    createdAt: str
