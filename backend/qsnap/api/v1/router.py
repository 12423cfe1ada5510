from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from qsnap.api.dependencies import provide_capture_service, provide_store
from qsnap.api.v1.schemas.capture import CaptureResponse
from qsnap.api.v1.schemas.question import ClearResponse, OkResponse, QuestionListResponse
from qsnap.application.capture import CaptureService, CaptureSession
from qsnap.core.config import get_settings
from qsnap.domain.errors import NotFoundError
from qsnap.domain.models import (
    GradeLevel,
    ImageUpload,
    ProcessingStatus,
    QuestionRecord,
    StorageMetrics,
    confidence_band,
)
from qsnap.store.questions import QuestionStore

router = APIRouter(prefix="/v1", tags=["v1"])


def _to_capture_response(session: CaptureSession) -> CaptureResponse:
    candidate = session.candidate
    return CaptureResponse(
        sessionId=session.session_id,
        status=session.status,
        gradeLevel=session.grade_level,
        fileName=session.upload.filename,
        fileSize=session.upload.size,
        fileFormat=session.upload.content_type,
        previewDataUrl=session.preview_data_url,
        attempts=session.attempts,
        candidate=candidate,
        confidenceBand=confidence_band(candidate.confidence) if candidate is not None else None,
        errorKind=session.error_kind,
        errorMessage=session.error_message,
        rawResponse=session.error_raw,
        questionId=session.question_id,
        createdAt=session.created_at,
    )


@router.post("/captures", response_model=CaptureResponse)
async def create_capture(
    file: UploadFile = File(...),
    gradeLevel: GradeLevel | None = Form(default=None),
    service: CaptureService = Depends(provide_capture_service),
):
    payload = await file.read()
    upload = ImageUpload.from_bytes(payload, content_type=file.content_type, filename=file.filename)
    session = await service.start(upload, gradeLevel or get_settings().default_grade_level)
    return _to_capture_response(session)


@router.get("/captures/{sessionId}", response_model=CaptureResponse)
async def get_capture(sessionId: str, service: CaptureService = Depends(provide_capture_service)):
    return _to_capture_response(service.get(sessionId))


@router.post("/captures/{sessionId}/retry", response_model=CaptureResponse)
async def retry_capture(sessionId: str, service: CaptureService = Depends(provide_capture_service)):
    session = await service.retry(sessionId)
    return _to_capture_response(session)


@router.post("/captures/{sessionId}/confirm", response_model=QuestionRecord)
async def confirm_capture(sessionId: str, service: CaptureService = Depends(provide_capture_service)):
    return await service.confirm(sessionId)


@router.delete("/captures/{sessionId}", response_model=OkResponse)
async def discard_capture(sessionId: str, service: CaptureService = Depends(provide_capture_service)):
    service.discard(sessionId)
    return OkResponse()


@router.get("/questions", response_model=QuestionListResponse)
async def list_questions(
    status: ProcessingStatus | None = Query(default=None),
    confirmed: bool = Query(default=False),
    store: QuestionStore = Depends(provide_store),
):
    if confirmed:
        rows = store.get_confirmed()
        if status is not None:
            rows = [row for row in rows if row.processingStatus == status]
    elif status is not None:
        rows = store.get_by_status(status)
    else:
        rows = store.get_all()
    return QuestionListResponse(questions=rows, count=len(rows))


@router.get("/questions/{questionId}", response_model=QuestionRecord)
async def get_question(questionId: str, store: QuestionStore = Depends(provide_store)):
    row = store.get_by_id(questionId)
    if row is None:
        raise NotFoundError(questionId)
    return row


@router.delete("/questions/{questionId}", response_model=OkResponse)
async def delete_question(questionId: str, store: QuestionStore = Depends(provide_store)):
    store.delete(questionId)
    return OkResponse()


@router.delete("/questions", response_model=ClearResponse)
async def clear_questions(store: QuestionStore = Depends(provide_store)):
    removed = len(store.get_all())
    store.clear_all()
    return ClearResponse(removed=removed)


@router.get("/storage/metrics", response_model=StorageMetrics)
async def storage_metrics(store: QuestionStore = Depends(provide_store)):
    return store.get_metrics()
