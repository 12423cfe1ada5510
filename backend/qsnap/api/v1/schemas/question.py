from pydantic import BaseModel

from qsnap.domain.models import QuestionRecord


class QuestionListResponse(BaseModel):
    questions: list[QuestionRecord]
    count: int


class OkResponse(BaseModel):
    ok: bool = True


class ClearResponse(BaseModel):
    ok: bool = True
    removed: int = 0
