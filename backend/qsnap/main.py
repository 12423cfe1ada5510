from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qsnap.api.v1.router import router as v1_router
from qsnap.api.v1.schemas.error import ErrorResponse
from qsnap.core.config import get_settings
from qsnap.core.logging import configure_logging
from qsnap.domain.errors import MalformedResponseError, QsnapError

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    "unsupported_format": 415,
    "too_large": 413,
    "read_error": 400,
    "decode_error": 422,
    "invalid_credentials": 502,
    "malformed_response": 502,
    "upstream_error": 502,
    "retryable_upstream_error": 503,
    "retries_exhausted": 503,
    "not_found": 404,
    "quota_exceeded": 507,
    "schema_migration_required": 409,
    "corrupt_store": 500,
    "persistence_error": 500,
    "confirmation_rejected": 409,
    "session_not_found": 404,
    "session_state": 409,
}

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.exception_handler(QsnapError)
async def handle_qsnap_error(request: Request, exc: QsnapError) -> JSONResponse:
    status_code = _STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    body = ErrorResponse(
        error=exc.kind,
        message=exc.message,
        raw=exc.raw if isinstance(exc, MalformedResponseError) else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    return {"ok": "true"}
