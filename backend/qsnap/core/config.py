from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_AI_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_AI_MODEL = "qwen-vl-max"


def _load_dotenv() -> None:
    if os.getenv("QSNAP_SKIP_DOTENV") == "1":
        return

    env_path = Path(__file__).resolve().parents[2] / ".env"
    if not env_path.exists():
        return

    load_dotenv(env_path, override=True)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_non_negative_int(value: str | None, default: int = 0) -> int:
    if value is None:
        return default
    raw = value.strip()
    if not raw:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        return default


def _parse_unit_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    raw = value.strip()
    if not raw:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if parsed <= 0 or parsed > 1:
        return default
    return parsed


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    env: str
    app_name: str
    cors_origins: list[str]
    log_level: str
    ai_api_key: str | None
    ai_base_url: str
    ai_model: str
    ai_timeout_seconds: int
    ai_max_retries: int
    mock_delay_ms: int
    storage_backend: str
    data_dir: Path
    database_url: str | None
    storage_quota_bytes: int | None
    jpeg_quality: float
    compress_on_save: bool
    default_grade_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_dotenv()

    env = os.getenv("QSNAP_ENV", "development")
    cors = os.getenv("QSNAP_CORS_ORIGINS", "http://localhost:3000")
    log_level = (os.getenv("QSNAP_LOG_LEVEL") or "INFO").strip().upper() or "INFO"
    ai_timeout_seconds = _parse_non_negative_int(os.getenv("QSNAP_AI_TIMEOUT_SECONDS"), default=60) or 60
    ai_max_retries = _parse_non_negative_int(os.getenv("QSNAP_AI_MAX_RETRIES"), default=3) or 3
    mock_delay_ms = _parse_non_negative_int(os.getenv("QSNAP_MOCK_DELAY_MS"), default=1500)
    storage_backend = os.getenv("QSNAP_STORAGE_BACKEND", "file").strip().lower() or "file"
    quota = _parse_non_negative_int(os.getenv("QSNAP_STORAGE_QUOTA_BYTES"), default=0)
    grade = os.getenv("QSNAP_DEFAULT_GRADE_LEVEL", "middle").strip().lower()
    if grade not in {"elementary", "middle", "high"}:
        grade = "middle"

    return Settings(
        env=env,
        app_name="QSnap API",
        cors_origins=_split_csv(cors),
        log_level=log_level,
        ai_api_key=(os.getenv("DASHSCOPE_API_KEY") or "").strip() or None,
        ai_base_url=(os.getenv("QSNAP_AI_BASE_URL") or DEFAULT_AI_BASE_URL).rstrip("/"),
        ai_model=os.getenv("QSNAP_AI_MODEL", DEFAULT_AI_MODEL).strip() or DEFAULT_AI_MODEL,
        ai_timeout_seconds=ai_timeout_seconds,
        ai_max_retries=ai_max_retries,
        mock_delay_ms=mock_delay_ms,
        storage_backend=storage_backend,
        data_dir=Path(os.getenv("QSNAP_DATA_DIR", "backend/data")),
        database_url=os.getenv("QSNAP_DATABASE_URL") or None,
        storage_quota_bytes=quota or None,
        jpeg_quality=_parse_unit_float(os.getenv("QSNAP_JPEG_QUALITY"), default=0.8),
        compress_on_save=_parse_bool(os.getenv("QSNAP_COMPRESS_ON_SAVE"), default=False),
        default_grade_level=grade,
    )
