from __future__ import annotations

import logging
from functools import lru_cache

from qsnap.application.capture import CaptureService
from qsnap.core.config import Settings, get_settings
from qsnap.infra.extraction.mock import MockExtractor
from qsnap.infra.extraction.openai_compat import OpenAICompatibleExtractor
from qsnap.infra.ports.extraction import ExtractionPort
from qsnap.infra.ports.storage import StoragePort
from qsnap.infra.storage.file import FileStorage
from qsnap.infra.storage.memory import MemoryStorage
from qsnap.store.questions import QuestionStore

logger = logging.getLogger(__name__)


def build_extractor(settings: Settings) -> ExtractionPort:
    if not settings.ai_api_key:
        logger.warning("No API key found, using mock extraction client")
        return MockExtractor(delay_seconds=settings.mock_delay_ms / 1000)
    return OpenAICompatibleExtractor(
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        model_name=settings.ai_model,
        timeout_seconds=settings.ai_timeout_seconds,
        max_retries=settings.ai_max_retries,
    )


def build_storage(settings: Settings) -> StoragePort:
    if settings.storage_backend == "memory":
        return MemoryStorage(capacity_bytes=settings.storage_quota_bytes)
    if settings.storage_backend == "sql":
        from qsnap.infra.storage.sql import SqlStorage

        return SqlStorage(database_url=settings.database_url, capacity_bytes=settings.storage_quota_bytes)
    if settings.storage_backend != "file":
        raise RuntimeError(
            f"Unknown QSNAP_STORAGE_BACKEND={settings.storage_backend!r}; expected memory, file or sql"
        )
    return FileStorage(base_dir=settings.data_dir, capacity_bytes=settings.storage_quota_bytes)


@lru_cache(maxsize=1)
def get_storage() -> StoragePort:
    return build_storage(get_settings())


@lru_cache(maxsize=1)
def get_store() -> QuestionStore:
    return QuestionStore(get_storage())


@lru_cache(maxsize=1)
def get_extractor() -> ExtractionPort:
    return build_extractor(get_settings())


@lru_cache(maxsize=1)
def get_capture_service() -> CaptureService:
    settings = get_settings()
    return CaptureService(
        extractor=get_extractor(),
        store=get_store(),
        max_retries=settings.ai_max_retries,
        jpeg_quality=settings.jpeg_quality,
        compress_on_save=settings.compress_on_save,
    )


def clear_caches() -> None:
    get_settings.cache_clear()
    get_storage.cache_clear()
    get_store.cache_clear()
    get_extractor.cache_clear()
    get_capture_service.cache_clear()


async def provide_store() -> QuestionStore:
    return get_store()


async def provide_capture_service() -> CaptureService:
    return get_capture_service()
