import json
from datetime import datetime, timedelta, timezone

import pytest

from qsnap.domain.errors import (
    ConfirmationRejectedError,
    CorruptStoreError,
    NotFoundError,
    QuotaExceededError,
    SchemaMigrationRequiredError,
)
from qsnap.domain.models import ExtractionResult
from qsnap.infra.storage.memory import MemoryStorage
from qsnap.store.questions import FALLBACK_QUOTA_BYTES, STORAGE_KEY, VERSION_KEY, QuestionStore

IMAGE = "data:image/png;base64,iVBORw0KGgo="


class TickingClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _result(**overrides) -> ExtractionResult:
    data = {
        "questionText": "Q",
        "confidence": 0.9,
        "noiseFiltered": True,
        "errorMessage": None,
        "educationLevel": "middle",
    }
    data.update(overrides)
    return ExtractionResult(**data)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage) -> QuestionStore:
    return QuestionStore(storage, clock=TickingClock())


def test_initialize_creates_and_persists_empty_container(store, storage):
    container = store.initialize()

    assert container.version == "1.0.0"
    assert container.questions == {}
    assert container.metadata.totalQuestions == 0
    assert container.metadata.createdAt == container.metadata.lastModified
    assert storage.get(VERSION_KEY) == "1.0.0"

    persisted = json.loads(storage.get(STORAGE_KEY))
    assert set(persisted) == {"version", "questions", "metadata"}
    assert set(persisted["metadata"]) == {"createdAt", "lastModified", "totalQuestions"}


def test_initialize_loads_existing_container(storage):
    first = QuestionStore(storage)
    question_id = first.create(IMAGE, 100, "image/png", _result())

    second = QuestionStore(storage)
    assert second.initialize().metadata.totalQuestions == 1
    assert second.get_by_id(question_id).extractedText == "Q"


def test_version_mismatch_requires_migration(storage):
    storage.set(STORAGE_KEY, json.dumps({"version": "0.9.0", "questions": {}, "metadata": {}}))

    with pytest.raises(SchemaMigrationRequiredError) as excinfo:
        QuestionStore(storage).initialize()

    assert excinfo.value.found == "0.9.0"
    assert excinfo.value.expected == "1.0.0"


def test_unreadable_container_is_reported(storage):
    storage.set(STORAGE_KEY, "{not json")
    with pytest.raises(CorruptStoreError):
        QuestionStore(storage).get_all()


def test_create_derives_status_from_error_message(store):
    ok_id = store.create(IMAGE, 2048, "image/jpeg", _result())
    failed_id = store.create(
        IMAGE,
        2048,
        "image/jpeg",
        _result(questionText="", confidence=0.0, errorMessage="No question found"),
    )

    ok = store.get_by_id(ok_id)
    failed = store.get_by_id(failed_id)
    assert ok.processingStatus == "pending"
    assert ok.errorMessage is None
    assert failed.processingStatus == "failed"
    assert failed.errorMessage == "No question found"
    assert ok.confirmedAt is None and failed.confirmedAt is None
    assert ok.gradeLevel == "middle"
    assert ok_id != failed_id
    assert store.initialize().metadata.totalQuestions == 2


def test_confirm_scenario(store):
    question_id = store.create(IMAGE, 512, "image/png", _result(educationLevel="middle"))
    created = store.get_by_id(question_id)
    assert created.processingStatus == "pending"
    assert created.confirmedAt is None

    confirmed = store.confirm(question_id)

    assert confirmed.processingStatus == "success"
    assert confirmed.confirmedAt is not None
    assert confirmed.confirmedAt >= created.uploadTimestamp
    assert store.get_by_id(question_id).confirmedAt == confirmed.confirmedAt


def test_second_confirm_overwrites_timestamp(store):
    question_id = store.create(IMAGE, 512, "image/png", _result())
    first = store.confirm(question_id).confirmedAt
    second = store.confirm(question_id).confirmedAt

    assert second > first


def test_confirm_missing_id_leaves_container_untouched(store, storage):
    store.create(IMAGE, 512, "image/png", _result())
    before = storage.get(STORAGE_KEY)

    with pytest.raises(NotFoundError):
        store.confirm("q_missing")

    assert storage.get(STORAGE_KEY) == before
    assert store.initialize().metadata.totalQuestions == 1


def test_failed_extraction_cannot_be_confirmed(store):
    question_id = store.create(IMAGE, 512, "image/png", _result(errorMessage="blurry"))

    with pytest.raises(ConfirmationRejectedError):
        store.confirm(question_id)

    record = store.get_by_id(question_id)
    assert record.processingStatus == "failed"
    assert record.confirmedAt is None


def test_update_extraction_recomputes_status(store):
    question_id = store.create(IMAGE, 512, "image/png", _result(errorMessage="blurry", questionText=""))

    updated = store.update_extraction(question_id, _result(questionText="Q2", confidence=0.7))

    assert updated.processingStatus == "pending"
    assert updated.extractedText == "Q2"
    assert updated.errorMessage is None

    failed_again = store.update_extraction(question_id, _result(errorMessage="still blurry"))
    assert failed_again.processingStatus == "failed"

    with pytest.raises(NotFoundError):
        store.update_extraction("q_missing", _result())


def test_update_extraction_keeps_confirmed_at(store):
    question_id = store.create(IMAGE, 512, "image/png", _result())
    confirmed_at = store.confirm(question_id).confirmedAt

    updated = store.update_extraction(question_id, _result(questionText="fixed"))

    assert updated.confirmedAt == confirmed_at
    assert updated.processingStatus == "success"

    failed = store.update_extraction(question_id, _result(questionText="", errorMessage="blurry"))

    assert failed.confirmedAt == confirmed_at
    assert failed.processingStatus == "failed"


def test_delete_removes_record_and_decrements_count(store):
    keep = store.create(IMAGE, 512, "image/png", _result())
    gone = store.create(IMAGE, 512, "image/png", _result())
    before = store.initialize().metadata.totalQuestions

    store.delete(gone)

    assert store.get_by_id(gone) is None
    assert store.get_by_id(keep) is not None
    assert store.initialize().metadata.totalQuestions == before - 1
    with pytest.raises(NotFoundError):
        store.delete(gone)


def test_clear_all(store):
    for _ in range(3):
        store.create(IMAGE, 512, "image/png", _result())

    store.clear_all()

    assert store.get_all() == []
    assert store.initialize().metadata.totalQuestions == 0


def test_get_all_is_stable_without_mutation(store):
    store.create(IMAGE, 512, "image/png", _result())
    store.create(IMAGE, 512, "image/webp", _result(errorMessage="x"))

    first = sorted(store.get_all(), key=lambda r: r.id)
    second = sorted(store.get_all(), key=lambda r: r.id)

    assert first == second


def test_status_and_confirmed_queries(store):
    a = store.create(IMAGE, 1, "image/png", _result())
    b = store.create(IMAGE, 1, "image/png", _result())
    store.create(IMAGE, 1, "image/png", _result(errorMessage="x"))
    store.confirm(a)
    store.confirm(b)

    assert [r.id for r in store.get_confirmed()] == [b, a]
    assert len(store.get_by_status("failed")) == 1
    assert len(store.get_by_status("success")) == 2
    assert store.get_by_status("pending") == []


def test_quota_failure_keeps_unsaved_state_until_flush_or_reload(storage, store):
    store.initialize()
    storage.capacity_bytes = storage.used_bytes() + 200
    big_image = "data:image/png;base64," + "A" * 5000

    with pytest.raises(QuotaExceededError):
        store.create(big_image, 5000, "image/png", _result())

    assert store.has_unsaved_changes
    assert len(store.get_all()) == 1
    assert json.loads(storage.get(STORAGE_KEY))["questions"] == {}

    storage.capacity_bytes = None
    store.flush()
    assert not store.has_unsaved_changes
    assert len(json.loads(storage.get(STORAGE_KEY))["questions"]) == 1


def test_initialize_does_not_discard_unsaved_state(storage, store):
    store.initialize()
    storage.capacity_bytes = storage.used_bytes() + 50

    with pytest.raises(QuotaExceededError):
        store.create("data:image/png;base64," + "A" * 500, 500, "image/png", _result())

    container = store.initialize()

    assert store.has_unsaved_changes
    assert container.metadata.totalQuestions == 1
    assert len(store.get_all()) == 1


def test_reload_discards_unsaved_state(storage, store):
    store.initialize()
    storage.capacity_bytes = storage.used_bytes() + 50

    with pytest.raises(QuotaExceededError):
        store.create("data:image/png;base64," + "A" * 500, 500, "image/png", _result())

    store.reload()
    assert not store.has_unsaved_changes
    assert store.get_all() == []


def test_metrics(storage, store):
    a = store.create(IMAGE, 1, "image/png", _result())
    store.create(IMAGE, 1, "image/png", _result())
    store.create(IMAGE, 1, "image/png", _result(errorMessage="x"))
    store.confirm(a)

    metrics = store.get_metrics()

    assert metrics.totalQuestions == 3
    assert metrics.confirmedQuestions == 1
    assert metrics.successQuestions == 1
    assert metrics.pendingQuestions == 1
    assert metrics.failedQuestions == 1
    assert metrics.quotaBytes == FALLBACK_QUOTA_BYTES
    assert metrics.estimatedSizeBytes > 0
    assert metrics.percentUsed == round(metrics.estimatedSizeBytes / FALLBACK_QUOTA_BYTES * 100, 2)

    storage.capacity_bytes = 10 * 1024 * 1024
    assert store.get_metrics().quotaBytes == 10 * 1024 * 1024


def test_last_writer_wins_across_store_instances(storage):
    tab_a = QuestionStore(storage)
    tab_b = QuestionStore(storage)

    first = tab_a.create(IMAGE, 1, "image/png", _result())
    second = tab_b.create(IMAGE, 1, "image/png", _result())

    ids = {r.id for r in tab_a.get_all()}
    assert ids == {first, second}
