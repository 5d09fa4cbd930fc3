import json
from datetime import datetime
from pathlib import Path

import pytest

from fiscal_recon.application.dto import SessionDocument
from fiscal_recon.application.use_cases import ClassificationUseCase, SessionUseCase
from fiscal_recon.domain.classification import ClassificationStore
from fiscal_recon.domain.models import AssetClassification, ClassifiableItem
from fiscal_recon.errors import StorageQuotaExceededError
from fiscal_recon.infrastructure.storage.classification_store import STORE_KEY, VERSION_KEY, ClassificationRepository
from fiscal_recon.infrastructure.storage.json_store import JsonKeyValueStore
from fiscal_recon.infrastructure.storage.session_store import SessionRepository


@pytest.fixture
def storage(tmp_path: Path) -> JsonKeyValueStore:
    return JsonKeyValueStore(tmp_path / "storage.json", quota_bytes=10_000)


def test_set_and_get_item(storage: JsonKeyValueStore):
    storage.set_item("a", "1")
    storage.set_item("b", "2")
    storage.remove_item("a")

    assert storage.get_item("a") is None
    assert storage.get_item("b") == "2"
    assert json.loads(storage.path.read_text(encoding="utf-8")) == {"b": "2"}


def test_quota_is_checked_before_writing(tmp_path: Path):
    storage = JsonKeyValueStore(tmp_path / "storage.json", quota_bytes=100)
    storage.set_item("small", "x")

    with pytest.raises(StorageQuotaExceededError) as excinfo:
        storage.set_item("big", "y" * 500)

    assert "Reduce the period scope" in str(excinfo.value)
    assert storage.get_item("big") is None
    assert storage.get_item("small") == "x"


def test_classification_repository_round_trip(storage: JsonKeyValueStore):
    repository = ClassificationRepository(storage)
    store = ClassificationStore.from_dict(
        {"2024-01": {"classifications": {"1-P": {"classification": "imobilizado"}}}}, version=2
    )

    repository.save(store)
    loaded = repository.load()

    assert loaded == store
    assert loaded.version == 2


def test_classification_repository_ignores_corrupt_payload(storage: JsonKeyValueStore):
    storage.set_item(STORE_KEY, "{not json")

    assert ClassificationRepository(storage).load() == ClassificationStore()


def test_failed_save_keeps_the_session_changes(tmp_path: Path):
    storage = JsonKeyValueStore(tmp_path / "storage.json", quota_bytes=20)
    use_case = ClassificationUseCase(ClassificationRepository(storage))
    item = ClassifiableItem(issuer_tax_id="11222333000144", product_code="P1", access_key="1001", line_number="1")
    session = use_case.open_session("2024-01", [item])
    session.classify(item, AssetClassification.IMOBILIZADO)

    outcome = use_case.save(session)

    assert not outcome.ok
    assert "Reduce the period scope" in outcome.error
    assert session.has_changes
    assert session.classification_of(item) is AssetClassification.IMOBILIZADO
    assert storage.get_item(STORE_KEY) is None


def test_successful_save_clears_dirty_state(storage: JsonKeyValueStore):
    use_case = ClassificationUseCase(ClassificationRepository(storage))
    item = ClassifiableItem(issuer_tax_id="11222333000144", product_code="P1", access_key="1001", line_number="1")
    session = use_case.open_session("2024-01", [item])
    session.classify(item, "uso-consumo")

    outcome = use_case.save(session)

    assert outcome.ok
    assert not session.has_changes
    reopened = use_case.open_session("2024-01", [item])
    assert reopened.classification_of(item) is AssetClassification.USO_CONSUMO


def test_session_history_is_most_recent_first(storage: JsonKeyValueStore):
    use_case = SessionUseCase(SessionRepository(storage))
    older = SessionDocument(competence="2024-01", processed_at=datetime(2024, 2, 1, 10, 0))
    newer = SessionDocument(competence="2024-02", processed_at=datetime(2024, 3, 1, 10, 0))

    assert use_case.save(older).ok
    assert use_case.save(newer).ok

    assert [session.competence for session in use_case.history()] == ["2024-02", "2024-01"]
    assert use_case.restore("2024-01") == older

    use_case.delete("2024-02")
    assert [session.competence for session in use_case.history()] == ["2024-01"]
    assert use_case.restore("2024-02") is None


def test_set_items_writes_all_keys_or_none(tmp_path: Path):
    storage = JsonKeyValueStore(tmp_path / "storage.json", quota_bytes=100)
    storage.set_item("small", "x")

    with pytest.raises(StorageQuotaExceededError):
        storage.set_items({"store": "y" * 500, "version": "9"})

    assert storage.get_item("store") is None
    assert storage.get_item("version") is None
    storage.set_items({"store": "y", "version": "9"})
    assert json.loads(storage.path.read_text(encoding="utf-8")) == {"small": "x", "store": "y", "version": "9"}


def test_store_and_version_are_saved_together(tmp_path: Path):
    storage = JsonKeyValueStore(tmp_path / "storage.json", quota_bytes=60)
    store = ClassificationStore.from_dict(
        {"2024-01": {"classifications": {"1-P": {"classification": "imobilizado"}}}}, version=5
    )

    with pytest.raises(StorageQuotaExceededError):
        ClassificationRepository(storage).save(store)

    assert storage.get_item(STORE_KEY) is None
    assert storage.get_item(VERSION_KEY) is None


def test_imported_decisions_are_merged_into_storage(storage: JsonKeyValueStore):
    use_case = ClassificationUseCase(ClassificationRepository(storage))
    item = ClassifiableItem(issuer_tax_id="11222333000144", product_code="P1", access_key="1001", line_number="1")
    imported = ClassificationStore.from_dict(
        {"2024-01": {"classifications": {item.product_identity: {"classification": "imobilizado"}}}}, version=4
    )

    outcome = use_case.import_store(imported)

    assert outcome.ok
    assert outcome.value.version == 5
    assert use_case.open_session("2024-01", [item]).classification_of(item) is AssetClassification.IMOBILIZADO


def test_cost_centers_are_stored_by_competence(storage: JsonKeyValueStore):
    use_case = ClassificationUseCase(ClassificationRepository(storage))

    assert use_case.record_cost_centers("2024-01", {"500-11222333000144": "CC-10"}).ok

    assert use_case.cost_centers("2024-01") == {"500-11222333000144": "CC-10"}
    assert use_case.cost_centers("2024-02") == {}
