"""
Tests for the SQL and key-value record stores.
"""
from datetime import datetime

import pytest

from status_tracker.services.record_store import (
    PROJECT_ANALYSIS,
    PROJECTS,
    STATUS_UPDATES,
    KeyValueRecordStore,
    MemoryKeyValue,
    RecordStoreError,
    UnknownCollectionError,
)

from fakes import project_record


def _update(i, project_id="proj_riverside", hour=8):
    return {
        "id": f"update_{i}",
        "project_id": project_id,
        "user_id": "contractor-1",
        "user_message": f"message {i}",
        "ai_response": f"reply {i}",
        "created_at": datetime(2026, 2, 1, hour, 0, 0),
    }


@pytest.mark.unit
class TestKeyValueRecordStore:
    def test_create_and_get(self):
        store = KeyValueRecordStore()
        store.create(PROJECTS, project_record())

        project = store.get(PROJECTS, "proj_riverside")

        assert project["name"] == "Riverside Tower"
        assert project["created_at"] == datetime(2026, 1, 5, 9, 0, 0)
        assert store.get(PROJECTS, "proj_missing") is None

    def test_collection_stored_as_json_array(self):
        client = MemoryKeyValue()
        store = KeyValueRecordStore(client)
        store.create(PROJECTS, project_record())

        raw = client.get("status_tracker:projects")

        assert raw.startswith("[")
        assert '"proj_riverside"' in raw

    def test_list_filter_order_limit(self):
        store = KeyValueRecordStore()
        store.create(STATUS_UPDATES, _update(1, hour=8))
        store.create(STATUS_UPDATES, _update(2, hour=10))
        store.create(STATUS_UPDATES, _update(3, hour=9))
        store.create(STATUS_UPDATES, _update(4, project_id="proj_other", hour=11))

        newest = store.list(STATUS_UPDATES, filter={"project_id": "proj_riverside"}, order_by="-created_at", limit=2)
        oldest_first = store.list(STATUS_UPDATES, filter={"project_id": "proj_riverside"}, order_by="created_at")

        assert [u["id"] for u in newest] == ["update_2", "update_3"]
        assert [u["id"] for u in oldest_first] == ["update_1", "update_3", "update_2"]

    def test_missing_sort_values_sort_first(self):
        store = KeyValueRecordStore()
        store.create(PROJECTS, project_record(id="proj_a", last_update=datetime(2026, 3, 1)))
        store.create(PROJECTS, project_record(id="proj_b", last_update=None))

        assert [p["id"] for p in store.list(PROJECTS, order_by="last_update")] == ["proj_b", "proj_a"]

    def test_update(self):
        store = KeyValueRecordStore()
        store.create(PROJECTS, project_record())

        updated = store.update(PROJECTS, "proj_riverside", {"updates_count": 3, "last_update": datetime(2026, 3, 1)})

        assert updated["updates_count"] == 3
        assert store.get(PROJECTS, "proj_riverside")["last_update"] == datetime(2026, 3, 1)

    def test_update_missing_record(self):
        store = KeyValueRecordStore()

        with pytest.raises(RecordStoreError):
            store.update(PROJECTS, "proj_missing", {"updates_count": 1})

    def test_duplicate_id_rejected(self):
        store = KeyValueRecordStore()
        store.create(PROJECTS, project_record())

        with pytest.raises(RecordStoreError):
            store.create(PROJECTS, project_record())

    def test_create_needs_id(self):
        store = KeyValueRecordStore()

        with pytest.raises(RecordStoreError):
            store.create(PROJECT_ANALYSIS, {"project_id": "proj_riverside", "schedule_analysis": "x"})

    def test_unknown_collection(self):
        store = KeyValueRecordStore()

        with pytest.raises(UnknownCollectionError):
            store.list("invoices")

    def test_from_url_without_redis_uses_memory(self):
        store = KeyValueRecordStore.from_url(None)

        assert isinstance(store.client, MemoryKeyValue)


@pytest.mark.unit
class TestSqlRecordStore:
    @pytest.fixture
    def owner(self, db_session):
        from status_tracker.models import Role, User

        user = User(id="pm-1", name="Pat Manager", email="pm@example.com", password_hash="x", role=Role.PROJECT_MANAGER)
        db_session.add(user)
        db_session.commit()
        return user

    def test_create_get_update(self, store, owner):
        created = store.create(PROJECTS, project_record())

        assert created["id"] == "proj_riverside"
        assert created["updates_count"] == 0

        store.update(PROJECTS, "proj_riverside", {"updates_count": 1, "last_update": datetime(2026, 3, 1)})
        project = store.get(PROJECTS, "proj_riverside")

        assert project["updates_count"] == 1
        assert project["last_update"] == datetime(2026, 3, 1)

    def test_get_missing(self, store, owner):
        assert store.get(PROJECTS, "proj_missing") is None

    def test_update_missing(self, store, owner):
        with pytest.raises(RecordStoreError):
            store.update(PROJECTS, "proj_missing", {"updates_count": 1})

    def test_list_filter_order_limit(self, store, owner):
        store.create(PROJECTS, project_record())
        for i, hour in [(1, 8), (2, 10), (3, 9)]:
            store.create(STATUS_UPDATES, {**_update(i, hour=hour), "user_id": "pm-1"})

        newest = store.list(STATUS_UPDATES, filter={"project_id": "proj_riverside"}, order_by="-created_at", limit=2)

        assert [u["id"] for u in newest] == ["update_2", "update_3"]

    def test_one_analysis_per_project(self, store, owner):
        store.create(PROJECTS, project_record())
        analysis = {"project_id": "proj_riverside", "schedule_analysis": "Summary"}
        store.create(PROJECT_ANALYSIS, {"id": "analysis_1", **analysis})

        with pytest.raises(RecordStoreError):
            store.create(PROJECT_ANALYSIS, {"id": "analysis_2", **analysis})

    def test_unknown_collection(self, store):
        with pytest.raises(UnknownCollectionError):
            store.get("invoices", "x")
