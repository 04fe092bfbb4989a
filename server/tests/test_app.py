"""Tests for the HTTP call surface used by the desktop shell."""

from __future__ import annotations

import asyncio
import base64
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from fakes import FakeGenerator, InMemoryStageStore, make_collection
from rez_launcher.app import create_app
from rez_launcher.app_state import AppContext
from rez_launcher.errors import StorageError
from rez_launcher.models.stages import Stage, StageRequest
from rez_launcher.services.snapshot_loader import SnapshotLoader

COLLECTION = {
    "version": "1.0",
    "packages": ["maya-2024", "arnold-7"],
    "herit": "base",
    "tools": ["maya", "kick"],
    "created_by": "test_user",
    "uri": "shots/010",
}


@pytest.fixture
def store():
    return InMemoryStageStore()


@pytest.fixture
def client(store, tmp_path):
    executor = ThreadPoolExecutor(max_workers=1)
    loader = SnapshotLoader("rez", executor, platform="linux", tmp_dir=tmp_path)
    context = AppContext(store, FakeGenerator(), loader, executor=executor, store_kind="mongo")
    with TestClient(create_app(context)) as test_client:
        yield test_client
    executor.shutdown(wait=True)


def _save_stage(client, name="prod", version="1.0", uri="shots/010"):
    return client.post("/api/stages", json={"name": name, "uri": uri, "from_version": version})


class TestCollections:
    def test_save_and_list(self, client):
        assert client.post("/api/collections", json=COLLECTION).json() == {"success": True}

        listing = client.get("/api/collections", params={"uri": "shots/010"}).json()
        assert listing["success"] is True
        assert listing["message"] is None
        assert [c["version"] for c in listing["collections"]] == ["1.0"]

        assert len(client.get("/api/collections").json()["collections"]) == 1

    def test_empty_listing_has_message(self, client):
        listing = client.get("/api/collections", params={"uri": "shots/999"}).json()
        assert listing == {"success": True, "message": "no collection found in shots/999", "collections": None}

        everything = client.get("/api/collections").json()
        assert everything["message"] == "No package collections found in database"

    def test_tools(self, client):
        client.post("/api/collections", json=COLLECTION)
        found = client.get("/api/collections/tools", params={"version": "1.0", "uri": "shots/010"})
        missing = client.get("/api/collections/tools", params={"version": "9.9", "uri": "no/such/uri"})
        assert found.json() == {"tools": ["maya", "kick"]}
        assert missing.status_code == 200
        assert missing.json() == {"tools": []}

    def test_storage_failure_is_503_with_message(self, client, store):
        store.fail_on.add("insert_collection")
        response = client.post("/api/collections", json=COLLECTION)
        assert response.status_code == 503
        assert "connection refused" in response.json()["detail"]


class TestStages:
    def test_save_revert_history_names(self, client):
        client.post("/api/collections", json=COLLECTION)
        client.post("/api/collections", json={**COLLECTION, "version": "2.0"})

        first = _save_stage(client).json()["stage"]
        second = _save_stage(client, version="2.0").json()["stage"]
        assert first["active"] is True and first["snapshot_size"] > 0
        assert "snapshot" not in first

        active = client.get("/api/stages", params={"uri": "shots/010", "active_only": True}).json()["stages"]
        assert [s["id"] for s in active] == [second["id"]]

        reverted = client.post(f"/api/stages/{first['id']}/revert")
        assert reverted.status_code == 200
        active = client.get("/api/stages", params={"uri": "shots/010", "active_only": True}).json()["stages"]
        assert [s["id"] for s in active] == [first["id"]]

        history = client.get("/api/stages/history", params={"name": "prod", "uri": "shots/010"}).json()["stages"]
        assert len(history) == 2

        assert client.get("/api/stages/names").json() == {"names": ["prod"]}

    def test_full_record_carries_base64_snapshot(self, client):
        client.post("/api/collections", json=COLLECTION)
        stage_id = _save_stage(client).json()["stage"]["id"]

        record = client.get(f"/api/stages/{stage_id}").json()
        assert base64.urlsafe_b64decode(record["snapshot"]) == b"rxt:maya-2024 arnold-7"

    def test_save_from_unknown_version_is_404(self, client, store):
        response = _save_stage(client, version="9.9")
        assert response.status_code == 404
        assert "9.9" in response.json()["detail"]
        assert store.writes == []

    def test_save_generation_failure_is_502(self, client, store):
        client.post("/api/collections", json=COLLECTION)
        client.app.state.context.lifecycle.generator = FakeGenerator(fail_with="resolve failed: conflict")
        response = _save_stage(client)
        assert response.status_code == 502
        assert response.json() == {"detail": "resolve failed: conflict"}
        assert store.stages == []

    def test_revert_unknown_is_404(self, client):
        response = client.post("/api/stages/ffffffffffffffffffffffff/revert")
        assert response.status_code == 404
        assert response.json()["detail"] == "Stage not found: ffffffffffffffffffffffff"

    def test_load_spawns_terminal(self, client, tmp_path):
        client.post("/api/collections", json=COLLECTION)
        stage_id = _save_stage(client).json()["stage"]["id"]

        with mock.patch("rez_launcher.services.snapshot_loader.subprocess.Popen") as popen:
            popen.return_value.pid = 99
            response = client.post(f"/api/stages/{stage_id}/load")

        assert response.status_code == 200
        context_path = response.json()["contextPath"]
        assert popen.call_args.args[0][-4:] == ["rez", "env", "-i", context_path]
        assert (tmp_path / context_path.rsplit("/", 1)[-1]).read_bytes() == b"rxt:maya-2024 arnold-7"

    def test_load_empty_snapshot_is_409(self, client, store):
        store.stages.append(Stage(id="a" * 24, name="prod", uri="shots/010", from_version="1.0"))
        response = client.post(f"/api/stages/{'a' * 24}/load")
        assert response.status_code == 409


class TestHealthAndConfig:
    def test_health_ok(self, client):
        assert client.get("/api/health").json()["status"] == "ok"

    def test_health_degraded(self, client, store):
        store.fail_on.add("ping")
        body = client.get("/api/health").json()
        assert body["status"] == "degraded"
        assert "connection refused" in body["error"]

    def test_connection_switch_probes_first(self, client, store):
        with mock.patch(
            "rez_launcher.storage.mongo.MongoStageStore.connect",
            side_effect=StorageError("db.invalid:27017: [Errno -2] Name or service not known"),
        ):
            response = client.put("/api/config/connection", json={"uri": "mongodb://db.invalid:27017"})

        assert response.status_code == 503
        assert client.app.state.context.store is store
        assert store.closed is False

    def test_connection_switch_replaces_store(self, client, store):
        new_store = InMemoryStageStore()
        with mock.patch(
            "rez_launcher.storage.mongo.MongoStageStore.connect", new=mock.AsyncMock(return_value=new_store)
        ):
            response = client.put("/api/config/connection", json={"uri": "mongodb://other:27017"})

        assert response.json() == {"success": True}
        context = client.app.state.context
        assert context.store is new_store
        assert context.lifecycle.store is new_store
        assert store.closed is True

    def test_connection_switch_waits_for_in_flight_save(self, store, tmp_path):
        store.collections.append(make_collection("1.0", "shots/010"))
        new_store = InMemoryStageStore()
        executor = ThreadPoolExecutor(max_workers=1)
        loader = SnapshotLoader("rez", executor, platform="linux", tmp_dir=tmp_path)
        context = AppContext(store, FakeGenerator(), loader, executor=executor, store_kind="mongo")

        closed_at_insert: list[bool] = []
        insert = store.insert_stage

        async def record_and_insert(record):
            closed_at_insert.append(store.closed)
            return await insert(record)

        store.insert_stage = record_and_insert

        async def scenario():
            deactivate = store.set_stages_active_by_name_uri
            switches = []

            async def deactivate_then_switch(name, uri, active):
                await deactivate(name, uri, active)
                switches.append(asyncio.create_task(context.replace_connection("mongodb://other:27017")))

            store.set_stages_active_by_name_uri = deactivate_then_switch
            stage = await context.lifecycle.save_stage(
                StageRequest(name="prod", uri="shots/010", from_version="1.0")
            )
            await switches[0]
            return stage

        with mock.patch(
            "rez_launcher.storage.mongo.MongoStageStore.connect", new=mock.AsyncMock(return_value=new_store)
        ):
            stage = asyncio.run(scenario())
        executor.shutdown(wait=True)

        assert closed_at_insert == [False]
        assert [s.id for s in store.active_stages("prod", "shots/010")] == [stage.id]
        assert new_store.stages == []
        assert context.store is new_store
        assert context.lifecycle.store is new_store
        assert store.closed is True
