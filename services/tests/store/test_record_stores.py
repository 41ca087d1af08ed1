"""Tests for the JSON-file project and instance stores."""

import json
from pathlib import Path

import pytest

from hatchery.errors import RecordNotFoundError, StoreCorruptError
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore, TaskStatus
from hatchery.store.document import JsonDocumentStore


class TestJsonDocumentStore:
    async def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        doc = JsonDocumentStore(tmp_path / "nope.json")
        assert await doc.load() == []

    async def test_save_writes_versioned_document(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "data.json"
        doc = JsonDocumentStore(path, "entries")
        await doc.save([{"a": 1}])

        assert json.loads(path.read_text()) == {"version": 1, "entries": [{"a": 1}]}
        assert not (path.parent / ".data.json.tmp").exists()

    async def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text("[1, 2")
        with pytest.raises(StoreCorruptError):
            await JsonDocumentStore(path).load()

    async def test_unknown_version_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text(json.dumps({"version": 2, "entries": []}))
        with pytest.raises(StoreCorruptError):
            await JsonDocumentStore(path).load()

    async def test_wrong_shape_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text(json.dumps({"version": 1, "entries": {"x": 1}}))
        with pytest.raises(StoreCorruptError):
            await JsonDocumentStore(path).load()


class TestProjectStore:
    async def test_save_and_get(self, project_store: ProjectStore, project_record: ProjectRecord) -> None:
        await project_store.save(project_record)
        loaded = await project_store.get("demo")
        assert loaded == project_record

    async def test_save_replaces_by_name(
        self, project_store: ProjectStore, project_record: ProjectRecord
    ) -> None:
        await project_store.save(project_record)
        updated = project_record.model_copy(update={"created_at": "2026-01-01T00:00:00+00:00"})
        await project_store.save(updated)

        projects = await project_store.list()
        assert len(projects) == 1
        assert projects[0].created_at == "2026-01-01T00:00:00+00:00"

    async def test_require_missing_has_hint(self, project_store: ProjectStore) -> None:
        with pytest.raises(RecordNotFoundError) as exc:
            await project_store.require("ghost")
        assert "hatchery list --projects" in exc.value.hint

    async def test_delete(self, project_store: ProjectStore, project_record: ProjectRecord) -> None:
        await project_store.save(project_record)
        assert await project_store.delete("demo")
        assert not await project_store.delete("demo")
        assert await project_store.list() == []


class TestInstanceStore:
    async def test_lookup_by_feature(
        self, instance_store: InstanceStore, instance_record: InstanceRecord
    ) -> None:
        await instance_store.add(instance_record)
        await instance_store.add(
            InstanceRecord(name="vm-other", remote_host="h", project="other", feature="login")
        )

        found = await instance_store.get_by_feature("demo", "login")
        assert found is not None and found.name == "vm-abc"
        assert await instance_store.get_by_feature("demo", "signup") is None
        assert [r.name for r in await instance_store.list_by_project("other")] == ["vm-other"]

    async def test_update(self, instance_store: InstanceStore, instance_record: InstanceRecord) -> None:
        await instance_store.add(instance_record.model_copy(update={"task_status": TaskStatus.RUNNING}))
        updated = await instance_store.update("vm-abc", task_status=TaskStatus.COMPLETED)

        assert updated.task_status == TaskStatus.COMPLETED
        assert (await instance_store.get("vm-abc")).task_status == TaskStatus.COMPLETED
        assert [r.name for r in await instance_store.tasks_awaiting_review("demo")] == ["vm-abc"]
        assert await instance_store.tasks_awaiting_review("other") == []

    async def test_update_missing_raises(self, instance_store: InstanceStore) -> None:
        with pytest.raises(RecordNotFoundError):
            await instance_store.update("ghost", task_status=TaskStatus.FAILED)

    async def test_remove(self, instance_store: InstanceStore, instance_record: InstanceRecord) -> None:
        await instance_store.add(instance_record)
        assert await instance_store.remove("vm-abc")
        assert not await instance_store.remove("vm-abc")
