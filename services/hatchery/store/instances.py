"""Registry of compute instances."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from hatchery.errors import RecordNotFoundError
from hatchery.logging_config import get_logger
from hatchery.store.document import JsonDocumentStore
from hatchery.store.models import InstanceRecord, TaskStatus

logger = get_logger(__name__)


class InstanceStore:
    def __init__(self, path: Path) -> None:
        self._doc = JsonDocumentStore(path, "entries")

    async def _write(self, records: list[InstanceRecord]) -> None:
        await self._doc.save([r.model_dump(mode="json") for r in records])

    async def list(self) -> list[InstanceRecord]:
        return [InstanceRecord.model_validate(entry) for entry in await self._doc.load()]

    async def list_by_project(self, project: str) -> list[InstanceRecord]:
        return [r for r in await self.list() if r.project == project]

    async def get(self, name: str) -> InstanceRecord | None:
        return next((r for r in await self.list() if r.name == name), None)

    async def get_by_feature(self, project: str, feature: str) -> InstanceRecord | None:
        return next(
            (r for r in await self.list() if r.project == project and r.feature == feature),
            None,
        )

    async def add(self, record: InstanceRecord) -> None:
        records = [r for r in await self.list() if r.name != record.name]
        records.append(record)
        await self._write(records)
        logger.info("Instance recorded", instance=record.name, project=record.project)

    async def update(self, name: str, **changes: Any) -> InstanceRecord:
        """Apply field changes to an existing record and return the new version."""
        records = await self.list()
        for i, record in enumerate(records):
            if record.name == name:
                updated = InstanceRecord.model_validate({**record.model_dump(), **changes})
                records[i] = updated
                await self._write(records)
                return updated
        raise RecordNotFoundError("Instance", name)

    async def remove(self, name: str) -> bool:
        records = await self.list()
        remaining = [r for r in records if r.name != name]
        if len(remaining) == len(records):
            return False
        await self._write(remaining)
        logger.info("Instance removed", instance=name)
        return True

    async def tasks_awaiting_review(self, project: str | None = None) -> list[InstanceRecord]:
        """Instances whose autonomous task has completed and awaits review."""
        return [
            r
            for r in await self.list()
            if r.task_status == TaskStatus.COMPLETED and (project is None or r.project == project)
        ]
