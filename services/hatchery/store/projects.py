"""Registry of provisioned projects."""

from __future__ import annotations

from pathlib import Path

from hatchery.errors import RecordNotFoundError
from hatchery.logging_config import get_logger
from hatchery.store.document import JsonDocumentStore
from hatchery.store.models import ProjectRecord

logger = get_logger(__name__)


class ProjectStore:
    def __init__(self, path: Path) -> None:
        self._doc = JsonDocumentStore(path, "entries")

    async def list(self) -> list[ProjectRecord]:
        return [ProjectRecord.model_validate(entry) for entry in await self._doc.load()]

    async def get(self, name: str) -> ProjectRecord | None:
        for record in await self.list():
            if record.name == name:
                return record
        return None

    async def require(self, name: str) -> ProjectRecord:
        record = await self.get(name)
        if record is None:
            raise RecordNotFoundError(
                "Project", name, hint="Run `hatchery list --projects` to see known projects."
            )
        return record

    async def save(self, record: ProjectRecord) -> None:
        """Insert, or replace the record with the same name."""
        records = [r for r in await self.list() if r.name != record.name]
        records.append(record)
        await self._doc.save([r.model_dump(mode="json") for r in records])
        logger.info("Project saved", project=record.name)

    async def delete(self, name: str) -> bool:
        """Remove a project record. Returns False if it was not there."""
        records = await self.list()
        remaining = [r for r in records if r.name != name]
        if len(remaining) == len(records):
            return False
        await self._doc.save([r.model_dump(mode="json") for r in remaining])
        logger.info("Project removed", project=name)
        return True
