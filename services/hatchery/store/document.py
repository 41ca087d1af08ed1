"""Whole-document JSON persistence shared by the record stores.

Every mutation is read-modify-write of the full file. Writes go to a
temporary sibling and are moved into place with os.replace, so a crash never
leaves a half-written document. Concurrent CLI invocations can still lose an
update; there is no locking.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from hatchery.errors import StoreCorruptError
from hatchery.logging_config import get_logger

logger = get_logger(__name__)

STORE_VERSION = 1


class JsonDocumentStore:
    """A `{version: 1, <collection>: ...}` JSON document on disk."""

    def __init__(self, path: Path, collection: str = "entries", empty: Any = None) -> None:
        self.path = Path(path)
        self.collection = collection
        self._empty = empty if empty is not None else []

    def _empty_value(self) -> Any:
        return type(self._empty)()

    async def load(self) -> Any:
        """Return the collection. A missing file is an empty store."""
        if not self.path.exists():
            return self._empty_value()

        async with aiofiles.open(self.path) as f:
            raw = await f.read()

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreCorruptError(str(self.path), f"invalid JSON ({e.msg})") from e

        if not isinstance(document, dict):
            raise StoreCorruptError(str(self.path), "top level is not an object")
        if document.get("version") != STORE_VERSION:
            raise StoreCorruptError(
                str(self.path), f"unsupported version {document.get('version')!r}"
            )

        value = document.get(self.collection, self._empty_value())
        if not isinstance(value, type(self._empty)):
            raise StoreCorruptError(str(self.path), f"'{self.collection}' has the wrong shape")
        return value

    async def save(self, value: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {"version": STORE_VERSION, self.collection: value}
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(document, indent=2) + "\n")
        await aiofiles.os.replace(tmp_path, self.path)
        logger.debug("Store written", path=str(self.path), collection=self.collection)

