"""File-backed record stores."""

from hatchery.config import Settings
from hatchery.store.instances import InstanceStore
from hatchery.store.models import InstanceRecord, ProjectRecord, TaskStatus
from hatchery.store.projects import ProjectStore


def build_stores(settings: Settings) -> tuple[ProjectStore, InstanceStore]:
    return (
        ProjectStore(settings.store.projects_path),
        InstanceStore(settings.store.instances_path),
    )


__all__ = [
    "InstanceRecord",
    "InstanceStore",
    "ProjectRecord",
    "ProjectStore",
    "TaskStatus",
    "build_stores",
]
