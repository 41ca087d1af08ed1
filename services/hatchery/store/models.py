"""Persistent records for projects and compute instances."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class TaskStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RepositoryInfo(BaseModel):
    url: str
    owner: str
    repo: str


class HostingInfo(BaseModel):
    url: str
    project_id: str
    project_name: str


class BackendInfo(BaseModel):
    project_id: str
    project_slug: str
    deployment_name: str
    deployment_url: str
    deploy_key: str
    region: str | None = None


class FeatureBackend(BaseModel):
    """A backend project created for, and owned by, one feature instance."""

    name: str
    project_id: str
    deployment_name: str = ""
    deployment_url: str = ""


class ProjectRecord(BaseModel):
    """A provisioned project. Provider identifiers never change after creation."""

    name: str
    created_at: str = Field(default_factory=utc_now_iso)
    repository: RepositoryInfo
    hosting: HostingInfo
    backend: BackendInfo


class InstanceRecord(BaseModel):
    """A ready compute instance bound to a project and (usually) a feature."""

    name: str
    remote_host: str
    project: str
    feature: str | None = None
    created_at: str = Field(default_factory=utc_now_iso)
    repository_branch: str | None = None
    backend_branches: list[FeatureBackend] = Field(default_factory=list)

    # Autonomous task tracking
    task_status: TaskStatus | None = None
    iteration_count: int | None = None
    cumulative_cost: float | None = None
    original_prompt: str | None = None
    result_url: str | None = None
