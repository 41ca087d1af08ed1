"""
Fleet status: one set of read-only checks per tracked instance, run concurrently.

Each instance gets a reachability check, a task-marker check (only while its
task is recorded as running) and a pull-request lookup for its branch. A
running task whose marker says it finished is corrected in the store.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from hatchery.errors import HatcheryError
from hatchery.logging_config import get_logger
from hatchery.providers import Providers
from hatchery.providers.protocol import PullRequestStatus
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore, TaskStatus

logger = get_logger(__name__)

TASK_DONE_MARKER = "~/task-done"


@dataclass
class InstanceStatus:
    record: InstanceRecord
    reachable: bool
    task_done: bool | None = None
    pull_request: PullRequestStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        pr = None
        if self.pull_request:
            pr = {
                "number": self.pull_request.number,
                "title": self.pull_request.title,
                "url": self.pull_request.url,
                "state": self.pull_request.state,
                "checks": self.pull_request.checks_status,
            }
        return {
            **self.record.model_dump(mode="json"),
            "reachable": self.reachable,
            "pull_request": pr,
        }


def time_ago(iso_date: str, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    seconds = (now - datetime.fromisoformat(iso_date)).total_seconds()
    if seconds < 60:
        return "just now"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


async def _task_marker_done(providers: Providers, host: str) -> bool | None:
    try:
        result = await providers.shell.exec(
            host, f"test -f {TASK_DONE_MARKER} && echo done || echo running", timeout=10
        )
    except HatcheryError as e:
        logger.debug("Task marker check failed", host=host, error=str(e))
        return None
    return result.stdout.strip() == "done"


async def _pull_request(
    providers: Providers, project: ProjectRecord | None, branch: str | None
) -> PullRequestStatus | None:
    if project is None or not branch:
        return None
    try:
        return await providers.repository.find_pull_request(
            project.repository.owner, project.repository.repo, branch
        )
    except HatcheryError as e:
        logger.debug("Pull request lookup failed", branch=branch, error=str(e))
        return None


async def _inspect(
    record: InstanceRecord, project: ProjectRecord | None, providers: Providers
) -> InstanceStatus:
    reachable, pull_request = await asyncio.gather(
        providers.shell.is_reachable(record.remote_host),
        _pull_request(providers, project, record.repository_branch),
    )
    task_done = None
    if reachable and record.task_status == TaskStatus.RUNNING:
        task_done = await _task_marker_done(providers, record.remote_host)
    return InstanceStatus(
        record=record, reachable=reachable, task_done=task_done, pull_request=pull_request
    )


async def collect_status(
    providers: Providers,
    projects: ProjectStore,
    instances: InstanceStore,
    project: str | None = None,
) -> list[InstanceStatus]:
    records = await (instances.list_by_project(project) if project else instances.list())
    if not records:
        return []

    by_name = {p.name: p for p in await projects.list()}
    statuses = await asyncio.gather(
        *(_inspect(record, by_name.get(record.project), providers) for record in records)
    )

    for status in statuses:
        if status.record.task_status == TaskStatus.RUNNING and status.task_done:
            status.record = await instances.update(
                status.record.name, task_status=TaskStatus.COMPLETED
            )
            logger.info("Task marked completed", instance=status.record.name)
    return list(statuses)


def render_status(
    statuses: list[InstanceStatus],
    as_json: bool = False,
    project: str | None = None,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> str:
    current = now()
    if as_json:
        return json.dumps(
            {
                "timestamp": current.isoformat(),
                "project": project,
                "instances": [s.to_dict() for s in statuses],
            },
            indent=2,
        )

    if not statuses:
        return "No instances found."

    lines: list[str] = []
    for s in statuses:
        r = s.record
        state = "reachable" if s.reachable else "unreachable"
        lines.append(f"{r.name}  [{r.project}/{r.feature or '-'}]  {state}  created {time_ago(r.created_at, current)}")
        if r.task_status:
            detail = f"  task: {r.task_status}"
            if r.iteration_count is not None:
                detail += f", {r.iteration_count} iterations"
            if r.cumulative_cost is not None:
                detail += f", ${r.cumulative_cost:.2f}"
            lines.append(detail)
        if s.pull_request:
            pr = s.pull_request
            lines.append(f"  PR #{pr.number} {pr.state}: {pr.title} (checks {pr.checks_status})")
            lines.append(f"  {pr.url}")
    return "\n".join(lines)
