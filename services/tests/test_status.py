"""Tests for fleet status collection."""

import json
from datetime import UTC, datetime

from hatchery.errors import ProviderError
from hatchery.providers import Providers
from hatchery.providers.protocol import CheckRun, PullRequestStatus, ShellResult
from hatchery.status import collect_status, render_status, time_ago
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore, TaskStatus


class TestTimeAgo:
    def test_buckets(self) -> None:
        now = datetime(2026, 1, 2, 12, 0, tzinfo=UTC)
        assert time_ago("2026-01-02T11:59:30+00:00", now) == "just now"
        assert time_ago("2026-01-02T11:15:00+00:00", now) == "45m ago"
        assert time_ago("2026-01-02T09:00:00+00:00", now) == "3h ago"
        assert time_ago("2025-12-30T12:00:00+00:00", now) == "3d ago"


class TestCollectStatus:
    async def test_empty(self, providers: Providers, project_store: ProjectStore, instance_store: InstanceStore) -> None:
        assert await collect_status(providers, project_store, instance_store) == []
        assert render_status([]) == "No instances found."

    async def test_running_task_marked_completed(
        self,
        providers: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
        project_record: ProjectRecord,
        instance_record: InstanceRecord,
    ) -> None:
        await project_store.save(project_record)
        await instance_store.add(instance_record.model_copy(update={"task_status": TaskStatus.RUNNING}))
        providers.shell.exec.return_value = ShellResult(stdout="done\n", stderr="")
        providers.repository.find_pull_request.return_value = PullRequestStatus(
            number=3,
            title="Login",
            url="https://github.com/acme/demo/pull/3",
            state="open",
            checks=[CheckRun(name="ci", status="in_progress", conclusion="")],
        )

        statuses = await collect_status(providers, project_store, instance_store, project="demo")

        assert len(statuses) == 1
        assert statuses[0].reachable
        assert statuses[0].record.task_status == TaskStatus.COMPLETED
        assert (await instance_store.get("vm-abc")).task_status == TaskStatus.COMPLETED
        providers.repository.find_pull_request.assert_awaited_once_with("acme", "demo", "login")

        text = render_status(statuses, project="demo")
        assert "PR #3 open: Login (checks pending)" in text

    async def test_check_failures_do_not_abort(
        self,
        providers: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
        project_record: ProjectRecord,
        instance_record: InstanceRecord,
    ) -> None:
        await project_store.save(project_record)
        await instance_store.add(instance_record)
        providers.shell.is_reachable.return_value = False
        providers.repository.find_pull_request.side_effect = ProviderError("github", "list pull requests", "502")

        statuses = await collect_status(providers, project_store, instance_store)

        assert not statuses[0].reachable
        assert statuses[0].pull_request is None
        document = json.loads(
            render_status(statuses, as_json=True, now=lambda: datetime(2026, 1, 1, tzinfo=UTC))
        )
        assert document["instances"][0]["name"] == "vm-abc"
        assert document["instances"][0]["reachable"] is False
