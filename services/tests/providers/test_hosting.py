"""Tests for the hosting adapter."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from hatchery.errors import ProviderError
from hatchery.providers.hosting import HostingClient, find_pretty_alias
from hatchery.providers.process import CommandResult


def result(exit_code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(args=("vercel",), exit_code=exit_code, stdout=stdout, stderr=stderr)


class TestFindPrettyAlias:
    def test_prefers_non_automatic_alias(self) -> None:
        alias, found = find_pretty_alias(
            ["demo-acme-projects.vercel.app", "demo.vercel.app"],
            ["demo-acme-projects.vercel.app"],
        )
        assert (alias, found) == ("demo.vercel.app", True)

    def test_only_team_aliases(self) -> None:
        alias, found = find_pretty_alias(["demo-git-main-acme-projects.vercel.app"], None)
        assert alias == "demo-git-main-acme-projects.vercel.app"
        assert not found

    def test_no_aliases(self) -> None:
        assert find_pretty_alias([], None) == (None, False)


class TestRestApi:
    async def test_production_alias_from_targets(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["teamId"] == "acme"
            return httpx.Response(
                200,
                json={"targets": {"production": {"alias": ["demo.vercel.app"], "automaticAliases": []}}},
            )

        client = HostingClient("tok", team="acme", transport=httpx.MockTransport(handler))
        alias = await client.get_production_alias("prj_1", "demo")
        assert alias.url == "https://demo.vercel.app"
        assert alias.is_custom

    async def test_production_alias_without_deployments_falls_back(self) -> None:
        client = HostingClient("tok", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        alias = await client.get_production_alias("prj_1", "demo")
        assert alias.url == "https://demo.vercel.app"
        assert not alias.is_custom

    async def test_production_alias_for_missing_project(self) -> None:
        client = HostingClient("tok", transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        with pytest.raises(ProviderError):
            await client.get_production_alias("prj_1", "demo")

    async def test_delete_absent_project_is_ok(self) -> None:
        client = HostingClient("tok", transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        await client.delete_project("prj_1")

    async def test_delete_failure(self) -> None:
        client = HostingClient("tok", transport=httpx.MockTransport(lambda r: httpx.Response(403, text="no")))
        with pytest.raises(ProviderError, match="403"):
            await client.delete_project("prj_1")

    async def test_connection_failure_raises_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = HostingClient("tok", transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderError, match="ConnectError") as exc_info:
            await client.delete_project("prj_1")
        assert exc_info.value.provider == "hosting"
        assert exc_info.value.step == "delete project"

    async def test_find_project_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v9/projects/demo":
                return httpx.Response(200, json={"id": "prj_9", "name": "demo"})
            return httpx.Response(404)

        client = HostingClient("tok", transport=httpx.MockTransport(handler))
        assert await client.find_project_id("demo") == "prj_9"
        assert await client.find_project_id("ghost") is None


class TestCli:
    async def test_link_reads_project_id(self, tmp_path: Path) -> None:
        (tmp_path / ".vercel").mkdir()
        (tmp_path / ".vercel" / "project.json").write_text(json.dumps({"projectId": "prj_9"}))
        run = AsyncMock(return_value=result())

        with patch("hatchery.providers.hosting.run_command", run):
            project_id = await HostingClient("tok", team="acme").link(str(tmp_path), "demo")

        assert project_id == "prj_9"
        args = run.call_args.args[0]
        assert args[:4] == ["vercel", "link", "--yes", "--project=demo"]
        assert "--scope" in args

    async def test_add_env_once_per_environment_with_stdin_value(self) -> None:
        run = AsyncMock(return_value=result())
        with patch("hatchery.providers.hosting.run_command", run):
            await HostingClient("tok").add_env("/app", "KEY", "secret", ["production", "preview"])

        assert run.await_count == 2
        assert all(c.kwargs["input_text"] == "secret" for c in run.call_args_list)
        assert "secret" not in " ".join(run.call_args.args[0])

    async def test_connect_git_tolerates_already_connected(self) -> None:
        run = AsyncMock(return_value=result(1, stderr="Error: already connected"))
        with patch("hatchery.providers.hosting.run_command", run):
            await HostingClient("tok").connect_git("/app", "https://github.com/acme/demo.git")

    async def test_cli_failure_raises(self) -> None:
        run = AsyncMock(return_value=result(1, stderr="rate limited"))
        with patch("hatchery.providers.hosting.run_command", run):
            with pytest.raises(ProviderError, match="rate limited"):
                await HostingClient("tok").pull_env("/app", ".env.local")

    async def test_token_travels_in_env_not_argv(self) -> None:
        run = AsyncMock(return_value=result())
        with patch("hatchery.providers.hosting.run_command", run):
            await HostingClient("tok").pull_env("/app", ".env.local")

        assert "tok" not in run.call_args.args[0]
        assert run.call_args.kwargs["env"] == {"VERCEL_TOKEN": "tok"}

    def test_remote_pull_env_command(self) -> None:
        command = HostingClient("tok", team="acme").remote_pull_env_command("/home/u/demo/apps/web", ".env.local")
        assert command == (
            "cd /home/u/demo/apps/web && VERCEL_TOKEN=tok vercel env pull .env.local --yes --scope acme"
        )
        assert "--token" not in command
