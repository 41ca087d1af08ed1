"""Tests for feature instance creation."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from hatchery.config import Settings
from hatchery.errors import ConfigurationError, LifecycleError, ProviderError
from hatchery.lifecycle import create_feature_instance
from hatchery.lifecycle.feature import feature_backend_name, set_env_line_command
from hatchery.providers import Providers
from hatchery.providers.protocol import AccessCheck, BackendProject, ComputeInstance, ShellResult
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore


@pytest.fixture
def feature_settings(settings: Settings, tmp_path: Path) -> Settings:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("github: {}\n")
    setup_script = tmp_path / "feature-setup.sh"
    setup_script.write_text("#!/bin/sh\n")
    settings.compute.config_file = str(config_file)
    settings.compute.setup_script = str(setup_script)
    return settings


@pytest.fixture
async def ready(
    providers: Providers, project_store: ProjectStore, project_record: ProjectRecord
) -> Providers:
    await project_store.save(project_record)
    providers.compute.create_instance.return_value = ComputeInstance(
        name="vm-new", ssh_host="vm-new.exe.xyz"
    )
    providers.backend.get_team_id.return_value = "team-1"
    providers.backend.create_project.return_value = BackendProject(
        project_id="77",
        deployment_name="brave-owl-456",
        deployment_url="https://brave-owl-456.convex.cloud",
    )
    providers.backend.create_deploy_key.return_value = "prod:brave-owl-456|key"
    return providers


def test_feature_backend_name(settings: Settings, project_record: ProjectRecord) -> None:
    assert feature_backend_name(project_record, "login", settings) == "demo-login"


def test_set_env_line_command_quotes_value() -> None:
    command = set_env_line_command("/home/u/app", ".env.local", "APP_URL", "https://x y")
    assert "'APP_URL=https://x y'" in command
    assert command.startswith("cd /home/u/app && ")


def test_set_env_line_command_escapes_sed_delimiter() -> None:
    command = set_env_line_command("/app", ".env.local", "CONVEX_DEPLOY_KEY", "prod:x|key")
    assert "CONVEX_DEPLOY_KEY=prod:x\\|key|" in command
    assert "echo CONVEX_DEPLOY_KEY=prod:x|key" not in command
    assert "'CONVEX_DEPLOY_KEY=prod:x|key' >>" in command


class TestCreateFeatureInstance:
    async def test_creates_and_records_instance(
        self,
        feature_settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
    ) -> None:
        created = await create_feature_instance(
            "demo", "login", feature_settings, ready, project_store, instance_store, sleep=AsyncMock()
        )

        assert created.url == "https://vm-new.exe.xyz"
        record = await instance_store.get_by_feature("demo", "login")
        assert record is not None
        assert [b.name for b in record.backend_branches] == ["demo-login"]
        assert record.backend_branches[0].project_id == "77"
        assert record.repository_branch == "login"

        ready.backend.create_project.assert_awaited_once_with("team-1", "demo-login")
        deployment, env = ready.backend.set_env_vars.call_args.args
        assert deployment == "brave-owl-456"
        assert env["SITE_URL"] == "https://vm-new.exe.xyz"
        assert env["BETTER_AUTH_SECRET"]

        commands = [c.args[1] for c in ready.shell.exec.call_args_list]
        assert any("CONVEX_DEPLOY_KEY='prod:brave-owl-456|key' npx convex deploy" in c for c in commands)
        assert any("NEXT_PUBLIC_CONVEX_URL=https://brave-owl-456.convex.cloud" in c for c in commands)
        assert any("NEXT_PUBLIC_CONVEX_SITE_URL=https://brave-owl-456.convex.site" in c for c in commands)
        assert any("NEXT_PUBLIC_APP_URL=https://vm-new.exe.xyz" in c for c in commands)
        assert any("git push -u origin login" in c for c in commands)

    async def test_setup_failure_rolls_back_instance(
        self,
        feature_settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
    ) -> None:
        async def exec_(host: str, command: str, timeout: float = 60.0, stream_stderr: bool = False):
            if "feature-setup.sh" in command and "chmod" in command:
                raise ProviderError("ssh", f"exec on {host}", "setup exploded")
            return ShellResult(stdout="", stderr="")

        ready.shell.exec.side_effect = exec_

        with pytest.raises(ProviderError) as exc:
            await create_feature_instance(
                "demo", "login", feature_settings, ready, project_store, instance_store, sleep=AsyncMock()
            )

        assert exc.value.step == "run setup script"
        assert "setup exploded" in exc.value.detail
        ready.compute.delete_instance.assert_awaited_once_with("vm-new")
        assert await instance_store.list() == []

    async def test_deploy_failure_deletes_backend_project_and_instance(
        self,
        feature_settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
    ) -> None:
        async def exec_(host: str, command: str, timeout: float = 60.0, stream_stderr: bool = False):
            if "convex deploy" in command:
                raise ProviderError("ssh", f"exec on {host}", "schema invalid")
            return ShellResult(stdout="", stderr="")

        ready.shell.exec.side_effect = exec_

        with pytest.raises(ProviderError) as exc:
            await create_feature_instance(
                "demo", "login", feature_settings, ready, project_store, instance_store, sleep=AsyncMock()
            )

        assert exc.value.step == "deploy demo-login"
        ready.backend.delete_project.assert_awaited_once_with("77")
        ready.compute.delete_instance.assert_awaited_once_with("vm-new")
        assert await instance_store.list() == []

    async def test_rollback_failure_still_raises_original_error(
        self,
        feature_settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
    ) -> None:
        ready.backend.create_project.side_effect = ProviderError("backend", "create project", "quota")
        ready.compute.delete_instance.side_effect = ProviderError("compute", "delete", "down")

        with pytest.raises(ProviderError) as exc:
            await create_feature_instance(
                "demo", "login", feature_settings, ready, project_store, instance_store, sleep=AsyncMock()
            )
        assert exc.value.detail == "quota"
        ready.backend.delete_project.assert_not_awaited()

    async def test_existing_feature_is_refused(
        self,
        feature_settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
        instance_record: InstanceRecord,
    ) -> None:
        await instance_store.add(instance_record)
        with pytest.raises(LifecycleError):
            await create_feature_instance(
                "demo", "login", feature_settings, ready, project_store, instance_store
            )
        ready.compute.create_instance.assert_not_awaited()

    async def test_no_compute_access(
        self,
        feature_settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
    ) -> None:
        ready.compute.check_access.return_value = AccessCheck(False, "SSH key not authorized.")
        with pytest.raises(ConfigurationError, match="SSH key not authorized"):
            await create_feature_instance(
                "demo", "login", feature_settings, ready, project_store, instance_store
            )
        ready.compute.create_instance.assert_not_awaited()

    async def test_missing_setup_script(
        self,
        settings: Settings,
        ready: Providers,
        project_store: ProjectStore,
        instance_store: InstanceStore,
        tmp_path: Path,
    ) -> None:
        settings.compute.config_file = str(tmp_path / "absent.yaml")
        settings.compute.setup_script = str(tmp_path / "absent.sh")
        with pytest.raises(ConfigurationError) as exc:
            await create_feature_instance(
                "demo", "login", settings, ready, project_store, instance_store
            )
        assert len(exc.value.missing) == 2
        ready.compute.create_instance.assert_not_awaited()
