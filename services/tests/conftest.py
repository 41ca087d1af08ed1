"""
Top-level test configuration for Hatchery.
"""

import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure test-friendly defaults
os.environ.setdefault("HATCHERY_JSON_LOGS", "false")
os.environ.setdefault("HATCHERY_LOG_LEVEL", "DEBUG")

from hatchery.config import Settings, StoreConfig  # noqa: E402
from hatchery.providers import Providers  # noqa: E402
from hatchery.providers.protocol import AccessCheck, ShellResult  # noqa: E402
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore  # noqa: E402
from hatchery.store.models import BackendInfo, FeatureBackend, HostingInfo, RepositoryInfo  # noqa: E402


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every credential present and stores under tmp_path."""
    return Settings(
        github={"token": "gh-token"},
        backend={"access_token": "backend-token"},
        hosting={"token": "hosting-token"},
        store=StoreConfig(home=tmp_path / "home"),
    )


@pytest.fixture
def project_store(settings: Settings) -> ProjectStore:
    return ProjectStore(settings.store.projects_path)


@pytest.fixture
def instance_store(settings: Settings) -> InstanceStore:
    return InstanceStore(settings.store.instances_path)


@pytest.fixture
def project_record() -> ProjectRecord:
    return ProjectRecord(
        name="demo",
        repository=RepositoryInfo(url="https://github.com/acme/demo", owner="acme", repo="demo"),
        hosting=HostingInfo(url="https://demo.vercel.app", project_id="prj_1", project_name="demo"),
        backend=BackendInfo(
            project_id="42",
            project_slug="demo",
            deployment_name="happy-cat-123",
            deployment_url="https://happy-cat-123.convex.cloud",
            deploy_key="prod:happy-cat-123|key",
        ),
    )


@pytest.fixture
def instance_record() -> InstanceRecord:
    return InstanceRecord(
        name="vm-abc",
        remote_host="vm-abc.exe.xyz",
        project="demo",
        feature="login",
        repository_branch="login",
        backend_branches=[
            FeatureBackend(
                name="demo-login",
                project_id="77",
                deployment_name="brave-owl-456",
                deployment_url="https://brave-owl-456.convex.cloud",
            )
        ],
    )


@pytest.fixture
def providers() -> Providers:
    """Every adapter as an AsyncMock; sync helpers return realistic strings."""
    repository = AsyncMock()
    backend = AsyncMock()
    hosting = AsyncMock()
    compute = AsyncMock()
    shell = AsyncMock()

    backend.site_url = MagicMock(side_effect=lambda url: url.replace(".convex.cloud", ".convex.site"))
    hosting.fallback_url = MagicMock(side_effect=lambda name: f"https://{name}.vercel.app")
    backend.remote_deploy_command = MagicMock(
        side_effect=lambda d, key: f"cd {d} && CONVEX_DEPLOY_KEY='{key}' npx convex deploy --yes"
    )
    hosting.remote_pull_env_command = MagicMock(
        side_effect=lambda d, f: f"cd {d} && vercel env pull {f} --yes"
    )
    compute.manual_delete_command = MagicMock(side_effect=lambda name: f"ssh exe.dev rm {name}")
    compute.manual_share_command = MagicMock(
        side_effect=lambda name, port: f"ssh exe.dev share port {name} {port}"
    )
    compute.instance_url = MagicMock(side_effect=lambda name: f"https://{name}.exe.xyz")
    compute.check_access.return_value = AccessCheck(available=True)
    shell.exec.return_value = ShellResult(stdout="", stderr="")
    shell.is_reachable.return_value = True
    repository.get_default_branch.return_value = "main"

    return Providers(
        repository=repository, backend=backend, hosting=hosting, compute=compute, shell=shell
    )
