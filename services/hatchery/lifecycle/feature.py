"""
Feature instance creation.

A feature instance is a fresh compute instance with the project's repository
checked out on a new git branch and its own backend project to develop
against. Once the instance exists, any failure deletes it (and any backend
project already created for it) before the error propagates; only fully
prepared instances are recorded.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path

from hatchery.config import Settings
from hatchery.conflicts import generate_secret
from hatchery.errors import ConfigurationError, HatcheryError, LifecycleError, ProviderError
from hatchery.logging_config import get_logger
from hatchery.polling import Sleeper, poll_until
from hatchery.providers import Providers
from hatchery.providers.protocol import ComputeInstance
from hatchery.provisioning.steps import (
    BACKEND_SITE_URL_KEY,
    BACKEND_URL_KEY,
    DEPLOY_KEY_KEY,
    SITE_URL_KEY,
)
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore
from hatchery.store.models import FeatureBackend

logger = get_logger(__name__)

APP_URL_KEY = "NEXT_PUBLIC_APP_URL"
AUTH_URL_KEY = "BETTER_AUTH_URL"
DEV_ORIGINS_KEY = "ALLOWED_DEV_ORIGINS"

REMOTE_CONFIG_PATH = "~/.hatchery/config.yaml"
REMOTE_SETUP_SCRIPT = "~/feature-setup.sh"


@dataclass
class FeatureInstance:
    record: InstanceRecord
    url: str
    notes: list[str] = field(default_factory=list)


def feature_backend_name(project: ProjectRecord, feature: str, settings: Settings) -> str:
    return settings.backend.feature_project_template.format(
        project=project.backend.project_slug, feature=feature
    )


def set_env_line_command(directory: str, env_file: str, key: str, value: str) -> str:
    """Shell command that replaces or appends `KEY=value` in an env file."""
    line = shlex.quote(f"{key}={value}")
    pattern = shlex.quote(f"^{key}=")
    replacement = value.replace("\\", "\\\\").replace("|", "\\|").replace("&", "\\&")
    sed_expr = shlex.quote(f"s|^{key}=.*|{key}={replacement}|")
    return (
        f"cd {shlex.quote(directory)} && "
        f"(grep -q {pattern} {env_file} && sed -i {sed_expr} {env_file} "
        f"|| echo {line} >> {env_file})"
    )


def _check_local_files(settings: Settings) -> tuple[Path, Path]:
    config_file = settings.compute.config_file_path
    setup_script = settings.compute.setup_script_path
    missing = [str(p) for p in (config_file, setup_script) if not p.exists()]
    if missing:
        raise ConfigurationError(
            "Files needed on the instance are missing: " + ", ".join(missing), missing=missing
        )
    return config_file, setup_script


async def _create_feature_backend(
    project: ProjectRecord,
    feature: str,
    app_url: str,
    settings: Settings,
    providers: Providers,
    created: list[FeatureBackend],
) -> tuple[FeatureBackend, str]:
    """Create the feature's backend project. Returns it with its deploy key.

    The project is appended to `created` as soon as it exists so a later
    failure can delete it again.
    """
    backend = providers.backend
    name = feature_backend_name(project, feature, settings)

    team_id = await backend.get_team_id()
    info = await backend.create_project(team_id, name)
    feature_backend = FeatureBackend(
        name=name,
        project_id=info.project_id,
        deployment_name=info.deployment_name,
        deployment_url=info.deployment_url,
    )
    created.append(feature_backend)

    deploy_key = await backend.create_deploy_key(info.deployment_name)
    env = {
        settings.pipeline.auth_secret_key: generate_secret(),
        SITE_URL_KEY: app_url,
        **{var.key: var.value for var in settings.backend.env_vars},
    }
    await backend.set_env_vars(info.deployment_name, env)
    logger.info("Feature backend created", feature=feature, backend_project=name)
    return feature_backend, deploy_key


async def _prepare_instance(
    instance: ComputeInstance,
    project: ProjectRecord,
    feature: str,
    settings: Settings,
    providers: Providers,
    config_file: Path,
    setup_script: Path,
    notes: list[str],
    created: list[FeatureBackend],
    sleep: Sleeper | None,
) -> None:
    """Everything after the instance exists. Backend projects land in `created`."""
    shell = providers.shell
    host = instance.ssh_host
    compute = settings.compute
    sleep_kwargs = {"sleep": sleep} if sleep is not None else {}

    async def reachable() -> bool | None:
        return True if await shell.is_reachable(host) else None

    await poll_until(
        reachable,
        resource=f"instance {instance.name}",
        interval=compute.ready_interval_seconds,
        timeout=compute.ready_timeout_seconds,
        **sleep_kwargs,
    )

    try:
        await providers.compute.share_port(instance.name, compute.web_port)
    except HatcheryError as e:
        logger.warning("Could not expose web port", instance=instance.name, error=str(e))
        notes.append(providers.compute.manual_share_command(instance.name, compute.web_port))

    await shell.exec(host, "mkdir -p ~/.hatchery", timeout=compute.command_timeout_seconds)
    await shell.copy_to(str(config_file), host, REMOTE_CONFIG_PATH)
    await shell.copy_to(str(setup_script), host, REMOTE_SETUP_SCRIPT)

    logger.info("Running setup script", instance=instance.name)
    try:
        await shell.exec(
            host,
            f"chmod +x {REMOTE_SETUP_SCRIPT} && {REMOTE_SETUP_SCRIPT} "
            f"{shlex.quote(project.repository.url)} --config {REMOTE_CONFIG_PATH}",
            timeout=compute.setup_timeout_seconds,
            stream_stderr=True,
        )
    except ProviderError as e:
        raise ProviderError("compute", "run setup script", e.detail) from e

    project_dir = f"{compute.remote_home}/{project.repository.repo}"
    web_dir = f"{project_dir}/{settings.backend.web_dir}"
    app_url = providers.compute.instance_url(instance.name)

    base = (
        await providers.repository.get_default_branch(
            project.repository.owner, project.repository.repo
        )
        or settings.github.default_branch
    )
    await shell.exec(
        host,
        f"cd {shlex.quote(project_dir)} && git fetch origin && "
        f"git checkout -b {shlex.quote(feature)} origin/{base}",
        timeout=compute.command_timeout_seconds,
    )

    feature_backend, deploy_key = await _create_feature_backend(
        project, feature, app_url, settings, providers, created
    )
    logger.info(
        "Deploying feature backend", instance=instance.name, backend_project=feature_backend.name
    )
    try:
        await shell.exec(
            host,
            providers.backend.remote_deploy_command(web_dir, deploy_key),
            timeout=compute.setup_timeout_seconds,
            stream_stderr=True,
        )
    except ProviderError as e:
        raise ProviderError("backend", f"deploy {feature_backend.name}", e.detail) from e

    backend_env = {
        BACKEND_URL_KEY: feature_backend.deployment_url,
        BACKEND_SITE_URL_KEY: providers.backend.site_url(feature_backend.deployment_url),
        DEPLOY_KEY_KEY: deploy_key,
    }
    await _configure_env(instance, app_url, backend_env, settings, providers, web_dir, notes)

    await shell.exec(
        host,
        f"cd {shlex.quote(project_dir)} && git push -u origin {shlex.quote(feature)}",
        timeout=compute.command_timeout_seconds,
    )


async def _configure_env(
    instance: ComputeInstance,
    app_url: str,
    backend_env: dict[str, str],
    settings: Settings,
    providers: Providers,
    web_dir: str,
    notes: list[str],
) -> None:
    """Pull hosting env onto the instance, then point it at its own URLs and backend."""
    shell = providers.shell
    host = instance.ssh_host
    env_file = settings.hosting.env_file
    timeout = settings.compute.command_timeout_seconds
    origin = app_url.removeprefix("https://")
    overrides = {
        APP_URL_KEY: app_url,
        AUTH_URL_KEY: app_url,
        DEV_ORIGINS_KEY: origin,
        **backend_env,
    }

    try:
        await shell.exec(
            host, providers.hosting.remote_pull_env_command(web_dir, env_file), timeout=timeout
        )
        for key, value in overrides.items():
            await shell.exec(
                host, set_env_line_command(web_dir, env_file, key, value), timeout=timeout
            )
    except HatcheryError as e:
        logger.warning("Could not configure instance env", instance=instance.name, error=str(e))
        notes.append(f"Update {web_dir}/{env_file} on {host} by hand: set {', '.join(overrides)}")


async def create_feature_instance(
    project_name: str,
    feature: str,
    settings: Settings,
    providers: Providers,
    projects: ProjectStore,
    instances: InstanceStore,
    sleep: Sleeper | None = None,
) -> FeatureInstance:
    """Provision a compute instance for `feature` of a known project."""
    project = await projects.require(project_name)

    existing = await instances.get_by_feature(project_name, feature)
    if existing is not None:
        raise LifecycleError(
            f"Feature {feature} already has instance {existing.name}",
            remediation=[f"hatchery clean {feature} --project {project_name}"],
        )

    access = await providers.compute.check_access()
    if not access.available:
        raise ConfigurationError(access.error or "Compute host is not reachable")
    config_file, setup_script = _check_local_files(settings)

    instance = await providers.compute.create_instance()
    logger.info("Instance created", instance=instance.name, host=instance.ssh_host)
    notes: list[str] = []
    created: list[FeatureBackend] = []

    try:
        await _prepare_instance(
            instance,
            project,
            feature,
            settings,
            providers,
            config_file,
            setup_script,
            notes,
            created,
            sleep,
        )
        record = InstanceRecord(
            name=instance.name,
            remote_host=instance.ssh_host,
            project=project.name,
            feature=feature,
            repository_branch=feature,
            backend_branches=created,
        )
        await instances.add(record)
    except Exception:
        await _rollback(instance, created, providers)
        raise

    return FeatureInstance(
        record=record, url=providers.compute.instance_url(instance.name), notes=notes
    )


async def _rollback(
    instance: ComputeInstance, created: list[FeatureBackend], providers: Providers
) -> None:
    for feature_backend in created:
        logger.info("Rolling back: deleting backend project", backend_project=feature_backend.name)
        try:
            await providers.backend.delete_project(feature_backend.project_id)
        except HatcheryError as e:
            logger.warning(
                "Rollback failed, delete the backend project manually",
                backend_project=feature_backend.name,
                error=str(e),
            )

    logger.info("Rolling back: deleting instance", instance=instance.name)
    try:
        await providers.compute.delete_instance(instance.name)
    except HatcheryError as e:
        logger.warning(
            "Rollback failed, delete the instance manually",
            instance=instance.name,
            error=str(e),
            command=providers.compute.manual_delete_command(instance.name),
        )
