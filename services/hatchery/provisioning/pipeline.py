"""
Provisioning pipeline: repository, backend, hosting, push, production URL.

Steps run strictly in order and nothing is rolled back. If a required step
fails, the result carries the outputs of every step that finished before it
so the operator can clean up or finish by hand.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from hatchery.config import Settings
from hatchery.errors import HatcheryError, ProvisioningError
from hatchery.logging_config import get_logger
from hatchery.polling import Sleeper
from hatchery.providers import Providers
from hatchery.provisioning.prerequisites import check_prerequisites
from hatchery.provisioning.steps import (
    BackendResult,
    HostingResult,
    RepositoryResult,
    commit_and_push,
    configure_hosting,
    link_hosting,
    setup_backend,
    setup_repository,
    wait_for_production_url,
)
from hatchery.store import ProjectRecord, ProjectStore
from hatchery.store.models import BackendInfo, HostingInfo, RepositoryInfo

logger = get_logger(__name__)


@dataclass
class ProjectInfo:
    name: str
    path: str


@dataclass
class PipelineResult:
    success: bool
    project: ProjectInfo | None = None
    repository: RepositoryResult | None = None
    backend: BackendResult | None = None
    hosting: HostingResult | None = None
    next_steps: list[str] = field(default_factory=list)
    error: str | None = None
    failed_step: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def generate_next_steps(result: PipelineResult, settings: Settings) -> list[str]:
    """Manual follow-ups the operator still has to do."""
    steps: list[str] = []

    if result.backend:
        steps.append(
            f"Backend dashboard: {settings.backend.dashboard_url} "
            f"(deployment {result.backend.deployment_name})"
        )
        steps.append(
            "Set up preview deployments: generate a preview deploy key in the backend "
            "dashboard and add it to the hosting project's preview environment"
        )

    configured = {var.key for var in settings.hosting.env_vars}
    for key in settings.pipeline.manual_env_keys:
        if key not in configured:
            steps.append(f"Add {key} to the hosting project's env vars")

    if result.hosting:
        steps.extend(result.hosting.notes)

    return steps


def _to_record(
    repository: RepositoryResult, backend: BackendResult, hosting: HostingResult, settings: Settings
) -> ProjectRecord:
    return ProjectRecord(
        name=repository.repo,
        repository=RepositoryInfo(
            url=repository.url,
            owner=repository.owner,
            repo=repository.repo,
        ),
        hosting=HostingInfo(
            url=hosting.url,
            project_id=hosting.project_id,
            project_name=hosting.project_name,
        ),
        backend=BackendInfo(
            project_id=backend.project_id,
            project_slug=backend.project_slug,
            deployment_name=backend.deployment_name,
            deployment_url=backend.deployment_url,
            deploy_key=backend.deploy_key,
            region=settings.backend.region or None,
        ),
    )


async def _run_required_steps(
    name: str, project_path: Path, settings: Settings, providers: Providers
) -> tuple[RepositoryResult, BackendResult, HostingResult]:
    partial: dict[str, Any] = {}

    step = "repository"
    try:
        logger.info("Setting up repository", name=name)
        repository = await setup_repository(name, project_path, settings, providers.repository)
        partial["repository"] = repository

        step = "backend"
        logger.info("Setting up backend", name=repository.repo)
        backend = await setup_backend(repository, project_path, settings, providers.backend)
        partial["backend"] = backend

        step = "hosting"
        logger.info("Setting up hosting", name=repository.repo)
        hosting = await link_hosting(repository, project_path, settings, providers.hosting)
        partial["hosting"] = hosting
        await configure_hosting(
            repository, backend, hosting, project_path, settings, providers.hosting
        )
    except HatcheryError as e:
        raise ProvisioningError(step, e, partial) from e

    return repository, backend, hosting


async def provision_project(
    name: str,
    project_path: Path,
    settings: Settings,
    providers: Providers,
    store: ProjectStore,
    sleep: Sleeper | None = None,
) -> PipelineResult:
    """Create every provider resource for a new project and record it.

    Missing prerequisites raise ConfigurationError before any provider call.
    A failure in a required step is returned as an unsuccessful result that
    still carries the outputs of the steps that completed.
    """
    check_prerequisites(settings)
    project_path = project_path.resolve()

    try:
        repository, backend, hosting = await _run_required_steps(
            name, project_path, settings, providers
        )
    except ProvisioningError as e:
        logger.error("Provisioning failed", step=e.step, error=str(e.cause))
        result = PipelineResult(
            success=False,
            project=ProjectInfo(name=name, path=str(project_path)),
            repository=e.partial.get("repository"),
            backend=e.partial.get("backend"),
            hosting=e.partial.get("hosting"),
            error=str(e.cause),
            failed_step=e.step,
        )
        result.next_steps = generate_next_steps(result, settings)
        return result

    push_note = await commit_and_push(project_path, settings, providers.repository)
    if push_note:
        hosting.notes.append(push_note)

    hosting.url = await wait_for_production_url(hosting, settings, providers.hosting, sleep=sleep)

    result = PipelineResult(
        success=True,
        project=ProjectInfo(name=repository.repo, path=str(project_path)),
        repository=repository,
        backend=backend,
        hosting=hosting,
    )
    result.next_steps = generate_next_steps(result, settings)

    await store.save(_to_record(repository, backend, hosting, settings))
    logger.info("Project provisioned", project=repository.repo, url=hosting.url)
    return result
