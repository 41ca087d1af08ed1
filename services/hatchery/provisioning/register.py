"""
Registration of a project that was provisioned outside Hatchery.

Each provider is asked for the existing resource by name; nothing is
created except a fresh deploy key for the backend's production deployment.
The project is only saved once all three providers have answered.
"""

from __future__ import annotations

from hatchery.config import Settings
from hatchery.errors import LifecycleError, RecordNotFoundError
from hatchery.logging_config import get_logger
from hatchery.providers import Providers
from hatchery.providers.github import parse_repo_url
from hatchery.store import ProjectRecord, ProjectStore
from hatchery.store.models import BackendInfo, HostingInfo, RepositoryInfo

logger = get_logger(__name__)


async def _lookup_repository(
    name: str, repo_url: str | None, settings: Settings, providers: Providers
) -> RepositoryInfo:
    if repo_url:
        parsed = parse_repo_url(repo_url)
        if parsed is None:
            raise RecordNotFoundError("Repository", repo_url, hint="Expected owner/repo on github.com")
        owner, repo = parsed
    else:
        owner = settings.github.org or await providers.repository.get_authenticated_user()
        repo = name

    if not await providers.repository.repo_exists(owner, repo):
        raise RecordNotFoundError(
            "Repository", f"{owner}/{repo}", hint="Pass --repo with the repository URL."
        )
    return RepositoryInfo(url=f"https://github.com/{owner}/{repo}", owner=owner, repo=repo)


async def _lookup_backend(name: str, providers: Providers) -> BackendInfo:
    backend = providers.backend
    team_id = await backend.get_team_id()
    project = await backend.find_project(team_id, name)
    if project is None:
        raise RecordNotFoundError(
            "Backend project", name, hint="Pass --backend with the backend project name."
        )
    deploy_key = await backend.create_deploy_key(project.deployment_name)
    return BackendInfo(
        project_id=project.project_id,
        project_slug=name,
        deployment_name=project.deployment_name,
        deployment_url=project.deployment_url,
        deploy_key=deploy_key,
    )


async def _lookup_hosting(name: str, providers: Providers) -> HostingInfo:
    hosting = providers.hosting
    project_id = await hosting.find_project_id(name)
    if project_id is None:
        raise RecordNotFoundError(
            "Hosting project", name, hint="Pass --hosting with the hosting project name."
        )
    alias = await hosting.get_production_alias(project_id, name)
    return HostingInfo(url=alias.url, project_id=project_id, project_name=name)


async def register_existing_project(
    name: str,
    settings: Settings,
    providers: Providers,
    projects: ProjectStore,
    repo_url: str | None = None,
    backend_name: str | None = None,
    hosting_name: str | None = None,
) -> ProjectRecord:
    """Track an already-provisioned project so feature instances can use it.

    Provider names default to the project name. Raises RecordNotFoundError
    naming the first provider that does not know the project.
    """
    existing = await projects.get(name)
    if existing is not None:
        raise LifecycleError(
            f"Project {name} is already tracked",
            remediation=["hatchery list --projects"],
        )

    repository = await _lookup_repository(name, repo_url, settings, providers)
    backend = await _lookup_backend(backend_name or name, providers)
    hosting = await _lookup_hosting(hosting_name or repository.repo, providers)

    record = ProjectRecord(name=name, repository=repository, hosting=hosting, backend=backend)
    await projects.save(record)
    logger.info(
        "Existing project registered",
        project=name,
        repository=f"{repository.owner}/{repository.repo}",
        backend_project=backend.project_slug,
        hosting_project=hosting.project_name,
    )
    return record
