"""
The individual provisioning steps.

Each step takes the previous step's result and returns its own typed
result. Steps raise HatcheryError subclasses; the pipeline decides how a
failure is reported. Non-fatal problems are returned as `notes` so they end
up in the next-steps list instead of aborting the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hatchery.config import EnvVar, Settings
from hatchery.conflicts import generate_secret, resolve
from hatchery.errors import HatcheryError, PollTimeoutError
from hatchery.logging_config import get_logger
from hatchery.polling import Sleeper, poll_until
from hatchery.providers.process import CommandError, run_command
from hatchery.providers.protocol import (
    BackendProvider,
    HostingProvider,
    ProductionAlias,
    RepositoryHost,
)

logger = get_logger(__name__)

# Hosting env keys for the backend deployment
BACKEND_URL_KEY = "NEXT_PUBLIC_CONVEX_URL"
BACKEND_SITE_URL_KEY = "NEXT_PUBLIC_CONVEX_SITE_URL"
DEPLOY_KEY_KEY = "CONVEX_DEPLOY_KEY"
SITE_URL_KEY = "SITE_URL"


@dataclass
class RepositoryResult:
    url: str
    owner: str
    repo: str
    was_renamed: bool = False
    original_name: str = ""
    clone_url: str = ""


@dataclass
class BackendResult:
    project_id: str
    project_slug: str
    deployment_name: str
    deployment_url: str
    site_url: str
    deploy_key: str
    was_renamed: bool = False


@dataclass
class HostingResult:
    url: str
    project_id: str
    project_name: str
    notes: list[str] = field(default_factory=list)


def web_path(project_path: Path, settings: Settings) -> str:
    return str(project_path / settings.backend.web_dir)


# --- Step 2: repository ---


async def setup_repository(
    name: str, project_path: Path, settings: Settings, repository: RepositoryHost
) -> RepositoryResult:
    owner = settings.github.org or await repository.get_authenticated_user()

    async def exists(candidate: str) -> bool:
        return await repository.repo_exists(owner, candidate)

    resolved = await resolve(name, exists, settings.pipeline.conflict_strategy, "github")
    created = await repository.create_repo(
        resolved.name, org=settings.github.org, private=settings.github.private
    )
    await repository.push_local(str(project_path), created, settings.github.default_branch)

    return RepositoryResult(
        url=created.url,
        owner=created.owner,
        repo=created.repo,
        was_renamed=resolved.was_renamed,
        original_name=resolved.original,
        clone_url=created.clone_url,
    )


# --- Step 3: backend ---


def _custom_env(env_vars: list[EnvVar]) -> dict[str, str]:
    return {var.key: var.value for var in env_vars}


async def setup_backend(
    repo: RepositoryResult, project_path: Path, settings: Settings, backend: BackendProvider
) -> BackendResult:
    team_id = await backend.get_team_id()

    async def exists(candidate: str) -> bool:
        return await backend.project_exists(team_id, candidate)

    desired = repo.original_name or repo.repo
    resolved = await resolve(desired, exists, settings.pipeline.conflict_strategy, "backend")
    project = await backend.create_project(team_id, resolved.name)
    deploy_key = await backend.create_deploy_key(project.deployment_name)
    await backend.deploy(web_path(project_path, settings), deploy_key)

    env = {
        settings.pipeline.auth_secret_key: generate_secret(),
        SITE_URL_KEY: f"https://{repo.repo}.{settings.hosting.domain}",
        **_custom_env(settings.backend.env_vars),
    }
    await backend.set_env_vars(project.deployment_name, env)

    return BackendResult(
        project_id=project.project_id,
        project_slug=resolved.name,
        deployment_name=project.deployment_name,
        deployment_url=project.deployment_url,
        site_url=backend.site_url(project.deployment_url),
        deploy_key=deploy_key,
        was_renamed=resolved.was_renamed,
    )


# --- Step 4: hosting ---


async def link_hosting(
    repo: RepositoryResult, project_path: Path, settings: Settings, hosting: HostingProvider
) -> HostingResult:
    """Link the app to a hosting project named after the repository."""
    resolved = await resolve(
        repo.repo, hosting.project_exists, settings.pipeline.conflict_strategy, "hosting"
    )
    project_name = resolved.name
    project_id = await hosting.link(web_path(project_path, settings), project_name)
    return HostingResult(
        url=hosting.fallback_url(project_name), project_id=project_id, project_name=project_name
    )


async def configure_hosting(
    repo: RepositoryResult,
    backend_result: BackendResult,
    hosting_result: HostingResult,
    project_path: Path,
    settings: Settings,
    hosting: HostingProvider,
) -> None:
    """Root directory, git connection and env vars of a linked hosting project.

    Non-fatal problems are appended to `hosting_result.notes`.
    """
    cwd = web_path(project_path, settings)
    notes = hosting_result.notes
    project_id = hosting_result.project_id
    project_name = hosting_result.project_name

    if settings.hosting.root_directory:
        await hosting.set_root_directory(project_id, settings.hosting.root_directory)

    git_url = repo.clone_url or f"{repo.url}.git"
    try:
        await hosting.connect_git(cwd, git_url)
    except HatcheryError as e:
        logger.warning("Could not connect git to hosting project", error=str(e))
        notes.append(f"Connect {repo.url} to hosting project {project_name} in the dashboard")

    environments = settings.hosting.environments
    baseline = [
        EnvVar(key=BACKEND_URL_KEY, value=backend_result.deployment_url, environments=environments),
        EnvVar(key=BACKEND_SITE_URL_KEY, value=backend_result.site_url, environments=environments),
        EnvVar(key=DEPLOY_KEY_KEY, value=backend_result.deploy_key, environments=environments),
        EnvVar(key=settings.pipeline.auth_secret_key, value=generate_secret(), environments=environments),
    ]
    for var in [*baseline, *settings.hosting.env_vars]:
        await hosting.add_env(cwd, var.key, var.value, var.environments)

    try:
        await hosting.pull_env(cwd, settings.hosting.env_file)
    except HatcheryError as e:
        logger.warning("Could not pull hosting env", error=str(e))
        notes.append(f"Pull env vars manually: cd {cwd} && {settings.hosting.cli} env pull {settings.hosting.env_file}")


# --- Step 5: commit and push ---


async def commit_and_push(
    project_path: Path, settings: Settings, repository: RepositoryHost
) -> str | None:
    """Commit generated setup files and push. Returns a next-step note on failure."""
    cwd = str(project_path)
    branch = settings.github.default_branch
    try:
        status = await run_command(["git", "status", "--porcelain"], cwd=cwd)
        if not status.stdout.strip():
            logger.info("No setup changes to commit")
            return None
        await run_command(["git", "add", "-A"], cwd=cwd)
        await run_command(["git", "commit", "-m", settings.pipeline.commit_message], cwd=cwd)
        await repository.push(cwd, branch)
    except (CommandError, HatcheryError) as e:
        logger.warning("Could not push setup changes", error=str(e))
        return f"Deploy manually with: git push origin {branch}"
    logger.info("Pushed setup changes", branch=branch)
    return None


# --- Step 6: production alias ---


async def wait_for_production_url(
    hosting_result: HostingResult,
    settings: Settings,
    hosting: HostingProvider,
    sleep: Sleeper | None = None,
) -> str:
    """Poll for the pretty production alias; fall back to the predictable URL."""
    fallback = hosting.fallback_url(hosting_result.project_name)

    async def current_alias() -> ProductionAlias | None:
        alias = await hosting.get_production_alias(
            hosting_result.project_id, hosting_result.project_name
        )
        return alias if alias.is_custom else None

    kwargs = {"sleep": sleep} if sleep is not None else {}
    try:
        alias = await poll_until(
            current_alias,
            resource=f"production alias for {hosting_result.project_name}",
            interval=settings.pipeline.alias_interval_seconds,
            timeout=settings.pipeline.alias_timeout_seconds,
            **kwargs,
        )
    except PollTimeoutError:
        logger.warning("Production alias not assigned in time", fallback=fallback)
        return fallback
    except HatcheryError as e:
        logger.warning("Could not read production alias", error=str(e), fallback=fallback)
        return fallback
    return alias.url
