"""
Provider protocols and shared types for Hatchery.

Defines the interfaces the provisioning pipeline and lifecycle manager work
against. The concrete adapters (GitHub, backend, hosting, compute, SSH)
satisfy these structurally; tests substitute fakes or AsyncMocks.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

# --- Data Types ---


@dataclass(frozen=True)
class CreatedRepository:
    """A repository on the source-control host."""

    url: str
    owner: str
    repo: str
    clone_url: str = ""


@dataclass(frozen=True)
class BackendProject:
    """A freshly created backend project and its production deployment."""

    project_id: str
    deployment_name: str
    deployment_url: str


@dataclass(frozen=True)
class ProductionAlias:
    """Production URL reported by the hosting provider.

    `is_custom` is False when only provider-generated team/branch aliases
    (or nothing at all) were found.
    """

    url: str
    is_custom: bool


@dataclass(frozen=True)
class ComputeInstance:
    """A remote compute instance as returned by the compute host."""

    name: str
    ssh_host: str


@dataclass(frozen=True)
class ComputeListing:
    name: str
    status: str


@dataclass(frozen=True)
class AccessCheck:
    available: bool
    error: str = ""


@dataclass(frozen=True)
class CheckRun:
    name: str
    status: str
    conclusion: str


@dataclass
class PullRequestStatus:
    """Open or closed pull request for a feature branch."""

    number: int
    title: str
    url: str
    state: str
    head_sha: str = ""
    checks: list[CheckRun] = field(default_factory=list)

    @property
    def checks_status(self) -> str:
        """pass | fail | pending, folded over all check runs."""
        if not self.checks:
            return "pending"
        if any(c.conclusion == "failure" for c in self.checks):
            return "fail"
        if any(c.status in ("queued", "in_progress") for c in self.checks):
            return "pending"
        return "pass"


@dataclass(frozen=True)
class ShellResult:
    stdout: str
    stderr: str


# --- Protocols ---


@runtime_checkable
class RepositoryHost(Protocol):
    """Source-control host operations."""

    async def get_authenticated_user(self) -> str: ...

    async def repo_exists(self, owner: str, repo: str) -> bool: ...

    async def create_repo(self, name: str, org: str = "", private: bool = True) -> CreatedRepository: ...

    async def get_default_branch(self, owner: str, repo: str) -> str | None: ...

    async def push_local(self, cwd: str, repository: CreatedRepository, branch: str) -> None: ...

    async def push(self, cwd: str, branch: str) -> None: ...

    async def delete_branch(self, owner: str, repo: str, branch: str) -> None: ...

    async def find_pull_request(self, owner: str, repo: str, branch: str) -> PullRequestStatus | None: ...

    async def set_branch_protection(self, owner: str, repo: str, branch: str, protection: dict) -> None: ...


@runtime_checkable
class BackendProvider(Protocol):
    """Backend-as-a-service management operations."""

    async def get_team_id(self) -> str: ...

    async def project_exists(self, team_id: str, name: str) -> bool: ...

    async def create_project(self, team_id: str, name: str) -> BackendProject: ...

    async def create_deploy_key(self, deployment_name: str) -> str: ...

    async def deploy(self, cwd: str, deploy_key: str) -> None: ...

    async def set_env_vars(self, deployment_name: str, env: dict[str, str]) -> None: ...

    async def find_project(self, team_id: str, name: str) -> BackendProject | None: ...

    async def delete_project(self, project_id: str) -> None: ...

    async def delete_project_by_slug(self, slug: str) -> None: ...

    def site_url(self, deployment_url: str) -> str: ...

    def remote_deploy_command(self, project_dir: str, deploy_key: str) -> str: ...


@runtime_checkable
class HostingProvider(Protocol):
    """Hosting/deploy provider operations."""

    async def project_exists(self, name: str) -> bool: ...

    async def find_project_id(self, name: str) -> str | None: ...

    async def link(self, cwd: str, project_name: str) -> str: ...

    async def set_root_directory(self, project_id: str, root_directory: str) -> None: ...

    async def connect_git(self, cwd: str, git_url: str) -> None: ...

    async def add_env(self, cwd: str, key: str, value: str, environments: list[str]) -> None: ...

    async def pull_env(self, cwd: str, env_file: str, environment: str = "") -> None: ...

    async def get_production_alias(self, project_id: str, project_name: str) -> ProductionAlias: ...

    async def delete_project(self, project_id: str) -> None: ...

    def fallback_url(self, project_name: str) -> str: ...

    def remote_pull_env_command(self, project_dir: str, env_file: str) -> str: ...


@runtime_checkable
class ComputeProvider(Protocol):
    """Remote compute host operations."""

    async def check_access(self) -> AccessCheck: ...

    async def create_instance(self) -> ComputeInstance: ...

    async def delete_instance(self, name: str) -> None: ...

    async def share_port(self, name: str, port: int) -> None: ...

    async def list_instances(self) -> list[ComputeListing]: ...

    def manual_delete_command(self, name: str) -> str: ...

    def manual_share_command(self, name: str, port: int) -> str: ...

    def instance_url(self, name: str) -> str: ...


@runtime_checkable
class RemoteShell(Protocol):
    """Shell access to provisioned compute instances."""

    async def exec(
        self, host: str, command: str, timeout: float = 60.0, stream_stderr: bool = False
    ) -> ShellResult: ...

    async def copy_to(self, local_path: str, host: str, remote_path: str) -> None: ...

    async def is_reachable(self, host: str) -> bool: ...
