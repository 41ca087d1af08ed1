"""Hosting provider adapter (Vercel-style CLI plus REST API).

The CLI links the local working copy and manages environment variables;
the REST API reads project state (production aliases) and deletes projects.
"""

from __future__ import annotations

import json
import os
import shlex
from typing import Any

import aiofiles
import httpx

from hatchery.errors import ProviderError
from hatchery.logging_config import get_logger
from hatchery.providers.process import CommandError, run_command
from hatchery.providers.protocol import ProductionAlias

logger = get_logger(__name__)

PROVIDER = "hosting"


def find_pretty_alias(
    aliases: list[str] | None, automatic_aliases: list[str] | None, domain: str = "vercel.app"
) -> tuple[str | None, bool]:
    """Pick the human-facing production alias from a deployment's alias list.

    Automatic aliases carry the team name (`app-team-projects.vercel.app`);
    the pretty alias is the one the provider assigns to production. Returns
    (alias, found_pretty); found_pretty is False when only automatic aliases
    were present and the first one is returned as a placeholder.
    """
    if not aliases:
        return None, False

    if automatic_aliases:
        automatic = set(automatic_aliases)
        for alias in aliases:
            if alias not in automatic:
                return alias, True

    for alias in aliases:
        if f"-projects.{domain}" not in alias:
            return alias, True

    return aliases[0], False


class HostingClient:
    """Hosting CLI and REST API behind one interface."""

    def __init__(
        self,
        token: str,
        *,
        team: str = "",
        api_url: str = "https://api.vercel.com",
        cli: str = "vercel",
        domain: str = "vercel.app",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._team = team
        self._api_url = api_url.rstrip("/")
        self._cli = cli
        self._domain = domain
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._token}"},
        )

    def _params(self) -> dict[str, str]:
        return {"teamId": self._team} if self._team else {}

    async def _request(self, step: str, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, path, params=self._params(), **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER, step, f"{type(e).__name__}: {e}") from e

    async def _cli_run(
        self,
        step: str,
        args: list[str],
        cwd: str,
        input_text: str | None = None,
        tolerate: str = "",
    ) -> str:
        full_args = [self._cli, *args]
        if self._team:
            full_args += ["--scope", self._team]
        try:
            result = await run_command(
                full_args,
                cwd=cwd,
                env={"VERCEL_TOKEN": self._token} if self._token else None,
                input_text=input_text,
                timeout=180,
                check=False,
            )
        except CommandError as e:
            raise ProviderError(PROVIDER, step, str(e)) from e
        if not result.ok and not (tolerate and tolerate in result.output):
            raise ProviderError(PROVIDER, step, result.stderr.strip()[-500:])
        return result.output

    def fallback_url(self, project_name: str) -> str:
        return f"https://{project_name}.{self._domain}"

    # --- REST ---

    async def _get_project(self, id_or_name: str) -> dict[str, Any] | None:
        resp = await self._request("get project", "GET", f"/v9/projects/{id_or_name}")
        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(PROVIDER, "get project", f"{resp.status_code} {resp.text[:300]}") from e
        return resp.json()

    async def project_exists(self, name: str) -> bool:
        return await self._get_project(name) is not None

    async def find_project_id(self, name: str) -> str | None:
        project = await self._get_project(name)
        return project["id"] if project else None

    async def set_root_directory(self, project_id: str, root_directory: str) -> None:
        resp = await self._request(
            "set root directory",
            "PATCH",
            f"/v9/projects/{project_id}",
            json={"rootDirectory": root_directory},
        )
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                PROVIDER, "set root directory", f"{resp.status_code} {resp.text[:300]}"
            ) from e

    async def get_production_alias(self, project_id: str, project_name: str) -> ProductionAlias:
        """Current production URL; is_custom is False until a pretty alias exists."""
        project = await self._get_project(project_id)
        if project is None:
            raise ProviderError(PROVIDER, "get production alias", f"project {project_id} not found")

        candidates: list[dict[str, Any]] = []
        production = (project.get("targets") or {}).get("production")
        if production:
            candidates.append(production)
        latest = project.get("latestDeployments") or []
        if latest:
            candidates.append(latest[0])

        for deployment in candidates:
            alias, found = find_pretty_alias(
                deployment.get("alias"), deployment.get("automaticAliases"), self._domain
            )
            if alias:
                return ProductionAlias(url=f"https://{alias}", is_custom=found)

        return ProductionAlias(url=self.fallback_url(project_name), is_custom=False)

    async def delete_project(self, project_id: str) -> None:
        resp = await self._request("delete project", "DELETE", f"/v9/projects/{project_id}")
        if resp.status_code == 404:
            logger.info("Hosting project already absent", project_id=project_id)
            return
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                PROVIDER, "delete project", f"{resp.status_code} {resp.text[:300]}"
            ) from e
        logger.info("Deleted hosting project", project_id=project_id)

    # --- CLI ---

    async def link(self, cwd: str, project_name: str) -> str:
        """Link `cwd` to a (new or existing) project and return its id."""
        await self._cli_run("link project", ["link", "--yes", f"--project={project_name}"], cwd)

        project_json = os.path.join(cwd, ".vercel", "project.json")
        try:
            async with aiofiles.open(project_json) as f:
                data = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise ProviderError(PROVIDER, "link project", f"cannot read {project_json}: {e}") from e

        project_id = data.get("projectId", "")
        if not project_id:
            raise ProviderError(PROVIDER, "link project", "project.json has no projectId")
        logger.info("Linked hosting project", project=project_name, project_id=project_id)
        return project_id

    async def connect_git(self, cwd: str, git_url: str) -> None:
        await self._cli_run(
            "connect git",
            ["git", "connect", git_url, "--yes"],
            cwd,
            tolerate="already connected",
        )

    async def add_env(self, cwd: str, key: str, value: str, environments: list[str]) -> None:
        for environment in environments:
            await self._cli_run(
                f"add env {key} ({environment})",
                ["env", "add", key, environment, "--yes"],
                cwd,
                input_text=value,
            )

    async def pull_env(self, cwd: str, env_file: str, environment: str = "") -> None:
        args = ["env", "pull", env_file, "--yes"]
        if environment:
            args.append(f"--environment={environment}")
        await self._cli_run("pull env", args, cwd)

    def remote_pull_env_command(self, project_dir: str, env_file: str) -> str:
        """Shell command that pulls production env into `env_file` on a compute instance.

        The token travels in the environment of the CLI process, never in its argv.
        """
        token = f"VERCEL_TOKEN={shlex.quote(self._token)} " if self._token else ""
        scope = f" --scope {shlex.quote(self._team)}" if self._team else ""
        return (
            f"cd {shlex.quote(project_dir)} && "
            f"{token}{self._cli} env pull {shlex.quote(env_file)} --yes{scope}"
        )
