"""Backend-as-a-service adapter.

Project lifecycle goes through the management HTTP API. Schema/function
deploys go through the backend CLI with a deploy key, either locally or as a
shell command run on a compute instance. A feature sub-environment is its own
backend project, created and deleted through the same management API.
"""

from __future__ import annotations

import shlex
from typing import Any

import httpx

from hatchery.errors import ProviderError
from hatchery.logging_config import get_logger
from hatchery.providers.process import CommandError, run_command
from hatchery.providers.protocol import BackendProject

logger = get_logger(__name__)

PROVIDER = "backend"


def _raise_for_status(resp: httpx.Response, step: str) -> None:
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise ProviderError(PROVIDER, step, f"{resp.status_code} {resp.text[:300]}") from e


class BackendClient:
    """Management API and deploy CLI behind one interface."""

    def __init__(
        self,
        access_token: str,
        api_url: str = "https://api.convex.dev/v1",
        *,
        cloud_domain: str = "convex.cloud",
        site_domain: str = "convex.site",
        cli: list[str] | None = None,
        deploy_key_name: str = "hatchery-deploy-key",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._access_token = access_token
        self._api_url = api_url.rstrip("/")
        self._cloud_domain = cloud_domain
        self._site_domain = site_domain
        self._cli = cli or ["npx", "convex"]
        self._deploy_key_name = deploy_key_name
        self._timeout = timeout
        self._transport = transport

    def _client(self, auth_scheme: str = "Bearer") -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"{auth_scheme} {self._access_token}"},
        )

    async def _request(
        self, step: str, method: str, url: str, auth_scheme: str = "Bearer", **kwargs
    ) -> httpx.Response:
        """Send one request; transport failures surface as ProviderError."""
        try:
            async with self._client(auth_scheme) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER, step, f"{type(e).__name__}: {e}") from e

    # --- Management API ---

    async def get_team_id(self) -> str:
        resp = await self._request("validate access token", "GET", f"{self._api_url}/token_details")
        _raise_for_status(resp, "validate access token")
        return str(resp.json()["teamId"])

    async def list_projects(self, team_id: str) -> list[dict[str, Any]]:
        resp = await self._request(
            "list projects", "GET", f"{self._api_url}/teams/{team_id}/list_projects"
        )
        _raise_for_status(resp, "list projects")
        return resp.json()

    async def project_exists(self, team_id: str, name: str) -> bool:
        projects = await self.list_projects(team_id)
        return any(p["name"].lower() == name.lower() for p in projects)

    async def create_project(self, team_id: str, name: str) -> BackendProject:
        resp = await self._request(
            "create project",
            "POST",
            f"{self._api_url}/teams/{team_id}/create_project",
            json={"projectName": name, "deploymentType": "prod"},
        )
        _raise_for_status(resp, "create project")

        data = resp.json()
        logger.info(
            "Created backend project",
            name=name,
            deployment=data["deploymentName"],
        )
        return BackendProject(
            project_id=str(data["projectId"]),
            deployment_name=data["deploymentName"],
            deployment_url=data["deploymentUrl"],
        )

    async def create_deploy_key(self, deployment_name: str) -> str:
        resp = await self._request(
            "create deploy key",
            "POST",
            f"{self._api_url}/deployments/{deployment_name}/create_deploy_key",
            json={"name": self._deploy_key_name},
        )
        _raise_for_status(resp, "create deploy key")
        return resp.json()["deployKey"]

    async def set_env_vars(self, deployment_name: str, env: dict[str, str]) -> None:
        """Set all variables on a deployment in a single bulk call."""
        url = f"https://{deployment_name}.{self._cloud_domain}/api/v1/update_environment_variables"
        changes = [{"name": k, "value": v} for k, v in env.items()]
        resp = await self._request(
            "set environment variables",
            "POST",
            url,
            auth_scheme="Convex",
            json={"changes": changes},
        )
        _raise_for_status(resp, "set environment variables")
        logger.info("Backend env vars set", deployment=deployment_name, keys=sorted(env))

    async def find_project(self, team_id: str, name: str) -> BackendProject | None:
        """An existing project and its production deployment, looked up by name."""
        projects = await self.list_projects(team_id)
        match = next((p for p in projects if p["name"].lower() == name.lower()), None)
        if match is None:
            return None

        project_id = str(match["id"])
        resp = await self._request(
            "list deployments", "GET", f"{self._api_url}/projects/{project_id}/list_deployments"
        )
        _raise_for_status(resp, "list deployments")
        prod = next((d for d in resp.json() if d.get("deploymentType") == "prod"), None)
        if prod is None:
            raise ProviderError(PROVIDER, "find project", f"{name} has no production deployment")
        return BackendProject(
            project_id=project_id,
            deployment_name=prod["name"],
            deployment_url=f"https://{prod['name']}.{self._cloud_domain}",
        )

    async def delete_project(self, project_id: str) -> None:
        resp = await self._request(
            "delete project", "POST", f"{self._api_url}/projects/{project_id}/delete"
        )
        if resp.status_code == 404:
            logger.info("Backend project already absent", project_id=project_id)
            return
        _raise_for_status(resp, "delete project")

    async def delete_project_by_slug(self, slug: str) -> None:
        """Look the project up by name and delete it. Absent counts as deleted."""
        team_id = await self.get_team_id()
        projects = await self.list_projects(team_id)
        match = next((p for p in projects if p["name"].lower() == slug.lower()), None)
        if match is None:
            logger.info("Backend project already absent", slug=slug)
            return
        await self.delete_project(str(match["id"]))
        logger.info("Deleted backend project", slug=slug)

    def site_url(self, deployment_url: str) -> str:
        """HTTP-actions URL for a deployment."""
        return deployment_url.replace(f".{self._cloud_domain}", f".{self._site_domain}")

    # --- Deploy CLI ---

    async def deploy(self, cwd: str, deploy_key: str) -> None:
        try:
            await run_command(
                [*self._cli, "deploy", "--yes"],
                cwd=cwd,
                env={"CONVEX_DEPLOY_KEY": deploy_key},
                timeout=600,
            )
        except CommandError as e:
            raise ProviderError(PROVIDER, "deploy schema and functions", str(e)) from e

    def remote_deploy_command(self, project_dir: str, deploy_key: str) -> str:
        """Shell command that deploys `project_dir` with `deploy_key` on a compute instance."""
        cli = " ".join(shlex.quote(part) for part in self._cli)
        return (
            f"cd {shlex.quote(project_dir)} && "
            f"CONVEX_DEPLOY_KEY={shlex.quote(deploy_key)} {cli} deploy --yes"
        )
