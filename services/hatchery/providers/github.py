"""GitHub adapter for repository provisioning and feature-branch housekeeping.

Repository management goes through the GitHub REST API; pushing the local
working copy goes through git with a token credential helper so the token
never lands in .git/config.
"""

from __future__ import annotations

import httpx

from hatchery.errors import ProviderError
from hatchery.logging_config import get_logger
from hatchery.providers.process import CommandError, run_command
from hatchery.providers.protocol import CheckRun, CreatedRepository, PullRequestStatus

logger = get_logger(__name__)

DEFAULT_GITHUB_API_URL = "https://api.github.com"
PROVIDER = "github"

# Reads the token from the environment at push time
CREDENTIAL_HELPER = (
    "credential.helper=!f() { echo username=x-access-token; echo password=$GITHUB_TOKEN; }; f"
)


def _raise_for_status(resp: httpx.Response, step: str) -> None:
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise ProviderError(PROVIDER, step, f"{resp.status_code} {resp.text[:300]}") from e


class GitHubClient:
    """Typed wrapper around the GitHub REST API and git push."""

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_GITHUB_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._api_url = (api_url or DEFAULT_GITHUB_API_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def _request(self, step: str, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one request; transport failures surface as ProviderError."""
        try:
            async with self._client() as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER, step, f"{type(e).__name__}: {e}") from e

    async def get_authenticated_user(self) -> str:
        resp = await self._request("resolve authenticated user", "GET", "/user")
        _raise_for_status(resp, "resolve authenticated user")
        return resp.json()["login"]

    async def repo_exists(self, owner: str, repo: str) -> bool:
        resp = await self._request("check repository", "GET", f"/repos/{owner}/{repo}")
        if resp.status_code == 404:
            return False
        _raise_for_status(resp, "check repository")
        return True

    async def get_default_branch(self, owner: str, repo: str) -> str | None:
        """Get the default branch name. Returns None if the repo isn't accessible."""
        resp = await self._request("get default branch", "GET", f"/repos/{owner}/{repo}")
        if resp.status_code == 404:
            return None
        _raise_for_status(resp, "get default branch")
        return resp.json()["default_branch"]

    async def create_repo(self, name: str, org: str = "", private: bool = True) -> CreatedRepository:
        path = f"/orgs/{org}/repos" if org else "/user/repos"
        resp = await self._request(
            "create repository", "POST", path, json={"name": name, "private": private}
        )
        _raise_for_status(resp, "create repository")

        data = resp.json()
        logger.info("Created repository", full_name=data["full_name"])
        return CreatedRepository(
            url=data["html_url"],
            owner=data["owner"]["login"],
            repo=data["name"],
            clone_url=data.get("clone_url", ""),
        )

    async def push_local(self, cwd: str, repository: CreatedRepository, branch: str) -> None:
        """Point `origin` at the new repository and push the local branch."""
        remote = repository.clone_url or f"{repository.url}.git"
        env = {"GITHUB_TOKEN": self._token, "GH_TOKEN": self._token}
        try:
            existing = await run_command(["git", "remote"], cwd=cwd)
            verb = "set-url" if "origin" in existing.stdout.split() else "add"
            await run_command(["git", "remote", verb, "origin", remote], cwd=cwd)
            await run_command(
                ["git", "-c", CREDENTIAL_HELPER, "push", "-u", "origin", branch],
                cwd=cwd,
                env=env,
                timeout=300,
            )
        except CommandError as e:
            raise ProviderError(PROVIDER, "push local repository", str(e)) from e

    async def push(self, cwd: str, branch: str) -> None:
        env = {"GITHUB_TOKEN": self._token, "GH_TOKEN": self._token}
        try:
            await run_command(
                ["git", "-c", CREDENTIAL_HELPER, "push", "origin", branch],
                cwd=cwd,
                env=env,
                timeout=300,
            )
        except CommandError as e:
            raise ProviderError(PROVIDER, "push", str(e)) from e

    async def delete_branch(self, owner: str, repo: str, branch: str) -> None:
        """Delete a remote branch. A branch that is already gone is not an error."""
        resp = await self._request(
            f"delete branch {branch}", "DELETE", f"/repos/{owner}/{repo}/git/refs/heads/{branch}"
        )
        if resp.status_code in (404, 422):
            logger.info("Remote branch already absent", repo=f"{owner}/{repo}", branch=branch)
            return
        _raise_for_status(resp, f"delete branch {branch}")

    async def find_pull_request(
        self, owner: str, repo: str, branch: str
    ) -> PullRequestStatus | None:
        """Most recent pull request whose head is `branch`, with its check runs."""
        resp = await self._request(
            "list pull requests",
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"head": f"{owner}:{branch}", "state": "all", "per_page": 1},
        )
        _raise_for_status(resp, "list pull requests")
        pulls = resp.json()
        if not pulls:
            return None

        pr = pulls[0]
        head_sha = pr["head"]["sha"]
        checks_resp = await self._request(
            "list check runs", "GET", f"/repos/{owner}/{repo}/commits/{head_sha}/check-runs"
        )
        _raise_for_status(checks_resp, "list check runs")

        checks = [
            CheckRun(
                name=run.get("name", ""),
                status=run.get("status", ""),
                conclusion=run.get("conclusion") or "",
            )
            for run in checks_resp.json().get("check_runs", [])
        ]
        state = "merged" if pr.get("merged_at") else pr["state"]
        return PullRequestStatus(
            number=pr["number"],
            title=pr["title"],
            url=pr["html_url"],
            state=state,
            head_sha=head_sha,
            checks=checks,
        )

    async def set_branch_protection(
        self, owner: str, repo: str, branch: str, protection: dict
    ) -> None:
        resp = await self._request(
            f"protect branch {branch}",
            "PUT",
            f"/repos/{owner}/{repo}/branches/{branch}/protection",
            json=protection,
        )
        _raise_for_status(resp, f"protect branch {branch}")
        logger.info("Branch protection applied", repo=f"{owner}/{repo}", branch=branch)


def parse_repo_url(repo_url: str) -> tuple[str, str] | None:
    """Parse a GitHub repo URL into (owner, repo).

    Supports:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - git@github.com:owner/repo.git

    Returns None if the URL can't be parsed.
    """
    url = repo_url.strip()

    # SSH format: git@github.com:owner/repo.git
    if url.startswith("git@"):
        try:
            _, path = url.split(":", 1)
            path = path.removesuffix(".git")
            parts = path.split("/")
            if len(parts) == 2:
                return parts[0], parts[1]
        except ValueError:
            pass
        return None

    # HTTPS format: https://github.com/owner/repo[.git]
    url = url.removesuffix(".git")
    for prefix in ("https://github.com/", "http://github.com/"):
        if url.startswith(prefix):
            path = url.removeprefix(prefix)
            parts = path.split("/")
            if len(parts) >= 2:
                return parts[0], parts[1]
            return None

    return None


async def detect_origin(cwd: str) -> tuple[str, str] | None:
    """Owner/repo of the `origin` remote of a local working copy."""
    result = await run_command(["git", "remote", "get-url", "origin"], cwd=cwd, check=False)
    if not result.ok:
        return None
    return parse_repo_url(result.stdout)
