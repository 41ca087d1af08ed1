"""
Branch protection from a project's merge policy.

The policy lives in `harness.json` at the project root; its `mergePolicy.high`
entry names the required status checks and whether a human review is needed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiofiles

from hatchery.errors import ConfigurationError
from hatchery.logging_config import get_logger
from hatchery.providers.github import detect_origin
from hatchery.providers.protocol import RepositoryHost
from hatchery.store import ProjectStore

logger = get_logger(__name__)

POLICY_FILE = "harness.json"


@dataclass
class HardenPlan:
    owner: str
    repo: str
    branch: str
    strict: bool
    required_checks: list[str] = field(default_factory=list)
    requires_review: bool = False

    @property
    def protection(self) -> dict[str, Any]:
        return build_protection_payload(self.required_checks, self.requires_review, self.strict)

    def describe(self) -> str:
        lines = [
            f"Branch protection for {self.owner}/{self.repo} ({self.branch}):",
            f"  Required checks: {', '.join(self.required_checks) or '(none)'}",
            f"  Human review: {'required' if self.requires_review else 'not required'}",
            f"  Enforce on admins: {'yes' if self.strict else 'no'}",
        ]
        return "\n".join(lines)


def build_protection_payload(
    required_checks: list[str], requires_review: bool, strict: bool
) -> dict[str, Any]:
    return {
        "required_status_checks": {"strict": True, "contexts": required_checks},
        "enforce_admins": strict,
        "restrictions": None,
        "required_pull_request_reviews": (
            {"required_approving_review_count": 1, "dismiss_stale_reviews": True}
            if requires_review
            else None
        ),
    }


async def load_merge_policy(project_root: Path) -> tuple[list[str], bool]:
    """Read (required checks, requires human review) from the policy file."""
    policy_path = project_root / POLICY_FILE
    try:
        async with aiofiles.open(policy_path) as f:
            harness = json.loads(await f.read())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Could not read {policy_path}. Run this from a project root that has a {POLICY_FILE}.",
            missing=[str(policy_path)],
        ) from e

    high = (harness.get("mergePolicy") or {}).get("high")
    if not high:
        raise ConfigurationError(f"No mergePolicy.high found in {policy_path}.")
    return list(high.get("requiredChecks") or []), bool(high.get("requiresHumanReview"))


async def plan_hardening(
    project_root: Path,
    branch: str,
    strict: bool,
    projects: ProjectStore,
    project: str | None = None,
) -> HardenPlan:
    """Work out which repository to protect and with what rules."""
    required_checks, requires_review = await load_merge_policy(project_root)

    if project:
        record = await projects.require(project)
        owner, repo = record.repository.owner, record.repository.repo
    else:
        origin = await detect_origin(str(project_root))
        if origin is None:
            raise ConfigurationError(
                "Could not detect GitHub owner/repo from the git remote. Use --project."
            )
        owner, repo = origin

    return HardenPlan(
        owner=owner,
        repo=repo,
        branch=branch,
        strict=strict,
        required_checks=required_checks,
        requires_review=requires_review,
    )


async def apply_hardening(plan: HardenPlan, repository: RepositoryHost) -> None:
    await repository.set_branch_protection(plan.owner, plan.repo, plan.branch, plan.protection)
    logger.info(
        "Branch hardened",
        repo=f"{plan.owner}/{plan.repo}",
        branch=plan.branch,
        checks=len(plan.required_checks),
    )
