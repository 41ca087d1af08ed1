"""Per-resource outcomes for teardown operations.

Teardown never stops at the first failure: every sub-resource is attempted
and reported, with the literal command to finish the job by hand.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

from hatchery.errors import HatcheryError
from hatchery.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Outcome:
    resource: str
    ok: bool
    error: str | None = None
    manual: str | None = None

    @classmethod
    def success(cls, resource: str) -> Outcome:
        return cls(resource=resource, ok=True)

    @classmethod
    def failure(cls, resource: str, error: str, manual: str | None = None) -> Outcome:
        return cls(resource=resource, ok=False, error=error, manual=manual)


async def capture(resource: str, operation: Awaitable[Any], manual: str | None = None) -> Outcome:
    """Await `operation` and turn a HatcheryError into a failed Outcome."""
    try:
        await operation
    except HatcheryError as e:
        logger.warning("Teardown step failed", resource=resource, error=str(e))
        return Outcome.failure(resource, str(e), manual)
    logger.info("Teardown step succeeded", resource=resource)
    return Outcome.success(resource)


@dataclass
class CleanupReport:
    subject: str
    outcomes: list[Outcome] = field(default_factory=list)
    manual_steps: list[str] = field(default_factory=list)

    def add(self, outcome: Outcome) -> Outcome:
        self.outcomes.append(outcome)
        return outcome

    @property
    def succeeded(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[Outcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def manual_commands(self) -> list[str]:
        return [o.manual for o in self.failed if o.manual] + self.manual_steps

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "ok": self.ok,
            "succeeded": [o.resource for o in self.succeeded],
            "failed": [{"resource": o.resource, "error": o.error, "manual": o.manual} for o in self.failed],
            "manual_commands": self.manual_commands(),
        }

    def render(self) -> str:
        lines = [f"Cleanup of {self.subject}: " + ("complete" if self.ok else "finished with errors")]
        if self.succeeded:
            lines += ["", "Succeeded:"] + [f"  + {o.resource}" for o in self.succeeded]
        if self.failed:
            lines += ["", "Failed:"] + [f"  - {o.resource}: {o.error}" for o in self.failed]
        manual = self.manual_commands()
        if manual:
            lines += ["", "Run manually:"] + [f"  {cmd}" for cmd in manual]
        return "\n".join(lines)
