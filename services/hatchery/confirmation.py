"""
Two-phase confirmation for destructive commands.

A `--dry-run` invocation records a pending confirmation keyed by a hash of
the command and its arguments and hands back a short token. The same command
re-run with `--confirm <token>` is allowed once, no sooner than the minimum
age and no later than the TTL. The minimum age keeps an automated caller
from chaining dry-run and confirm without a human reading the summary.

Store file: {"version": 1, "confirmations": {<hash>: {...}}}. Expired
entries are pruned whenever the file is loaded.
"""

from __future__ import annotations

import hashlib
import secrets
import shlex
import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import BaseModel

from hatchery.errors import (
    AuthorizationRequiredError,
    ConfirmationExpiredError,
    ConfirmationMismatchError,
    ConfirmationNotFoundError,
    ConfirmationTooYoungError,
)
from hatchery.logging_config import get_logger
from hatchery.store.document import JsonDocumentStore

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MIN_AGE_SECONDS = 10

Clock = Callable[[], datetime]

DRY_RUN_HINT = "Run the same command with --dry-run to get a new token."


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PendingConfirmation(BaseModel):
    token: str
    created_at: datetime
    expires_at: datetime
    command: str
    summary: str
    prompt: str | None = None


@dataclass
class ConfirmationResult:
    """What the caller should do next.

    proceed=False means a dry run was recorded; print `follow_up` and stop.
    """

    proceed: bool
    token: str | None = None
    follow_up: str | None = None
    stored_prompt: str | None = None


def generate_token() -> str:
    """8 hex characters."""
    return secrets.token_hex(4)


def compute_command_hash(command: str, args: dict[str, str]) -> str:
    """First 16 hex chars of sha256("command:k1=v1&k2=v2") with keys sorted."""
    canonical = "&".join(f"{k}={args[k]}" for k in sorted(args))
    return hashlib.sha256(f"{command}:{canonical}".encode()).hexdigest()[:16]


def format_follow_up(
    command: str,
    args: dict[str, str],
    token: str,
    positional: tuple[str, ...] = (),
    flags: tuple[str, ...] = (),
) -> str:
    """The exact command line that confirms a dry run.

    Keys in `positional` are rendered as bare values, keys in `flags` as
    switches without a value. Values are shell-quoted.
    """
    parts = ["hatchery", command]
    parts += [shlex.quote(args[k]) for k in positional if k in args]
    for k, v in args.items():
        if k in positional:
            continue
        parts.append(f"--{k}" if k in flags else f"--{k} {shlex.quote(v)}")
    parts += ["--confirm", token]
    return " ".join(parts)


class ConfirmationStore:
    """Pending confirmations on disk."""

    def __init__(
        self,
        path: Path,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS,
        now: Clock = _utc_now,
    ) -> None:
        self._doc = JsonDocumentStore(path, "confirmations", empty={})
        self.ttl = timedelta(seconds=ttl_seconds)
        self.min_age = timedelta(seconds=min_age_seconds)
        self._now = now

    async def _load(self) -> tuple[dict[str, PendingConfirmation], dict[str, PendingConfirmation]]:
        """Return (live, expired) entries, rewriting the file if anything expired."""
        raw = await self._doc.load()
        now = self._now()
        live: dict[str, PendingConfirmation] = {}
        expired: dict[str, PendingConfirmation] = {}
        for key, value in raw.items():
            entry = PendingConfirmation.model_validate(value)
            if entry.expires_at <= now:
                expired[key] = entry
            else:
                live[key] = entry
        if expired:
            await self._save(live)
            logger.debug("Pruned expired confirmations", count=len(expired))
        return live, expired

    async def _save(self, entries: dict[str, PendingConfirmation]) -> None:
        await self._doc.save({k: v.model_dump(mode="json") for k, v in entries.items()})

    async def issue(
        self, command: str, args: dict[str, str], summary: str, prompt: str | None = None
    ) -> PendingConfirmation:
        """Record a pending confirmation, replacing any earlier one for the same command."""
        live, _ = await self._load()
        now = self._now()
        entry = PendingConfirmation(
            token=generate_token(),
            created_at=now,
            expires_at=now + self.ttl,
            command=command,
            summary=summary,
            prompt=prompt,
        )
        live[compute_command_hash(command, args)] = entry
        await self._save(live)
        logger.info("Confirmation issued", command=command, expires_at=entry.expires_at.isoformat())
        return entry

    async def consume(self, command: str, args: dict[str, str], token: str) -> PendingConfirmation:
        """Validate `token` for this exact command and arguments, and spend it."""
        key = compute_command_hash(command, args)
        live, expired = await self._load()

        if key in expired:
            raise ConfirmationExpiredError(
                "Confirmation token has expired.", remediation=DRY_RUN_HINT
            )
        entry = live.get(key)
        if entry is None:
            raise ConfirmationNotFoundError(
                "No pending confirmation for this command (never issued or already used).",
                remediation=DRY_RUN_HINT,
            )
        if not secrets.compare_digest(entry.token, token):
            raise ConfirmationMismatchError(
                "Confirmation token does not match.", remediation=DRY_RUN_HINT
            )
        if self._now() - entry.created_at < self.min_age:
            raise ConfirmationTooYoungError(
                f"Confirmation token must be at least {int(self.min_age.total_seconds())} "
                "seconds old so the summary can be reviewed.",
                remediation="Wait a few seconds and re-run the same --confirm command.",
            )

        del live[key]
        await self._save(live)
        logger.info("Confirmation consumed", command=command)
        return entry


async def require_confirmation(
    command: str,
    args: dict[str, str],
    summary: str,
    *,
    store: ConfirmationStore,
    dry_run: bool = False,
    confirm_token: str | None = None,
    force: bool = False,
    prompt: str | None = None,
    details: Callable[[], None] | None = None,
    is_interactive: Callable[[], bool] | None = None,
    positional: tuple[str, ...] = (),
    flags: tuple[str, ...] = (),
) -> ConfirmationResult:
    """Gate a destructive command.

    Exactly one of force / confirm_token / dry_run decides the outcome;
    with none of them the command is refused.
    """
    if force:
        interactive = is_interactive() if is_interactive else sys.stdin.isatty()
        if not interactive:
            raise AuthorizationRequiredError(
                "--force requires an interactive terminal.",
                remediation="Use --dry-run, then --confirm <token>.",
            )
        return ConfirmationResult(proceed=True)

    if confirm_token:
        entry = await store.consume(command, args, confirm_token)
        return ConfirmationResult(proceed=True, stored_prompt=entry.prompt)

    if dry_run:
        if details is not None:
            details()
        entry = await store.issue(command, args, summary, prompt)
        return ConfirmationResult(
            proceed=False,
            token=entry.token,
            follow_up=format_follow_up(command, args, entry.token, positional, flags),
        )

    raise AuthorizationRequiredError(
        "This command requires confirmation.",
        remediation="Run with --dry-run first to review what will be deleted.",
    )
