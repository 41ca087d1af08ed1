"""Naming conflict resolution and generated secrets.

Each provider has its own namespace, so resolve() is called once per
provider with that provider's existence check. A resolved name from one
provider is never assumed to be free on another.
"""

from __future__ import annotations

import base64
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from hatchery.config import ConflictStrategy
from hatchery.errors import NameConflictError
from hatchery.logging_config import get_logger

logger = get_logger(__name__)

ExistsCheck = Callable[[str], Awaitable[bool]]

@dataclass(frozen=True)
class ResolvedName:
    """Outcome of a conflict check against one provider."""

    name: str
    original: str

    @property
    def was_renamed(self) -> bool:
        return self.name != self.original


def generate_unique_suffix() -> str:
    """Six lowercase hex characters; safe in every provider's namespace."""
    return secrets.token_hex(3)


def append_unique_suffix(name: str) -> str:
    return f"{name}-{generate_unique_suffix()}"


async def resolve(
    desired: str,
    exists: ExistsCheck,
    strategy: ConflictStrategy,
    provider: str = "",
) -> ResolvedName:
    """Return a name that is free on the provider behind `exists`.

    With FAIL a taken name raises NameConflictError. With SUFFIX a random
    suffix is appended; the candidate is checked and redrawn at most once,
    so resolution always terminates.
    """
    if not await exists(desired):
        return ResolvedName(name=desired, original=desired)

    if strategy == ConflictStrategy.FAIL:
        raise NameConflictError(desired, provider)

    candidate = append_unique_suffix(desired)
    if await exists(candidate):
        candidate = append_unique_suffix(desired)

    logger.warning(
        "Name already taken, using suffixed name",
        provider=provider,
        desired=desired,
        resolved=candidate,
    )
    return ResolvedName(name=candidate, original=desired)


def generate_secret() -> str:
    """32 random bytes, base64 encoded (auth secrets)."""
    return base64.b64encode(secrets.token_bytes(32)).decode()

