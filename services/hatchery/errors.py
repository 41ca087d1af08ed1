"""
Error taxonomy for Hatchery.

Every failure a command can surface is a HatcheryError subclass. Adapters
translate provider-specific failures (CLI exit codes, HTTP status errors)
into ProviderError so orchestration code never handles raw transport errors.
"""

from __future__ import annotations

from typing import Any


class HatcheryError(Exception):
    """Base exception for all Hatchery errors."""


class ConfigurationError(HatcheryError):
    """A credential or prerequisite is missing. Raised before any provider call."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        super().__init__(message)


class NameConflictError(HatcheryError):
    """The desired name already exists and the strategy is `fail`."""

    def __init__(self, name: str, provider: str = "") -> None:
        self.name = name
        self.provider = provider
        where = f" on {provider}" if provider else ""
        super().__init__(
            f'Name "{name}" already exists{where}. '
            "Use --conflict-strategy=suffix to auto-rename."
        )


class ProviderError(HatcheryError):
    """A specific provider call failed."""

    def __init__(self, provider: str, step: str, detail: str = "") -> None:
        self.provider = provider
        self.step = step
        self.detail = detail
        message = f"{provider}: {step} failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class PollTimeoutError(HatcheryError):
    """A readiness poll exceeded its bound."""

    def __init__(self, resource: str, elapsed: float) -> None:
        self.resource = resource
        self.elapsed = elapsed
        super().__init__(f"{resource} did not become ready within {elapsed:.0f}s")


class RecordNotFoundError(HatcheryError):
    """A record is absent from a local store."""

    def __init__(self, kind: str, name: str, hint: str = "") -> None:
        self.kind = kind
        self.name = name
        self.hint = hint
        super().__init__(f"{kind} not found: {name}")


class StoreCorruptError(HatcheryError):
    """A store file exists but cannot be parsed. Never repaired automatically."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Store file {path} is unreadable: {reason}")


class LifecycleError(HatcheryError):
    """A lifecycle operation was refused (e.g. project still has instances)."""

    def __init__(self, message: str, remediation: list[str] | None = None) -> None:
        self.remediation = remediation or []
        super().__init__(message)


class ProvisioningError(HatcheryError):
    """A provisioning step failed. Carries the outputs of earlier steps."""

    def __init__(self, step: str, cause: Exception, partial: dict[str, Any]) -> None:
        self.step = step
        self.cause = cause
        self.partial = partial
        super().__init__(f"Provisioning failed at step '{step}': {cause}")


# --- Authorization ---


class AuthorizationRequiredError(HatcheryError):
    """A destructive command was not (validly) confirmed."""

    def __init__(self, message: str, remediation: str = "") -> None:
        self.remediation = remediation
        super().__init__(message)


class ConfirmationNotFoundError(AuthorizationRequiredError):
    """No pending confirmation for this command (never issued or already used)."""


class ConfirmationMismatchError(AuthorizationRequiredError):
    """The supplied token does not match the pending confirmation."""


class ConfirmationExpiredError(AuthorizationRequiredError):
    """The pending confirmation outlived its TTL."""


class ConfirmationTooYoungError(AuthorizationRequiredError):
    """The confirmation was presented before the minimum age elapsed."""
