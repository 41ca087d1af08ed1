"""Checks that must pass before any provider is touched."""

from __future__ import annotations

from collections.abc import Callable

from hatchery.config import Settings
from hatchery.errors import ConfigurationError
from hatchery.providers.process import which as default_which


def required_clis(settings: Settings) -> list[str]:
    return ["git", settings.hosting.cli, settings.backend.cli[0]]


def missing_credentials(settings: Settings) -> list[str]:
    missing = []
    if not settings.github.resolved_token:
        missing.append("GitHub token (HATCHERY_GITHUB__TOKEN, GH_TOKEN or GITHUB_TOKEN)")
    if not settings.backend.access_token:
        missing.append("backend access token (HATCHERY_BACKEND__ACCESS_TOKEN)")
    if not settings.hosting.token:
        missing.append("hosting token (HATCHERY_HOSTING__TOKEN)")
    return missing


def check_prerequisites(
    settings: Settings, which: Callable[[str], bool] = default_which
) -> None:
    """Raise ConfigurationError listing every missing credential and CLI."""
    missing = missing_credentials(settings)
    missing += [f"`{cli}` on PATH" for cli in required_clis(settings) if not which(cli)]
    if missing:
        raise ConfigurationError(
            "Prerequisites not met: " + "; ".join(missing), missing=missing
        )
