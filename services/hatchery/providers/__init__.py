"""Provider adapters and the bundle the workflows are driven with."""

from dataclasses import dataclass

from hatchery.config import Settings
from hatchery.providers.backend import BackendClient
from hatchery.providers.compute import ComputeClient
from hatchery.providers.github import GitHubClient
from hatchery.providers.hosting import HostingClient
from hatchery.providers.protocol import (
    BackendProvider,
    ComputeProvider,
    HostingProvider,
    RemoteShell,
    RepositoryHost,
)
from hatchery.providers.ssh import SSHShell


@dataclass
class Providers:
    """One adapter per external system."""

    repository: RepositoryHost
    backend: BackendProvider
    hosting: HostingProvider
    compute: ComputeProvider
    shell: RemoteShell


def build_providers(settings: Settings) -> Providers:
    timeout = settings.pipeline.http_timeout_seconds
    return Providers(
        repository=GitHubClient(
            token=settings.github.resolved_token,
            api_url=settings.github.api_url,
            timeout=timeout,
        ),
        backend=BackendClient(
            access_token=settings.backend.access_token,
            api_url=settings.backend.api_url,
            cloud_domain=settings.backend.cloud_domain,
            site_domain=settings.backend.site_domain,
            cli=settings.backend.cli,
            deploy_key_name=settings.backend.deploy_key_name,
            timeout=timeout,
        ),
        hosting=HostingClient(
            token=settings.hosting.token,
            team=settings.hosting.team,
            api_url=settings.hosting.api_url,
            cli=settings.hosting.cli,
            domain=settings.hosting.domain,
            timeout=timeout,
        ),
        compute=ComputeClient(
            control_host=settings.compute.control_host,
            domain=settings.compute.domain,
        ),
        shell=SSHShell(),
    )


__all__ = ["Providers", "build_providers"]
