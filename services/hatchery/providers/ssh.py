"""SSH/scp access to compute instances."""

from __future__ import annotations

from hatchery.errors import ProviderError
from hatchery.logging_config import get_logger
from hatchery.providers.process import CommandError, run_command
from hatchery.providers.protocol import ShellResult

logger = get_logger(__name__)

PROVIDER = "ssh"

SSH_OPTIONS = [
    "-o", "StrictHostKeyChecking=accept-new",
    "-o", "ConnectTimeout=10",
    "-o", "ServerAliveInterval=30",
    "-o", "ServerAliveCountMax=10",
]  # fmt: skip

REACHABILITY_OPTIONS = [
    "-o", "StrictHostKeyChecking=accept-new",
    "-o", "BatchMode=yes",
    "-o", "ConnectTimeout=5",
]  # fmt: skip


class SSHShell:
    """Runs commands on remote hosts with the system ssh client."""

    def __init__(self, ssh: str = "ssh", scp: str = "scp") -> None:
        self._ssh = ssh
        self._scp = scp

    async def exec(
        self, host: str, command: str, timeout: float = 60.0, stream_stderr: bool = False
    ) -> ShellResult:
        """Run `command` through the remote login shell. Non-zero exit raises."""
        try:
            result = await run_command(
                [self._ssh, *SSH_OPTIONS, host, command],
                timeout=timeout,
                stream_stderr=stream_stderr,
            )
        except CommandError as e:
            detail = "timed out" if e.timed_out else e.stderr_tail()
            raise ProviderError(PROVIDER, f"exec on {host}", detail) from e
        return ShellResult(stdout=result.stdout, stderr=result.stderr)

    async def copy_to(self, local_path: str, host: str, remote_path: str) -> None:
        try:
            await run_command(
                [self._scp, *SSH_OPTIONS, local_path, f"{host}:{remote_path}"], timeout=120
            )
        except CommandError as e:
            raise ProviderError(PROVIDER, f"copy {local_path} to {host}", str(e)) from e

    async def is_reachable(self, host: str) -> bool:
        try:
            result = await run_command(
                [self._ssh, *REACHABILITY_OPTIONS, host, "echo ok"], timeout=15, check=False
            )
        except CommandError:
            logger.debug("Reachability check timed out", host=host)
            return False
        return result.ok and "ok" in result.stdout
