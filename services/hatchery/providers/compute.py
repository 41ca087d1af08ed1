"""Compute host adapter.

Instances are managed by running commands on the compute control host over
SSH (`ssh <control host> new --json`, `rm`, `share port`, `list`).
"""

from __future__ import annotations

import json
import re

from hatchery.errors import ProviderError
from hatchery.logging_config import get_logger
from hatchery.providers.process import CommandError, run_command
from hatchery.providers.protocol import AccessCheck, ComputeInstance, ComputeListing

logger = get_logger(__name__)

PROVIDER = "compute"

_TEXT_NAME_RE = re.compile(r"(?:vm_name|name|VM)[:\s]+[\"']?([a-z]+-[a-z]+)[\"']?", re.IGNORECASE)


class ComputeClient:
    """Instance management on the compute control host."""

    def __init__(self, control_host: str = "exe.dev", domain: str = "exe.xyz", ssh: str = "ssh") -> None:
        self.control_host = control_host
        self._domain = domain
        self._ssh = ssh

    def _args(self, *command: str, connect_timeout: int = 10) -> list[str]:
        return [
            self._ssh,
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={connect_timeout}",
            self.control_host,
            *command,
        ]  # fmt: skip

    async def _run(self, step: str, *command: str, connect_timeout: int = 10) -> str:
        try:
            result = await run_command(
                self._args(*command, connect_timeout=connect_timeout), timeout=90
            )
        except CommandError as e:
            raise ProviderError(PROVIDER, step, str(e)) from e
        return result.stdout

    def manual_delete_command(self, name: str) -> str:
        return f"ssh {self.control_host} rm {name}"

    def manual_share_command(self, name: str, port: int) -> str:
        return f"ssh {self.control_host} share port {name} {port}"

    def instance_url(self, name: str) -> str:
        return f"https://{name}.{self._domain}"

    async def check_access(self) -> AccessCheck:
        args = self._args("help")
        args[1:1] = ["-o", "BatchMode=yes"]
        try:
            result = await run_command(args, timeout=30, check=False)
        except CommandError:
            return AccessCheck(False, f"Timed out connecting to {self.control_host}.")
        if result.ok:
            return AccessCheck(True)

        stderr = result.stderr
        if "Permission denied" in stderr:
            return AccessCheck(
                False, f"SSH key not authorized. Add your SSH public key to {self.control_host}."
            )
        if "Could not resolve hostname" in stderr or "Connection refused" in stderr:
            return AccessCheck(
                False, f"Cannot connect to {self.control_host}. Check your network connection."
            )
        return AccessCheck(False, f"SSH connection failed: {stderr.strip()}")

    async def create_instance(self) -> ComputeInstance:
        output = (await self._run("create instance", "new", "--json", connect_timeout=30)).strip()
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            match = _TEXT_NAME_RE.search(output)
            if not match:
                raise ProviderError(PROVIDER, "create instance", f"unparseable output: {output}") from None
            name = match.group(1)
            return ComputeInstance(name=name, ssh_host=f"{name}.{self._domain}")

        name = data.get("vm_name") or data.get("name")
        if not name:
            raise ProviderError(PROVIDER, "create instance", "response has no vm_name")
        ssh_host = data.get("ssh_dest") or f"{name}.{self._domain}"
        logger.info("Created compute instance", name=name, ssh_host=ssh_host)
        return ComputeInstance(name=name, ssh_host=ssh_host)

    async def delete_instance(self, name: str) -> None:
        try:
            result = await run_command(self._args("rm", name), timeout=90, check=False)
        except CommandError as e:
            raise ProviderError(PROVIDER, f"delete instance {name}", str(e)) from e
        if result.ok:
            logger.info("Deleted compute instance", name=name)
            return
        if "not found" in result.output.lower():
            logger.info("Compute instance already absent", name=name)
            return
        raise ProviderError(PROVIDER, f"delete instance {name}", result.stderr.strip())

    async def share_port(self, name: str, port: int) -> None:
        await self._run(f"share port {port}", "share", "port", name, str(port))

    async def list_instances(self) -> list[ComputeListing]:
        output = await self._run("list instances", "list")
        listings = []
        for line in output.splitlines():
            parts = line.split()
            if not parts:
                continue
            lowered = line.lower()
            if "name" in lowered and "status" in lowered:
                continue
            if parts[0].startswith(("-", "=")):
                continue
            listings.append(ComputeListing(name=parts[0], status=parts[1] if len(parts) > 1 else "unknown"))
        return listings
