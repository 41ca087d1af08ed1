"""Tests for the compute host and SSH adapters."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from hatchery.errors import ProviderError
from hatchery.providers.compute import ComputeClient
from hatchery.providers.process import CommandError, CommandResult
from hatchery.providers.ssh import SSHShell


def result(exit_code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(args=("ssh",), exit_code=exit_code, stdout=stdout, stderr=stderr)


class TestComputeClient:
    async def test_create_instance_from_json(self) -> None:
        run = AsyncMock(return_value=result(stdout=json.dumps({"vm_name": "brave-otter", "ssh_dest": "brave-otter.exe.xyz"})))
        with patch("hatchery.providers.compute.run_command", run):
            instance = await ComputeClient().create_instance()

        assert instance.name == "brave-otter"
        assert instance.ssh_host == "brave-otter.exe.xyz"
        assert run.call_args.args[0][-3:] == ["exe.dev", "new", "--json"]

    async def test_create_instance_from_text(self) -> None:
        run = AsyncMock(return_value=result(stdout="Created VM: brave-otter\n"))
        with patch("hatchery.providers.compute.run_command", run):
            instance = await ComputeClient().create_instance()
        assert instance.ssh_host == "brave-otter.exe.xyz"

    async def test_create_instance_unparseable(self) -> None:
        run = AsyncMock(return_value=result(stdout="???"))
        with patch("hatchery.providers.compute.run_command", run):
            with pytest.raises(ProviderError, match="unparseable"):
                await ComputeClient().create_instance()

    async def test_delete_absent_instance_is_ok(self) -> None:
        run = AsyncMock(return_value=result(1, stderr="vm brave-otter not found"))
        with patch("hatchery.providers.compute.run_command", run):
            await ComputeClient().delete_instance("brave-otter")

    async def test_delete_failure(self) -> None:
        run = AsyncMock(return_value=result(1, stderr="internal error"))
        with patch("hatchery.providers.compute.run_command", run):
            with pytest.raises(ProviderError):
                await ComputeClient().delete_instance("brave-otter")

    async def test_check_access_permission_denied(self) -> None:
        run = AsyncMock(return_value=result(255, stderr="Permission denied (publickey)."))
        with patch("hatchery.providers.compute.run_command", run):
            access = await ComputeClient().check_access()
        assert not access.available
        assert "SSH key not authorized" in access.error
        assert "BatchMode=yes" in run.call_args.args[0]

    async def test_list_instances_skips_header(self) -> None:
        run = AsyncMock(return_value=result(stdout="NAME STATUS\n---- ------\nbrave-otter running\n"))
        with patch("hatchery.providers.compute.run_command", run):
            listings = await ComputeClient().list_instances()
        assert [(i.name, i.status) for i in listings] == [("brave-otter", "running")]

    def test_manual_commands(self) -> None:
        client = ComputeClient(control_host="exe.dev", domain="exe.xyz")
        assert client.manual_delete_command("vm") == "ssh exe.dev rm vm"
        assert client.instance_url("vm") == "https://vm.exe.xyz"


class TestSSHShell:
    async def test_exec_failure_carries_stderr(self) -> None:
        run = AsyncMock(side_effect=CommandError(result(1, stderr="no such file")))
        with patch("hatchery.providers.ssh.run_command", run):
            with pytest.raises(ProviderError) as exc:
                await SSHShell().exec("vm.exe.xyz", "cat nope")
        assert exc.value.detail == "no such file"

    async def test_exec_timeout(self) -> None:
        run = AsyncMock(side_effect=CommandError(result(-1), timed_out=True))
        with patch("hatchery.providers.ssh.run_command", run):
            with pytest.raises(ProviderError) as exc:
                await SSHShell().exec("vm.exe.xyz", "sleep 999", timeout=1)
        assert exc.value.detail == "timed out"

    async def test_is_reachable(self) -> None:
        with patch("hatchery.providers.ssh.run_command", AsyncMock(return_value=result(stdout="ok\n"))):
            assert await SSHShell().is_reachable("vm.exe.xyz")
        with patch("hatchery.providers.ssh.run_command", AsyncMock(return_value=result(255))):
            assert not await SSHShell().is_reachable("vm.exe.xyz")
