"""Async subprocess execution for provider CLIs.

All CLI-backed adapters run commands through run_command(). It never uses a
shell locally; remote shell strings are passed as a single argument to ssh.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
from dataclasses import dataclass

from hatchery.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


class CommandError(Exception):
    """A command exited non-zero or timed out."""

    def __init__(self, result: CommandResult, timed_out: bool = False) -> None:
        self.result = result
        self.timed_out = timed_out
        program = result.args[0] if result.args else "command"
        if timed_out:
            message = f"{program} timed out"
        else:
            message = f"{program} exited with code {result.exit_code}"
        if result.stderr.strip():
            message += f": {result.stderr.strip()[-500:]}"
        super().__init__(message)

    @property
    def stderr(self) -> str:
        return self.result.stderr

    def stderr_tail(self, limit: int = 2000) -> str:
        return self.result.stderr[-limit:]


async def _read_stream(
    stream: asyncio.StreamReader | None, sink: list[str], echo: bool
) -> None:
    if stream is None:
        return
    while True:
        line = await stream.readline()
        if not line:
            break
        text = line.decode(errors="replace")
        sink.append(text)
        if echo:
            sys.stderr.write(text)
            sys.stderr.flush()


async def run_command(
    args: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    input_text: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    check: bool = True,
    stream_stderr: bool = False,
) -> CommandResult:
    """Run a command and capture its output.

    `env` is merged over the current environment. With check=True a
    non-zero exit raises CommandError; a timeout always raises.
    """
    merged_env = {**os.environ, **env} if env else None
    logger.debug("Running command", program=args[0], cwd=cwd)

    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=merged_env,
        stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    stdout_parts: list[str] = []
    stderr_parts: list[str] = []

    async def communicate() -> None:
        if input_text is not None and proc.stdin is not None:
            proc.stdin.write(input_text.encode())
            await proc.stdin.drain()
            proc.stdin.close()
        await asyncio.gather(
            _read_stream(proc.stdout, stdout_parts, echo=False),
            _read_stream(proc.stderr, stderr_parts, echo=stream_stderr),
        )
        await proc.wait()

    try:
        await asyncio.wait_for(communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        result = CommandResult(tuple(args), -1, "".join(stdout_parts), "".join(stderr_parts))
        logger.warning("Command timed out", program=args[0], timeout=timeout)
        raise CommandError(result, timed_out=True) from None

    result = CommandResult(
        args=tuple(args),
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout="".join(stdout_parts),
        stderr="".join(stderr_parts),
    )
    if check and not result.ok:
        raise CommandError(result)
    return result


def which(program: str) -> bool:
    """True if `program` is on PATH."""
    return shutil.which(program) is not None
