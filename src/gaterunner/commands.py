# commands.py
from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from typing import Protocol, Sequence

from .context import ExecutionContext
from .errors import JobTimeoutError

OUTPUT_TAIL = 4000


@dataclass(frozen=True)
class ExitStatus:
    code: int
    duration: float = 0.0
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandRunner(Protocol):
    def execute(
        self,
        context: ExecutionContext,
        command: str,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExitStatus:
        ...


class SubprocessCommandRunner:
    """
    Runs a command (argv, no shell) inside an execution context.

    A command that cannot be started (not on PATH, bad cwd) reports exit
    code 127 like a shell would; a command that outlives `timeout` is killed
    and raises JobTimeoutError.
    """

    def execute(
        self,
        context: ExecutionContext,
        command: str,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExitStatus:
        workdir = (context.workdir / (cwd or ".")).resolve()
        env = os.environ.copy()
        env.update(context.env)

        started = time.monotonic()
        try:
            proc = subprocess.run(
                [command, *args],
                cwd=str(workdir),
                env=env,
                text=True,
                capture_output=True,  # so we can show output on failure
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise JobTimeoutError(
                f"command exceeded the job timeout ({timeout:.1f}s)",
                job=context.job,
                details={"cmd": " ".join([command, *args])},
            ) from e
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            return ExitStatus(code=127, duration=time.monotonic() - started, stderr=str(e))

        return ExitStatus(
            code=proc.returncode,
            duration=time.monotonic() - started,
            stdout=proc.stdout[-OUTPUT_TAIL:],
            stderr=proc.stderr[-OUTPUT_TAIL:],
        )
