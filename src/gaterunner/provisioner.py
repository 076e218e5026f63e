# provisioner.py
from __future__ import annotations

import re
from typing import Protocol

from .commands import CommandRunner, SubprocessCommandRunner
from .context import ExecutionContext
from .errors import TOOL_HINTS, ProvisionError
from .model import ToolchainSpec

# stable | beta | nightly, optionally dated (nightly-2024-01-31), or a release (1.75 / 1.75.0)
_CHANNEL_RE = re.compile(
    r"^(?:(?:stable|beta|nightly)(?:-\d{4}-\d{2}-\d{2})?|\d+\.\d+(?:\.\d+)?)$"
)
_COMPONENT_RE = re.compile(r"^[a-z][a-z0-9_-]*$")


class ToolchainProvisioner(Protocol):
    def provision(
        self,
        spec: ToolchainSpec,
        context: ExecutionContext,
        *,
        timeout: float | None = None,
    ) -> None:
        ...


def validate_spec(spec: ToolchainSpec) -> None:
    if not _CHANNEL_RE.match(spec.channel):
        raise ProvisionError(
            f"unknown toolchain channel {spec.channel!r}",
            details={"toolchain": spec.name},
        )
    bad = [c for c in spec.components if not _COMPONENT_RE.match(c)]
    if bad:
        raise ProvisionError(f"invalid component name(s): {bad}", details={"toolchain": spec.name})


class RustupProvisioner:
    """
    Installs a rust channel (plus components) with rustup and selects it for
    the job by exporting RUSTUP_TOOLCHAIN into the context environment.

    Idempotent per context: a spec already provisioned in that context is a no-op.
    """

    def __init__(self, runner: CommandRunner | None = None, *, rustup: str = "rustup"):
        self.runner = runner or SubprocessCommandRunner()
        self.rustup = rustup

    def provision(
        self,
        spec: ToolchainSpec,
        context: ExecutionContext,
        *,
        timeout: float | None = None,
    ) -> None:
        if spec.name != "rust":
            raise ProvisionError(f"unsupported toolchain {spec.name!r}", job=context.job)
        validate_spec(spec)

        if spec in context.provisioned:
            context.env["RUSTUP_TOOLCHAIN"] = spec.channel
            return

        self._rustup(context, ["toolchain", "install", spec.channel, "--profile", "minimal"], timeout)
        if spec.components:
            self._rustup(
                context,
                ["component", "add", *spec.components, "--toolchain", spec.channel],
                timeout,
            )

        context.env["RUSTUP_TOOLCHAIN"] = spec.channel
        context.provisioned.add(spec)

    def _rustup(self, context: ExecutionContext, args: list[str], timeout: float | None) -> None:
        status = self.runner.execute(context, self.rustup, args, timeout=timeout)
        if status.code == 127:
            raise ProvisionError(
                f"{self.rustup} is not available",
                job=context.job,
                details={"hint": TOOL_HINTS["rustup"]},
            )
        if not status.ok:
            last_line = (status.stderr.strip().splitlines() or ["(no output)"])[-1]
            raise ProvisionError(
                f"'{self.rustup} {' '.join(args)}' failed (exit={status.code}): {last_line}",
                job=context.job,
            )
