# dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .model import EventKind, Job, Step, StepKind, ToolchainSpec, Workflow


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def provision(channel: str | None = None, *components: str, name: str | None = None) -> Step:
    """
    Create a provision step.

    provision()                       -> use the job's toolchain
    provision("nightly", "rustfmt")   -> explicit channel + components
    """
    spec = ToolchainSpec(channel=channel, components=components) if channel else None
    if spec is None and components:
        raise ValueError("provision(): components given without a channel")
    label = name or (f"Provision {spec.describe()}" if spec else "Provision toolchain")
    return Step(kind=StepKind.PROVISION, name=label, toolchain=spec)


def execute(name: str, command: str, *args: str, cwd: str | None = None) -> Step:
    """Create a command step: argv is [command, *args], run without a shell."""
    return Step(kind=StepKind.EXECUTE, name=name, command=command, args=args, cwd=cwd)


def cargo(command: str, *args: str, name: str | None = None, cwd: str | None = None) -> Step:
    """`cargo <command> <args...>`, e.g. cargo("fmt", "--all", "--", "--check")."""
    return execute(name or f"cargo {command}", "cargo", command, *args, cwd=cwd)


def toolchain(channel: str = "stable", *components: str) -> ToolchainSpec:
    return ToolchainSpec(channel=channel, components=components)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", provision(), cargo(...))
    toolchain: ToolchainSpec | None = None,
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
) -> Job:
    if not steps:
        raise ValueError(f"job({name!r}) must have at least one step")

    steps_final = list(steps)
    if toolchain is not None and not any(s.kind is StepKind.PROVISION for s in steps_final):
        # a job that declares a toolchain always provisions it first
        steps_final.insert(0, provision(name=f"Provision {toolchain.describe()}"))

    if toolchain is None and any(s.kind is StepKind.PROVISION and s.toolchain is None for s in steps_final):
        raise ValueError(f"job({name!r}) has a bare provision() step but no toolchain")

    if timeout is not None and timeout <= 0:
        raise ValueError(f"job({name!r}) timeout must be positive")

    return Job(
        name=name,
        steps=steps_final,
        toolchain=toolchain,
        needs=list(needs or []),
        env={k: str(v) for k, v in (env or {}).items()},
        timeout=timeout,
    )


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    *jobs: Job,
    on: Iterable[str | EventKind] = (EventKind.PUSH, EventKind.PULL_REQUEST),
    name: str = "workflow",
) -> Workflow:
    """
    Workflow definition helper.

    Users can write:
        from gaterunner import wf, job, provision, cargo, toolchain

        def workflow():
            return wf(
                job("fmt", cargo("fmt", "--all", "--", "--check"),
                    toolchain=toolchain("stable", "rustfmt")),
                on=["push", "pull_request"],
            )

    Or use WORKFLOW directly:
        WORKFLOW = wf(job(...), job(...))
    """
    return Workflow(name=name, jobs=list(jobs), triggers=frozenset(on))
