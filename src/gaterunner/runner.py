# runner.py
from __future__ import annotations

import runpy
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from .checkout import LocalCheckout, SourceCheckoutProvider
from .commands import CommandRunner, SubprocessCommandRunner
from .config import load_yaml_workflow, validate_workflow
from .context import ContextRequirements, ExecutionContext, ExecutionContextProvider, LocalContextProvider
from .dag import run_all
from .errors import CheckoutError, CommandFailure, JobTimeoutError, ProvisionError, WorkflowError
from .gate import aggregate
from .logsink import ConsoleLogSink, LogSink
from .model import (
    Job,
    JobResult,
    JobStatus,
    PipelineRun,
    PipelineVerdict,
    Step,
    StepKind,
    StepResult,
    StepStatus,
    Workflow,
)
from .provisioner import RustupProvisioner, ToolchainProvisioner

if TYPE_CHECKING:
    from .archive import Archive


# ----------------------------------------------------------------------
# Workflow loading (local file/module)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file or a YAML file.

    A python file must define one of:
      - workflow() -> Workflow | List[Job]
      - WORKFLOW = Workflow
      - JOBS = [Job, ...]      (triggered on push and pull_request)

    Returns:
      A validated Workflow
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix in (".yml", ".yaml"):
        return load_yaml_workflow(wf_path)
    if wf_path.suffix != ".py":
        raise WorkflowError(f"workflow must be a .py or .yml file, got: {wf_path.name}")

    module_name = f"gaterunner_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    loaded = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            loaded = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise WorkflowError(
                    "workflow() is being called with arguments (name collision with a helper). "
                    "Use the 'wf' helper: `from gaterunner import wf, job` then "
                    "`def workflow(): return wf(job(...), job(...))`"
                ) from e
            raise
    elif "WORKFLOW" in globals_dict:
        loaded = globals_dict["WORKFLOW"]
    elif "JOBS" in globals_dict:
        loaded = globals_dict["JOBS"]

    if isinstance(loaded, list) and all(isinstance(j, Job) for j in loaded):
        loaded = Workflow(name=wf_path.stem, jobs=loaded)

    if not isinstance(loaded, Workflow):
        raise WorkflowError(
            "workflow file must return/define a Workflow or a List[Job]. "
            "Define workflow() -> Workflow, WORKFLOW = wf(...) or JOBS = [Job, ...]."
        )

    validate_workflow(loaded)
    return loaded


# ----------------------------------------------------------------------
# Collaborators
# ----------------------------------------------------------------------

@dataclass
class RunnerServices:
    """The external collaborators a run talks to. Defaults run everything locally."""
    checkout: SourceCheckoutProvider = field(default_factory=LocalCheckout)
    contexts: ExecutionContextProvider = field(default_factory=LocalContextProvider)
    commands: CommandRunner = field(default_factory=SubprocessCommandRunner)
    provisioner: Optional[ToolchainProvisioner] = None
    log_sink: LogSink = field(default_factory=ConsoleLogSink)

    def __post_init__(self) -> None:
        if self.provisioner is None:
            self.provisioner = RustupProvisioner(self.commands)


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _remaining(deadline: float | None, job: Job) -> float | None:
    if deadline is None:
        return None
    left = deadline - time.monotonic()
    if left <= 0:
        raise JobTimeoutError(f"job exceeded its timeout ({job.timeout:.1f}s)", job=job.name)
    return left


def _run_step(job: Job, step: Step, context: ExecutionContext, services: RunnerServices, deadline: float | None) -> StepResult:
    """
    Run one step. A non-zero exit comes back as a FAILED result;
    provisioning problems and timeouts raise.
    """
    timeout = _remaining(deadline, job)

    if step.kind is StepKind.PROVISION:
        spec = step.toolchain or job.toolchain
        started = time.monotonic()
        services.provisioner.provision(spec, context, timeout=timeout)
        return StepResult(step.name, step.kind, StepStatus.SUCCEEDED, duration=time.monotonic() - started)

    status = services.commands.execute(context, step.command, step.args, cwd=step.cwd, timeout=timeout)
    return StepResult(
        step.name,
        step.kind,
        StepStatus.SUCCEEDED if status.ok else StepStatus.FAILED,
        exit_code=status.code,
        duration=status.duration,
        output=status.output,
    )


def run_job(job: Job, source: Path, run_id: str, services: RunnerServices) -> JobResult:
    """
    Run one job's steps in order, in its own execution context.

    Returns a terminal JobResult:
      - succeeded: every step succeeded
      - failed:    an execute step exited non-zero (CommandFailure)
      - errored:   provisioning failed (ProvisionError) or the job timed out (TimeoutError)
    Later steps after the first failure are recorded as skipped and never run.
    """
    started = time.monotonic()
    deadline = started + job.timeout if job.timeout else None
    step_results: List[StepResult] = []
    status, reason, detail = JobStatus.SUCCEEDED, None, None

    context = services.contexts.acquire_context(
        ContextRequirements(job=job.name, run_id=run_id, source=source, env=dict(job.env))
    )
    try:
        for idx, step in enumerate(job.steps):
            step_started = time.monotonic()
            try:
                outcome = _run_step(job, step, context, services, deadline)
            except (ProvisionError, JobTimeoutError) as e:
                outcome = StepResult(
                    step.name,
                    step.kind,
                    StepStatus.ERRORED,
                    duration=time.monotonic() - step_started,
                    reason=e.message,
                )
                status, reason, detail = JobStatus.ERRORED, e.kind, e.message
            else:
                if outcome.status is StepStatus.FAILED:
                    failure = CommandFailure(
                        f"'{step.display()}' exited with {outcome.exit_code}",
                        exit_code=outcome.exit_code,
                        job=job.name,
                        step=step.name,
                    )
                    outcome.reason = failure.message
                    status, reason, detail = JobStatus.FAILED, failure.kind, failure.message

            step_results.append(outcome)
            services.log_sink.emit(job.name, step, outcome)

            if status is not JobStatus.SUCCEEDED:
                # fail-fast: nothing after the first failing step runs
                step_results.extend(
                    StepResult(s.name, s.kind, StepStatus.SKIPPED) for s in job.steps[idx + 1:]
                )
                break
    finally:
        services.contexts.release(context)

    return JobResult(
        job=job.name,
        status=status,
        reason=reason,
        detail=detail,
        steps=step_results,
        duration=time.monotonic() - started,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    run: PipelineRun,
    services: RunnerServices | None = None,
    *,
    max_workers: int | None = None,
    archive: Optional["Archive"] = None,
) -> PipelineVerdict:
    """
    Drive a PipelineRun through pending -> running -> pass|fail.

    The ref is checked out once; a CheckoutError fails the run immediately and
    no job starts (each job is recorded errored with reason CheckoutError).
    The checkout is released once every job is terminal.
    """
    services = services or RunnerServices()
    run.start()

    try:
        source = services.checkout.checkout(run.event.ref)
    except CheckoutError as e:
        results: Dict[str, JobResult] = {}
        for j in run.jobs:
            j.status, j.reason = JobStatus.ERRORED, e.kind
            results[j.name] = JobResult(job=j.name, status=JobStatus.ERRORED, reason=e.kind, detail=e.message)
    else:
        try:
            results = run_all(
                run.jobs,
                lambda j: run_job(j, source, run.id, services),
                max_workers=max_workers,
            )
        finally:
            services.checkout.release(source)

    run.results = results
    verdict = aggregate(results)
    run.finish(verdict)

    if archive is not None:
        archive.save(run)
    return verdict
