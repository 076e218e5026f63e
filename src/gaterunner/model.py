# model.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import WorkflowError


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


@dataclass(frozen=True)
class Event:
    """An incoming event that may start a pipeline run."""
    kind: str
    ref: str = "HEAD"
    sha: str | None = None
    repo_url: str | None = None


@dataclass(frozen=True)
class ToolchainSpec:
    """A toolchain channel plus the components a job needs from it."""
    channel: str = "stable"
    components: Tuple[str, ...] = ()
    name: str = "rust"

    def __post_init__(self) -> None:
        # accept lists from callers, keep the toolchain hashable
        object.__setattr__(self, "components", tuple(self.components))

    def describe(self) -> str:
        if self.components:
            return f"{self.name}:{self.channel}+{'+'.join(self.components)}"
        return f"{self.name}:{self.channel}"


class StepKind(str, Enum):
    PROVISION = "provision"
    EXECUTE = "execute"


@dataclass(frozen=True)
class Step:
    """
    A single unit of work inside a job.

    Tagged variant:
      - kind=provision: `toolchain` (None means "use the job's toolchain")
      - kind=execute:   `command` + `args`, optional `cwd` relative to the job workdir
    """
    kind: StepKind
    name: str
    toolchain: ToolchainSpec | None = None
    command: str | None = None
    args: Tuple[str, ...] = ()
    cwd: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        if self.kind is StepKind.EXECUTE and not self.command:
            raise ValueError(f"execute step {self.name!r} has no command")

    @property
    def argv(self) -> List[str]:
        return [self.command or "", *self.args]

    def display(self) -> str:
        if self.kind is StepKind.PROVISION:
            return f"provision {self.toolchain.describe() if self.toolchain else '(job toolchain)'}"
        return " ".join(self.argv)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.ERRORED)


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"
    SKIPPED = "skipped"


@dataclass
class Job:
    """
    A CI job: an ordered list of steps run in its own execution context.

    Jobs are independent unless `needs` names other jobs in the same workflow.
    """
    name: str
    steps: list[Step]
    toolchain: ToolchainSpec | None = None
    needs: list[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    timeout: float | None = None

    status: JobStatus = JobStatus.PENDING
    reason: str | None = None

    def fresh(self) -> Job:
        """Return an unshared Pending copy for a new pipeline run."""
        return replace(
            self,
            steps=list(self.steps),
            needs=list(self.needs),
            env=dict(self.env),
            status=JobStatus.PENDING,
            reason=None,
        )


@dataclass
class StepResult:
    name: str
    kind: StepKind
    status: StepStatus
    exit_code: int | None = None
    duration: float = 0.0
    reason: str | None = None
    output: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "reason": self.reason,
        }


@dataclass
class JobResult:
    """Terminal outcome of one job."""
    job: str
    status: JobStatus
    reason: str | None = None  # machine readable, e.g. "CommandFailure"
    detail: str | None = None  # human readable
    steps: list[StepResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.SUCCEEDED


def parse_triggers(kinds: Iterable[str | EventKind]) -> frozenset:
    out = set()
    for kind in kinds:
        try:
            out.add(EventKind(kind))
        except ValueError:
            accepted = sorted(k.value for k in EventKind)
            raise WorkflowError(f"unknown trigger kind {kind!r}", details={"accepted": accepted}) from None
    if not out:
        raise WorkflowError("workflow has no triggers")
    return frozenset(out)


@dataclass(frozen=True)
class Workflow:
    name: str
    jobs: List[Job]
    triggers: frozenset = frozenset({EventKind.PUSH, EventKind.PULL_REQUEST})

    def __post_init__(self) -> None:
        # plain strings ("push") are accepted from hand-built workflows
        object.__setattr__(self, "triggers", parse_triggers(self.triggers))


class Verdict(str, Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class JobFailure:
    job: str
    reason: str
    detail: str | None = None


@dataclass(frozen=True)
class PipelineVerdict:
    verdict: Verdict
    failures: Tuple[JobFailure, ...] = ()

    @property
    def passed(self) -> bool:
        return self.verdict is Verdict.PASS

    @property
    def reasons(self) -> Dict[str, str]:
        return {f.job: f.reason for f in self.failures}

    def to_dict(self) -> dict:
        return {
            "verdict": self.verdict.value,
            "failures": [
                {"job": f.job, "reason": f.reason, "detail": f.detail} for f in self.failures
            ],
        }


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASS = "pass"
    FAIL = "fail"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.PASS, RunStatus.FAIL)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineRun:
    """One invocation of the whole workflow, created by a matching event."""
    event: Event
    jobs: List[Job]
    workflow: str = "workflow"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.PENDING
    results: Dict[str, JobResult] = field(default_factory=dict)
    verdict: Optional[PipelineVerdict] = None
    created_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None

    def start(self) -> None:
        if self.status is not RunStatus.PENDING:
            raise RuntimeError(f"run {self.id} cannot start from {self.status.value}")
        self.status = RunStatus.RUNNING

    def finish(self, verdict: PipelineVerdict) -> None:
        if self.status is not RunStatus.RUNNING:
            raise RuntimeError(f"run {self.id} cannot finish from {self.status.value}")
        self.verdict = verdict
        self.status = RunStatus.PASS if verdict.passed else RunStatus.FAIL
        self.finished_at = _now()

    def to_dict(self) -> dict:
        return {
            "run_id": self.id,
            "workflow": self.workflow,
            "event": {"kind": self.event.kind, "ref": self.event.ref, "sha": self.event.sha},
            "status": self.status.value,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "jobs": [
                {
                    "name": j.name,
                    "status": (self.results[j.name].status if j.name in self.results else j.status).value,
                    "reason": self.results[j.name].reason if j.name in self.results else j.reason,
                    "detail": self.results[j.name].detail if j.name in self.results else None,
                    "steps": [s.to_dict() for s in self.results[j.name].steps] if j.name in self.results else [],
                }
                for j in self.jobs
            ],
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
