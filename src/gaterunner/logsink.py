"""Log sinks: structured per-step records for later inspection."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Protocol

from .model import Step, StepResult
from .ui.console import get_console


@dataclass(frozen=True)
class StepRecord:
    job: str
    step: str
    kind: str
    command: str
    status: str
    exit_code: int | None
    duration: float
    reason: str | None
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "job": self.job,
            "step": self.step,
            "kind": self.kind,
            "command": self.command,
            "status": self.status,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


def make_record(job_name: str, step: Step, outcome: StepResult) -> StepRecord:
    return StepRecord(
        job=job_name,
        step=step.name,
        kind=step.kind.value,
        command=step.display(),
        status=outcome.status.value,
        exit_code=outcome.exit_code,
        duration=outcome.duration,
        reason=outcome.reason,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class LogSink(Protocol):
    def emit(self, job_name: str, step: Step, outcome: StepResult) -> None:
        ...


class ConsoleLogSink:
    """Prints one line per finished step through the global console."""

    def emit(self, job_name: str, step: Step, outcome: StepResult) -> None:
        get_console().print_step_outcome(job_name, step.display(), outcome)


class MemoryLogSink:
    """Keeps records in memory; shared by concurrent jobs, so appends are locked."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: List[StepRecord] = []

    def emit(self, job_name: str, step: Step, outcome: StepResult) -> None:
        record = make_record(job_name, step, outcome)
        with self._lock:
            self.records.append(record)

    def for_job(self, job_name: str) -> List[StepRecord]:
        with self._lock:
            return [r for r in self.records if r.job == job_name]


class JsonlLogSink:
    """Appends one JSON object per step to a file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def emit(self, job_name: str, step: Step, outcome: StepResult) -> None:
        line = json.dumps(make_record(job_name, step, outcome).to_dict(), sort_keys=True)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")


class MultiLogSink:
    def __init__(self, *sinks: LogSink):
        self.sinks = list(sinks)

    def emit(self, job_name: str, step: Step, outcome: StepResult) -> None:
        for sink in self.sinks:
            sink.emit(job_name, step, outcome)
