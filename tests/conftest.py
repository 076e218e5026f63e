from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pytest

from gaterunner.checkout import LocalCheckout
from gaterunner.commands import ExitStatus
from gaterunner.context import ExecutionContext, LocalContextProvider
from gaterunner.logsink import MemoryLogSink
from gaterunner.runner import RunnerServices


class FakeCommandRunner:
    """
    Scripted command runner.

    `exit_codes` maps a command line prefix ("cargo clippy") to an exit code;
    anything unmatched exits 0. Every call is recorded as (job, argv).
    """

    def __init__(self, exit_codes: Dict[str, int] | None = None, delay: float = 0.0):
        self.exit_codes = dict(exit_codes or {})
        self.delay = delay
        self.calls: List[Tuple[str, Tuple[str, ...]]] = []
        self._lock = threading.Lock()

    def execute(
        self,
        context: ExecutionContext,
        command: str,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExitStatus:
        argv = (command, *args)
        with self._lock:
            self.calls.append((context.job, argv))
        if self.delay:
            time.sleep(self.delay)
        line = " ".join(argv)
        code = 0
        for prefix, c in self.exit_codes.items():
            if line.startswith(prefix):
                code = c
                break
        stderr = "error: something went wrong" if code else ""
        return ExitStatus(code=code, duration=self.delay, stderr=stderr)

    def calls_for(self, job: str) -> List[Tuple[str, ...]]:
        with self._lock:
            return [argv for j, argv in self.calls if j == job]

    def commands_for(self, job: str, command: str) -> List[Tuple[str, ...]]:
        return [argv for argv in self.calls_for(job) if argv[0] == command]


@pytest.fixture
def source(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    src.mkdir()
    (src / "Cargo.toml").write_text('[package]\nname = "demo"\nversion = "0.1.0"\n')
    (src / "lib.rs").write_text("pub fn answer() -> u32 { 42 }\n")
    return src


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def sink() -> MemoryLogSink:
    return MemoryLogSink()


@pytest.fixture
def services(tmp_path: Path, source: Path, fake_runner: FakeCommandRunner, sink: MemoryLogSink) -> RunnerServices:
    return RunnerServices(
        checkout=LocalCheckout(source),
        contexts=LocalContextProvider(tmp_path / "work"),
        commands=fake_runner,
        log_sink=sink,
    )
