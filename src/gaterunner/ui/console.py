"""Human-facing output for gaterunner runs: plan, step lines, results and verdict."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from ..model import JobResult, PipelineVerdict, StepResult


class Console:
    """Every line the CLI prints goes through here; `debug` adds tracebacks and command output."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        run_id: str,
        workflow: str,
        event: str,
        ref: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Run: {run_id}")
        print(f"Workflow: {workflow}")
        print(f"Event: {event} ({ref})")
        print(f"Jobs: {job_count}")
        print()

    def print_not_triggered(self, event: str, accepted: Sequence[str]) -> None:
        print(f"Event '{event}' does not trigger this workflow (accepted: {', '.join(accepted)}).")
        print("No pipeline run created.")

    def print_plan(self, stages: Sequence[Sequence[str]]) -> None:
        """Print the job stages (jobs within a stage run concurrently)."""
        self.print_header("PLAN")
        for idx, stage in enumerate(stages, start=1):
            print(f"  stage {idx}: {', '.join(stage)}")

    def print_step_outcome(self, job: str, command: str, outcome: StepResult) -> None:
        """Print one finished step: command, duration and exit status."""
        exit_part = f" exit={outcome.exit_code}" if outcome.exit_code is not None else ""
        print(f"[{job}] {outcome.status.value.upper():<9} {command} ({outcome.duration:.1f}s){exit_part}")
        if outcome.reason and outcome.status.value != "succeeded":
            first_line = outcome.reason.split("\n")[0]
            print(f"[{job}]   {first_line if not self.debug else outcome.reason}")
        if self.debug and outcome.output:
            for line in outcome.output.splitlines():
                print(f"[{job}]   | {line}")

    def print_results(self, results: Mapping[str, JobResult]) -> None:
        """Print final per-job summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for name, result in results.items():
            line = f"  {name}: {result.status.value.upper()}"
            if result.reason:
                line += f" ({result.reason})"
            print(line)
            if result.detail and (self.debug or not result.succeeded):
                print(f"    {result.detail.splitlines()[0] if not self.debug else result.detail}")

    def print_verdict(self, verdict: PipelineVerdict) -> None:
        print()
        if verdict.passed:
            print("VERDICT: PASS")
            return
        print("VERDICT: FAIL")
        for failure in verdict.failures:
            print(f"  {failure.job}: {failure.reason}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """Print a titled error to stderr with optional detail lines and a suggested fix."""
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# set by the cli group; library callers get a default Console
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
