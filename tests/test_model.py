import pytest

from gaterunner.dsl import cargo, job, provision, toolchain
from gaterunner.model import (
    Event,
    JobFailure,
    JobStatus,
    PipelineRun,
    PipelineVerdict,
    RunStatus,
    Step,
    StepKind,
    ToolchainSpec,
    Verdict,
)


def test_toolchain_spec_is_hashable_and_normalises_components():
    a = ToolchainSpec(channel="stable", components=["clippy"])
    b = ToolchainSpec(channel="stable", components=("clippy",))
    assert a == b
    assert {a, b} == {a}
    assert a.describe() == "rust:stable+clippy"
    assert ToolchainSpec().describe() == "rust:stable"


def test_execute_step_requires_command():
    with pytest.raises(ValueError):
        Step(kind=StepKind.EXECUTE, name="nothing")


def test_step_display():
    assert cargo("fmt", "--all", "--", "--check").display() == "cargo fmt --all -- --check"
    assert provision("nightly", "rustfmt").display() == "provision rust:nightly+rustfmt"
    assert provision().display() == "provision (job toolchain)"


def test_fresh_job_is_pending_and_unshared():
    original = job("lint", cargo("clippy"), toolchain=toolchain("stable", "clippy"), env={"A": "1"})
    original.status = JobStatus.FAILED
    original.reason = "CommandFailure"

    copy = original.fresh()
    assert copy is not original
    assert copy.status is JobStatus.PENDING
    assert copy.reason is None

    copy.steps.append(cargo("build"))
    copy.env["B"] = "2"
    assert len(original.steps) == 2
    assert "B" not in original.env


def test_job_status_terminal():
    assert not JobStatus.PENDING.terminal
    assert not JobStatus.RUNNING.terminal
    assert JobStatus.SUCCEEDED.terminal
    assert JobStatus.FAILED.terminal
    assert JobStatus.ERRORED.terminal


def test_pipeline_run_state_machine():
    run = PipelineRun(event=Event(kind="push", ref="main"), jobs=[])
    assert run.status is RunStatus.PENDING

    run.start()
    assert run.status is RunStatus.RUNNING
    with pytest.raises(RuntimeError):
        run.start()

    run.finish(PipelineVerdict(Verdict.FAIL, (JobFailure("lint", "CommandFailure"),)))
    assert run.status is RunStatus.FAIL
    assert run.finished_at is not None
    with pytest.raises(RuntimeError):
        run.finish(PipelineVerdict(Verdict.PASS))


def test_pipeline_run_cannot_finish_before_start():
    run = PipelineRun(event=Event(kind="push"), jobs=[])
    with pytest.raises(RuntimeError):
        run.finish(PipelineVerdict(Verdict.PASS))


def test_verdict_reasons():
    verdict = PipelineVerdict(
        Verdict.FAIL,
        (JobFailure("lint", "CommandFailure"), JobFailure("fmt", "ProvisionError", "unknown channel")),
    )
    assert not verdict.passed
    assert verdict.reasons == {"lint": "CommandFailure", "fmt": "ProvisionError"}
    assert verdict.to_dict()["failures"][1]["detail"] == "unknown channel"
