import pytest

from gaterunner.gate import aggregate
from gaterunner.model import JobResult, JobStatus, Verdict


def result(name, status, reason=None):
    return JobResult(job=name, status=status, reason=reason)


def test_all_succeeded_is_pass():
    verdict = aggregate({n: result(n, JobStatus.SUCCEEDED) for n in ["rustfmt", "clippy", "test"]})
    assert verdict.verdict is Verdict.PASS
    assert verdict.passed
    assert verdict.failures == ()


@pytest.mark.parametrize("failing", [{"a"}, {"b", "c"}, {"a", "b", "c", "d"}])
def test_fail_names_exactly_the_failing_jobs(failing):
    results = {
        n: result(n, JobStatus.FAILED, "CommandFailure") if n in failing else result(n, JobStatus.SUCCEEDED)
        for n in "abcd"
    }
    verdict = aggregate(results)
    assert verdict.verdict is Verdict.FAIL
    assert set(verdict.reasons) == failing
    assert set(verdict.reasons.values()) == {"CommandFailure"}


def test_reasons_are_carried_per_job():
    verdict = aggregate(
        {
            "rustfmt": result("rustfmt", JobStatus.ERRORED, "ProvisionError"),
            "clippy": result("clippy", JobStatus.FAILED, "CommandFailure"),
            "doc": result("doc", JobStatus.SUCCEEDED),
        }
    )
    assert verdict.reasons == {"rustfmt": "ProvisionError", "clippy": "CommandFailure"}
    assert [f.job for f in verdict.failures] == ["rustfmt", "clippy"]


def test_non_terminal_status_is_not_success():
    verdict = aggregate({"a": result("a", JobStatus.RUNNING)})
    assert verdict.verdict is Verdict.FAIL
    assert verdict.reasons == {"a": "NotFinished(running)"}


def test_missing_reason_falls_back_to_status():
    verdict = aggregate({"a": result("a", JobStatus.FAILED)})
    assert verdict.reasons == {"a": "failed"}


def test_empty_results_pass():
    assert aggregate({}).passed
