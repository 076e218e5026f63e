"""Gate aggregation: per-job terminal results -> one Pass/Fail verdict."""

from __future__ import annotations

from typing import Mapping

from .model import JobFailure, JobResult, JobStatus, PipelineVerdict, Verdict


def aggregate(results: Mapping[str, JobResult]) -> PipelineVerdict:
    """
    Pass iff every job Succeeded. Otherwise Fail, naming exactly the jobs
    that did not succeed, in the order given, with their reasons.

    A non-terminal status (pending/running) counts as not succeeded.
    """
    failures = []
    for name, result in results.items():
        if result.status is JobStatus.SUCCEEDED:
            continue
        reason = result.reason or (
            result.status.value if result.status.terminal else f"NotFinished({result.status.value})"
        )
        failures.append(JobFailure(job=name, reason=reason, detail=result.detail))

    if failures:
        return PipelineVerdict(Verdict.FAIL, tuple(failures))
    return PipelineVerdict(Verdict.PASS)
