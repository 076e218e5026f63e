# dag.py
from __future__ import annotations

from collections import Counter
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Set, Tuple

from .errors import WorkflowError
from .model import Job, JobResult, JobStatus


def build_dag(jobs: Iterable[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Edges run from a prerequisite to the jobs that need it.

    Returns (dependents by job name, number of unmet needs by job name).
    """
    jobs = list(jobs)
    counts = Counter(j.name for j in jobs)
    dupes = sorted(n for n, c in counts.items() if c > 1)
    if dupes:
        raise WorkflowError(f"duplicate job names found: {dupes}")

    dependents: Dict[str, Set[str]] = {n: set() for n in counts}
    unmet: Dict[str, int] = dict.fromkeys(counts, 0)
    for job in jobs:
        for need in set(job.needs or ()):
            if need not in dependents:
                raise WorkflowError(
                    f"job needs missing job '{need}'",
                    job=job.name,
                    details={"known": sorted(counts)},
                )
            dependents[need].add(job.name)
            unmet[job.name] += 1

    return dependents, unmet


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Group jobs into stages. Everything in a stage only needs jobs from
    earlier stages, so a stage can run concurrently.
    """
    unmet = dict(indeg)
    stage = sorted(n for n, count in unmet.items() if count == 0)
    levels: List[List[str]] = []

    while stage:
        levels.append(stage)
        released: Set[str] = set()
        for name in stage:
            for child in adj.get(name, ()):
                unmet[child] -= 1
                if unmet[child] == 0:
                    released.add(child)
        stage = sorted(released)

    if sum(map(len, levels)) != len(unmet):
        stuck = sorted(n for n, count in unmet.items() if count > 0)
        raise WorkflowError(f"job graph has a cycle; stuck jobs: {stuck}")

    return levels


def plan(jobs: Iterable[Job]) -> List[List[str]]:
    adj, indeg = build_dag(jobs)
    return topo_levels(adj, indeg)


def _errored(job: Job, reason: str, detail: str) -> JobResult:
    return JobResult(job=job.name, status=JobStatus.ERRORED, reason=reason, detail=detail)


def run_all(
    jobs: Iterable[Job],
    run_fn: Callable[[Job], JobResult],
    max_workers: int | None = None,
) -> Dict[str, JobResult]:
    """
    Scheduler: start every ready job concurrently and join on the whole set.

    - Jobs without `needs` all start at once.
    - A job starts when everything it needs has Succeeded; if a prerequisite
      did not succeed it is Errored with reason DependencyFailed, without running.
    - No cross-job cancellation: a failure never stops a running sibling.
    - A run_fn that raises becomes an Errored result (InternalError).

    Returns a mapping job name -> JobResult in declaration order, once every
    job has reached a terminal status.
    """
    jobs = list(jobs)
    by_name = {j.name: j for j in jobs}
    adj, indeg = build_dag(jobs)
    indeg = dict(indeg)

    results: Dict[str, JobResult] = {}
    ready: List[str] = [j.name for j in jobs if indeg[j.name] == 0]

    if max_workers is None:
        max_workers = max(1, len(jobs))

    def settle(name: str, result: JobResult) -> None:
        by_name[name].status = result.status
        by_name[name].reason = result.reason
        results[name] = result
        # release dependents; a non-succeeding prerequisite poisons them
        for child in sorted(adj[name]):
            if child in results:
                continue
            if not result.succeeded:
                settle(child, _errored(by_name[child], "DependencyFailed", f"needs '{name}' which {result.status.value}"))
                continue
            indeg[child] -= 1
            if indeg[child] == 0:
                ready.append(child)

    in_flight: Dict[Future, str] = {}
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job") as pool:
        while ready or in_flight:
            while ready:
                name = ready.pop(0)
                if name in results:
                    continue
                by_name[name].status = JobStatus.RUNNING
                in_flight[pool.submit(run_fn, by_name[name])] = name

            if not in_flight:
                break

            done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
            for fut in done:
                name = in_flight.pop(fut)
                try:
                    result = fut.result()
                except Exception as e:
                    result = _errored(by_name[name], "InternalError", f"{type(e).__name__}: {e}")
                settle(name, result)

    return {j.name: results[j.name] for j in jobs}
