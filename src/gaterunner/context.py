# context.py
from __future__ import annotations

import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Protocol, Set

from .model import ToolchainSpec

# never copied into a job's context: our own state dir and cargo build output
DEFAULT_COPY_IGNORES = (".gaterunner", "target")


@dataclass(frozen=True)
class ContextRequirements:
    job: str
    run_id: str
    source: Path
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExecutionContext:
    """
    Everything a single job may touch while it runs.

    Owned by exactly one job; nothing in here is shared with sibling jobs.
    """
    job: str
    workdir: Path
    env: Dict[str, str] = field(default_factory=dict)
    provisioned: Set[ToolchainSpec] = field(default_factory=set)
    root: Path | None = None  # directory removed on release, if any


class ExecutionContextProvider(Protocol):
    def acquire_context(self, requirements: ContextRequirements) -> ExecutionContext:
        ...

    def release(self, context: ExecutionContext) -> None:
        ...


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name) or "job"


class LocalContextProvider:
    """
    Gives each job its own copy of the checked-out tree under
    <work_root>/<run_id>/<job>, so jobs cannot race on the working directory.

    With copy_source=False every job runs directly in the source tree
    (faster for local use, but jobs then share files on disk).
    """

    def __init__(
        self,
        work_root: str | Path = ".gaterunner/work",
        *,
        copy_source: bool = True,
        keep: bool = False,
        ignore: tuple[str, ...] = DEFAULT_COPY_IGNORES,
    ):
        self.work_root = Path(work_root)
        self.copy_source = copy_source
        self.keep = keep
        self.ignore = ignore

    def acquire_context(self, requirements: ContextRequirements) -> ExecutionContext:
        source = requirements.source.resolve()
        if not self.copy_source:
            return ExecutionContext(job=requirements.job, workdir=source, env=dict(requirements.env))

        root = (self.work_root / requirements.run_id / _safe_name(requirements.job)).resolve()
        if root.exists():
            shutil.rmtree(root)
        root.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, root, symlinks=True, ignore=self._ignore)

        return ExecutionContext(
            job=requirements.job,
            workdir=root,
            env=dict(requirements.env),
            root=root,
        )

    def _ignore(self, dirpath: str, names: list[str]) -> set[str]:
        ignored = set(shutil.ignore_patterns(*self.ignore)(dirpath, names))
        # the work root may live inside the source tree; never copy it into itself
        work_root = self.work_root.resolve()
        for name in names:
            if (Path(dirpath) / name).resolve() == work_root:
                ignored.add(name)
        return ignored

    def release(self, context: ExecutionContext) -> None:
        if self.keep or context.root is None:
            return
        shutil.rmtree(context.root, ignore_errors=True)
