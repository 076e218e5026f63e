# archive.py
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from .model import PipelineRun


class Base(DeclarativeBase):
    pass


class RunRecord(Base):
    __tablename__ = "runs"
    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True)
    workflow: Mapped[str] = mapped_column(sa.Text, nullable=False)
    event_kind: Mapped[str] = mapped_column(sa.Text, nullable=False)
    ref: Mapped[str] = mapped_column(sa.Text, nullable=False)
    sha: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    verdict_json: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    jobs: Mapped[List["JobRecord"]] = relationship(
        back_populates="run", cascade="all, delete-orphan", order_by="JobRecord.position"
    )


class JobRecord(Base):
    __tablename__ = "jobs"
    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(sa.String(32), sa.ForeignKey("runs.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    job_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    detail: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    steps_json: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)

    run: Mapped[RunRecord] = relationship(back_populates="jobs")


def default_database_url(state_dir: str | Path = ".gaterunner") -> str:
    path = Path(state_dir)
    path.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{(path / 'runs.db').resolve()}"


class Archive:
    """Keeps terminal pipeline runs (and their per-job breakdown) in a SQL database."""

    def __init__(self, url: str | None = None):
        self.engine = sa.create_engine(url or default_database_url(), pool_pre_ping=True)
        self.Session = sessionmaker(self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def save(self, run: PipelineRun) -> None:
        if not run.status.terminal:
            raise ValueError(f"run {run.id} is {run.status.value}; only finished runs are archived")

        data = run.to_dict()
        record = RunRecord(
            id=run.id,
            workflow=run.workflow,
            event_kind=run.event.kind,
            ref=run.event.ref,
            sha=run.event.sha,
            status=run.status.value,
            verdict_json=data["verdict"] or {},
            created_at=run.created_at,
            finished_at=run.finished_at,
        )
        for position, job in enumerate(data["jobs"]):
            record.jobs.append(
                JobRecord(
                    position=position,
                    job_name=job["name"],
                    status=job["status"],
                    reason=job["reason"],
                    detail=job["detail"],
                    steps_json=job["steps"],
                )
            )

        with self.Session() as s:
            with s.begin():
                s.merge(record)

    def get(self, run_id: str) -> Optional[Dict[str, Any]]:
        with self.Session() as s:
            record = s.get(RunRecord, run_id)
            if record is None:
                return None
            return self._to_dict(record)

    def list_runs(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self.Session() as s:
            q = sa.select(RunRecord).order_by(RunRecord.created_at.desc()).limit(limit)
            return [self._to_dict(r, with_jobs=False) for r in s.scalars(q)]

    @staticmethod
    def _to_dict(record: RunRecord, with_jobs: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "run_id": record.id,
            "workflow": record.workflow,
            "event": {"kind": record.event_kind, "ref": record.ref, "sha": record.sha},
            "status": record.status,
            "verdict": record.verdict_json or None,
            "created_at": record.created_at.isoformat(),
            "finished_at": record.finished_at.isoformat() if record.finished_at else None,
        }
        if with_jobs:
            out["jobs"] = [
                {
                    "name": j.job_name,
                    "status": j.status,
                    "reason": j.reason,
                    "detail": j.detail,
                    "steps": j.steps_json,
                }
                for j in record.jobs
            ]
        return out
