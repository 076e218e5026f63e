from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .archive import Archive
from .model import Event, PipelineRun, Workflow
from .runner import RunnerServices, run_pipeline
from .trigger import TriggerListener
from .ui.console import get_console

# -------------------- Schemas --------------------

class EventRequest(BaseModel):
    kind: str = Field(..., min_length=1)
    ref: str = "HEAD"
    sha: Optional[str] = None
    repo_url: Optional[str] = None


class EventResponse(BaseModel):
    triggered: bool
    run_id: Optional[str] = None
    accepted: list[str]


class JobSummary(BaseModel):
    name: str
    status: str
    reason: Optional[str] = None
    detail: Optional[str] = None
    steps: list[dict[str, Any]] = Field(default_factory=list)


class RunResponse(BaseModel):
    run_id: str
    workflow: str
    event: dict[str, Any]
    status: str
    verdict: Optional[dict[str, Any]] = None
    jobs: list[JobSummary] = Field(default_factory=list)
    created_at: str
    finished_at: Optional[str] = None


# -------------------- App --------------------

def create_app(
    workflow: Workflow,
    *,
    services_factory: Callable[[Event], RunnerServices] | None = None,
    archive: Archive | None = None,
    max_workers: int | None = None,
    keep_finished: int = 100,
) -> FastAPI:
    """
    Webhook front-end for the trigger listener.

    `services_factory` builds the collaborators for each run (so an event's
    repo_url can pick its own checkout); active runs are held in memory until
    they finish and are archived. Without an archive, only the newest
    `keep_finished` finished runs stay queryable.
    """
    listener = TriggerListener(workflow)
    services_factory = services_factory or (lambda _event: RunnerServices())
    active: Dict[str, PipelineRun] = {}
    lock = threading.Lock()

    app = FastAPI(title="gaterunner")

    def execute(run: PipelineRun) -> None:
        try:
            run_pipeline(run, services_factory(run.event), max_workers=max_workers, archive=archive)
        except Exception as e:
            get_console().print_exception(e)
        finally:
            with lock:
                if archive is not None:
                    active.pop(run.id, None)
                else:
                    finished = [rid for rid, r in active.items() if r.status.terminal]
                    for rid in finished[: max(0, len(finished) - keep_finished)]:
                        del active[rid]

    @app.post("/events", response_model=EventResponse)
    def receive_event(req: EventRequest, background: BackgroundTasks):
        event = Event(kind=req.kind, ref=req.ref, sha=req.sha, repo_url=req.repo_url)
        run = listener.on_event(event)
        if run is None:
            return EventResponse(triggered=False, accepted=listener.accepted)

        with lock:
            active[run.id] = run
        background.add_task(execute, run)
        body = EventResponse(triggered=True, run_id=run.id, accepted=listener.accepted)
        return JSONResponse(status_code=202, content=body.model_dump())

    @app.get("/runs/{run_id}", response_model=RunResponse)
    def get_run(run_id: str):
        with lock:
            run = active.get(run_id)
        if run is not None:
            return RunResponse(**run.to_dict())
        if archive is not None:
            data = archive.get(run_id)
            if data is not None:
                return RunResponse(**data)
        raise HTTPException(status_code=404, detail="Run not found")

    @app.get("/runs")
    def list_runs(limit: int = 20):
        if archive is None:
            with lock:
                runs = list(active.values())
            return [r.to_dict() for r in runs][-limit:]
        return archive.list_runs(limit=limit)

    return app
