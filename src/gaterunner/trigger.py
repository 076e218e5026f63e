# trigger.py
from __future__ import annotations

from typing import Optional

from .model import Event, PipelineRun, Workflow


class TriggerListener:
    """Decides whether an incoming event starts a pipeline run."""

    def __init__(self, workflow: Workflow):
        self.workflow = workflow

    @property
    def accepted(self) -> list[str]:
        return sorted(k.value for k in self.workflow.triggers)

    def matches(self, event: Event) -> bool:
        return event.kind in self.accepted

    def on_event(self, event: Event) -> Optional[PipelineRun]:
        """
        Return a new Pending PipelineRun holding fresh copies of every
        configured job, or None when the event kind is not accepted.
        """
        if not self.matches(event):
            return None
        return PipelineRun(
            event=event,
            jobs=[j.fresh() for j in self.workflow.jobs],
            workflow=self.workflow.name,
        )
