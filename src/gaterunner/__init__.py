from .dsl import cargo, execute, job, provision, toolchain, wf
from .gate import aggregate
from .model import Event, Job, JobResult, JobStatus, PipelineRun, PipelineVerdict, Step, ToolchainSpec, Verdict, Workflow
from .runner import RunnerServices, load_workflow, run_job, run_pipeline
from .trigger import TriggerListener

__all__ = [
    "cargo", "execute", "job", "provision", "toolchain", "wf",
    "aggregate", "Event", "Job", "JobResult", "JobStatus", "PipelineRun", "PipelineVerdict",
    "Step", "ToolchainSpec", "Verdict", "Workflow",
    "RunnerServices", "load_workflow", "run_job", "run_pipeline", "TriggerListener",
]
