"""Workflow configuration: YAML schema (pydantic) and workflow validation.

A YAML workflow looks like:

    name: rust
    triggers: [push, pull_request]
    jobs:
      rustfmt:
        toolchain: {channel: nightly, components: [rustfmt]}
        steps:
          - provision: {}
          - execute: {command: cargo, args: [fmt, --all, --, --check]}
      clippy:
        toolchain: {channel: stable, components: [clippy]}
        timeout: 900
        steps:
          - provision: {}
          - execute: {command: cargo, args: [clippy]}

`triggers` is used instead of `on` because YAML 1.1 loads a bare `on` key as True.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from . import dsl
from .dag import build_dag, topo_levels
from .errors import WorkflowError
from .model import EventKind, Job, Step, StepKind, Workflow, parse_triggers


# ---------------------------------------------------------------------
# YAML schema
# ---------------------------------------------------------------------

class ToolchainModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channel: str = "stable"
    components: List[str] = Field(default_factory=list)


class ProvisionModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channel: Optional[str] = None
    components: List[str] = Field(default_factory=list)
    name: Optional[str] = None


class ExecuteModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    command: str = Field(..., min_length=1)
    args: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    cwd: Optional[str] = None

    @field_validator("args", mode="before")
    @classmethod
    def _stringify_args(cls, v: Any) -> Any:
        # `args: [--jobs, 4]` should not fail on the int
        if isinstance(v, list):
            return [str(a) for a in v]
        return v


class StepModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provision: Optional[ProvisionModel] = None
    execute: Optional[ExecuteModel] = None

    @model_validator(mode="before")
    @classmethod
    def _bare_provision(cls, data: Any) -> Any:
        # "- provision" and "- provision:" both mean "provision the job toolchain"
        if data == "provision":
            return {"provision": {}}
        if isinstance(data, dict) and "provision" in data and data["provision"] is None:
            return {**data, "provision": {}}
        return data

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> "StepModel":
        if (self.provision is None) == (self.execute is None):
            raise ValueError("a step must be exactly one of 'provision' or 'execute'")
        return self

    def to_step(self) -> Step:
        if self.provision is not None:
            p = self.provision
            if p.components and not p.channel:
                raise ValueError("provision components given without a channel")
            return dsl.provision(p.channel, *p.components, name=p.name)
        e = self.execute
        return dsl.execute(e.name or " ".join([e.command, *e.args]), e.command, *e.args, cwd=e.cwd)


class JobModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    toolchain: Optional[ToolchainModel] = None
    steps: List[StepModel] = Field(..., min_length=1)
    needs: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, gt=0)


class WorkflowModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "workflow"
    triggers: List[str] = Field(default_factory=lambda: [k.value for k in EventKind])
    jobs: Dict[str, JobModel] = Field(..., min_length=1)

    @field_validator("triggers")
    @classmethod
    def _known_triggers(cls, v: List[str]) -> List[str]:
        accepted = {k.value for k in EventKind}
        unknown = [k for k in v if k not in accepted]
        if unknown:
            raise ValueError(f"unknown trigger kind(s) {unknown}; accepted: {sorted(accepted)}")
        if not v:
            raise ValueError("at least one trigger is required")
        return v

    def to_workflow(self) -> Workflow:
        jobs: List[Job] = []
        for name, spec in self.jobs.items():
            tc = dsl.toolchain(spec.toolchain.channel, *spec.toolchain.components) if spec.toolchain else None
            try:
                jobs.append(
                    dsl.job(
                        name,
                        *[s.to_step() for s in spec.steps],
                        toolchain=tc,
                        needs=spec.needs,
                        env=spec.env,
                        timeout=spec.timeout,
                    )
                )
            except ValueError as e:
                raise WorkflowError(str(e), job=name) from e
        return Workflow(name=self.name, jobs=jobs, triggers=parse_triggers(self.triggers))


def load_yaml_workflow(path: str | Path) -> Workflow:
    """
    Load and validate a workflow from a YAML file.

    Raises:
        FileNotFoundError: If file doesn't exist
        WorkflowError: If the YAML is malformed or the workflow is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Workflow file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise WorkflowError(f"malformed YAML in {path.name}", details={"error": str(e)}) from e

    if not isinstance(raw, dict):
        raise WorkflowError(f"{path.name} must contain a mapping at the top level")

    try:
        model = WorkflowModel(**raw)
    except ValidationError as e:
        raise WorkflowError(f"invalid workflow configuration in {path.name}", details={"errors": str(e)}) from e

    workflow = model.to_workflow()
    validate_workflow(workflow)
    return workflow


# ---------------------------------------------------------------------
# Validation shared by YAML and Python workflows
# ---------------------------------------------------------------------

def validate_workflow(workflow: Workflow) -> None:
    if not workflow.jobs:
        raise WorkflowError(f"workflow {workflow.name!r} defines no jobs")

    for j in workflow.jobs:
        if not j.name or not j.name.strip():
            raise WorkflowError("job names must be non-empty")
        if not j.steps:
            raise WorkflowError("job has no steps", job=j.name)
        for s in j.steps:
            if s.kind is StepKind.PROVISION and s.toolchain is None and j.toolchain is None:
                raise WorkflowError("provision step without a toolchain", job=j.name, step=s.name)

    adj, indeg = build_dag(workflow.jobs)
    topo_levels(adj, indeg)
