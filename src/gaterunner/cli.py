# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from gaterunner import settings
from gaterunner.archive import Archive
from gaterunner.checkout import GitCheckout, LocalCheckout
from gaterunner.context import LocalContextProvider
from gaterunner.dag import plan as plan_stages
from gaterunner.errors import GateError
from gaterunner.git_facts.git import get_current_ref, head_sha
from gaterunner.logsink import ConsoleLogSink, JsonlLogSink, MultiLogSink
from gaterunner.model import Event
from gaterunner.runner import RunnerServices, load_workflow, run_pipeline
from gaterunner.trigger import TriggerListener
from gaterunner.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "gaterunner_workflow.py"
DEFAULT_YAML_WORKFLOW = "gaterunner.yml"


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    for default in (DEFAULT_WORKFLOW, DEFAULT_YAML_WORKFLOW):
        if (current_dir / default).exists():
            workflow_files.append(current_dir / default)

    for pattern in ("*_workflow.py", "*.gaterunner.yml"):
        for path in current_dir.glob(pattern):
            if path not in workflow_files:
                workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix not in (".py", ".yml", ".yaml"):
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  gaterunner run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {DEFAULT_WORKFLOW}",
                f"  {DEFAULT_YAML_WORKFLOW}",
                "  *_workflow.py",
                "  *.gaterunner.yml",
            ],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify a workflow explicitly:\n  gaterunner run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  gaterunner run --workflow {workflow_files[0]}",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(ctx, workflow_arg: str | None):
    console = get_console()
    workflow_path = discover_workflow(workflow_arg or settings.WORKFLOW)
    try:
        return workflow_path, load_workflow(workflow_path)
    except (GateError, FileNotFoundError) as e:
        console.print_error("Invalid workflow", f"Could not load workflow from {workflow_path}", details=[str(e)])
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)


def _default_ref(source: str) -> str:
    try:
        return get_current_ref(cwd=source)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "HEAD"


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """gaterunner: run independent CI checks and gate on the combined verdict."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} / {DEFAULT_YAML_WORKFLOW} if present)",
)
@click.option(
    "--event",
    "event_kind",
    default="push",
    show_default=True,
    help="Event kind to simulate (push, pull_request, ...)",
)
@click.option("--ref", default=None, help="Git ref to run against (defaults to the current branch)")
@click.option("--repo", default=None, help="Clone this repository URL instead of using the local tree")
@click.option("--source", default=settings.SOURCE_DIR, show_default=True, help="Local source tree")
@click.option("--workers", default=settings.MAX_WORKERS, type=int, help="Max jobs running at once (default: all)")
@click.option("--work-dir", default=settings.WORK_DIR, show_default=True, help="Where per-job contexts are created")
@click.option("--isolate/--no-isolate", default=True, show_default=True, help="Give each job its own copy of the tree")
@click.option("--keep-work", is_flag=True, default=False, help="Keep per-job work directories after the run")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False), help="Also write step records as JSON lines")
@click.option("--archive/--no-archive", "use_archive", default=False, show_default=True, help="Archive the finished run")
@click.option("--database-url", default=settings.DATABASE_URL, help="Archive database URL (default: sqlite in .gaterunner)")
@click.pass_context
def run(ctx, workflow, event_kind, ref, repo, source, workers, work_dir, isolate, keep_work, log_file, use_archive, database_url):
    """Run a workflow for one event and print the verdict."""
    console = get_console()
    workflow_path, wf = _load(ctx, workflow)

    try:
        ref = ref or ("HEAD" if repo else _default_ref(source))
        sha = None
        if not repo:
            try:
                sha = head_sha(cwd=source)
            except (subprocess.CalledProcessError, FileNotFoundError):
                console.print_debug("source is not a git checkout; running the tree as-is")

        listener = TriggerListener(wf)
        pipeline_run = listener.on_event(Event(kind=event_kind, ref=ref, sha=sha, repo_url=repo))
        if pipeline_run is None:
            console.print_not_triggered(event_kind, listener.accepted)
            return

        sink = ConsoleLogSink()
        services = RunnerServices(
            checkout=GitCheckout(repo, Path(work_dir).parent / "checkouts") if repo else LocalCheckout(source),
            contexts=LocalContextProvider(work_dir, copy_source=isolate, keep=keep_work),
            log_sink=MultiLogSink(sink, JsonlLogSink(log_file)) if log_file else sink,
        )

        console.print_run_started(
            run_id=pipeline_run.id,
            workflow=f"{wf.name} ({workflow_path.name})",
            event=event_kind,
            ref=ref,
            job_count=len(pipeline_run.jobs),
        )
        console.print_plan(plan_stages(pipeline_run.jobs))

        archive = Archive(database_url) if use_archive else None
        verdict = run_pipeline(pipeline_run, services, max_workers=workers, archive=archive)

        console.print_results(pipeline_run.results)
        console.print_verdict(verdict)

        if not verdict.passed:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path")
@click.pass_context
def plan(ctx, workflow):
    """Validate a workflow and print its triggers, jobs and stages."""
    console = get_console()
    workflow_path, wf = _load(ctx, workflow)

    console.print_header(f"{wf.name} ({workflow_path.name})")
    console.print_info(f"Triggers: {', '.join(sorted(k.value for k in wf.triggers))}")
    for j in wf.jobs:
        tc = j.toolchain.describe() if j.toolchain else "-"
        timeout = f", timeout {j.timeout:g}s" if j.timeout else ""
        console.print_info(f"  {j.name} [{tc}{timeout}]")
        for step in j.steps:
            console.print_info(f"    - {step.display()}")
    console.print_plan(plan_stages(wf.jobs))


@cli.command()
@click.option("--limit", default=20, show_default=True, type=int, help="Number of runs to show")
@click.option("--database-url", default=settings.DATABASE_URL, help="Archive database URL")
def history(limit, database_url):
    """List archived runs, newest first."""
    console = get_console()
    runs = Archive(database_url).list_runs(limit=limit)
    if not runs:
        console.print_info("No archived runs.")
        return
    for r in runs:
        console.print_info(
            f"{r['run_id'][:12]}  {r['status'].upper():<5}  {r['event']['kind']:<13} {r['event']['ref']}  {r['created_at']}"
        )


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--source", default=settings.SOURCE_DIR, show_default=True, help="Local source tree")
@click.option("--work-dir", default=settings.WORK_DIR, show_default=True, help="Where per-job contexts are created")
@click.option("--database-url", default=settings.DATABASE_URL, help="Archive database URL")
@click.pass_context
def serve(ctx, workflow, host, port, source, work_dir, database_url):
    """Serve the webhook endpoint (POST /events) that triggers runs."""
    import uvicorn

    from gaterunner.server import create_app

    _path, wf = _load(ctx, workflow)

    def services_for(event: Event) -> RunnerServices:
        return RunnerServices(
            checkout=GitCheckout(event.repo_url, Path(work_dir).parent / "checkouts")
            if event.repo_url
            else LocalCheckout(source, verify_ref=True),
            contexts=LocalContextProvider(work_dir),
        )

    app = create_app(wf, services_factory=services_for, archive=Archive(database_url), max_workers=settings.MAX_WORKERS)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    cli()
