"""Thin CLI wrapper for ci_release.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ci_release import __version__
from ci_release.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="ci-release",
    help="CI release pipeline - test, build, and publish draft releases per matrix job",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich, once per process."""
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        logging.basicConfig(
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )
    root.setLevel(level)


def _print_json(data: Any) -> None:
    # soft_wrap keeps long values (cache keys, paths) on one line
    console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)


def _load_workflow_or_exit(settings: Settings, workflow: Path | None) -> Any:
    from ci_release.errors import ConfigurationError
    from ci_release.workflow import load_workflow

    path = workflow or settings.resolve_workflow_file()
    try:
        return load_workflow(path)
    except ConfigurationError as e:
        console.print(f"[red]Invalid workflow:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(code=1) from None


@contextmanager
def _run_history(settings: Settings) -> Iterator[Any]:
    """Open the run history database for one command."""
    from ci_release.db import open_database

    engine, factory = open_database(settings.db_url)
    try:
        yield factory
    finally:
        engine.dispose()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ci-release version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """CI release pipeline - test, build, and publish draft releases per matrix job."""
    configure_logging(get_settings().log_level)


WorkflowOption = Annotated[
    Path | None,
    typer.Option("--workflow", "-w", help="Workflow file (default: from settings)"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


@app.command()
def config(json_output: JsonOption = False) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, soft_wrap=True)
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Workspace:           {settings.workspace_dir}")
    console.print(f"  Workflow file:       {settings.resolve_workflow_file()}")
    console.print(f"  Cache directory:     {settings.cache_dir}")
    console.print(f"  Artifacts directory: {settings.artifacts_dir}")
    console.print(f"  Logs directory:      {settings.logs_dir}")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    workers = settings.max_parallel_jobs or "(one per job)"
    console.print(f"  Max parallel jobs:   {workers}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Provision timeout:   {settings.provision_timeout}")
    console.print(f"  Test timeout:        {settings.test_timeout}")
    console.print(f"  Build timeout:       {settings.build_timeout}")
    console.print(f"  HTTP timeout:        {settings.http_timeout}")
    console.print()
    console.print("[bold]Release:[/bold]")
    console.print(f"  API URL:             {settings.release_api_url}")
    console.print(f"  Repository:          {settings.repository or '(not set)'}")
    console.print(f"  Token variable:      {settings.token_env}")


@app.command()
def matrix(
    workflow: WorkflowOption = None,
    json_output: JsonOption = False,
) -> None:
    """Resolve and show the build matrix."""
    from ci_release.errors import ConfigurationError
    from ci_release.workflow import resolve_matrix

    settings = get_settings()
    wf = _load_workflow_or_exit(settings, workflow)

    try:
        jobs = resolve_matrix(wf.matrix.include)
    except ConfigurationError as e:
        console.print(f"[red]Invalid matrix:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(code=1) from None

    if json_output:
        _print_json([{"job_id": job.job_id, **job.dimensions()} for job in jobs])
        return

    console.print(f"[bold]{len(jobs)} job(s):[/bold]")
    for job in jobs:
        console.print(f"  [green]{job.job_id}[/green]", highlight=False)
        console.print(f"    OS: {job.os}", markup=False, highlight=False)
        console.print(f"    Toolchain: {job.toolchain}", markup=False, highlight=False)
        console.print(f"    Platform: {job.platform}", markup=False, highlight=False)
        console.print(f"    Ext: {job.ext or '(none)'}", markup=False, highlight=False)


@app.command("cache-key")
def cache_key(
    os_name: Annotated[
        str | None,
        typer.Option("--os", help="OS identifier (default: every OS in the matrix)"),
    ] = None,
    workflow: WorkflowOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the dependency cache key for the current lockfile."""
    from ci_release.cache import compute_cache_key, compute_lockfile_digest
    from ci_release.errors import ConfigurationError
    from ci_release.workflow import resolve_matrix

    settings = get_settings()
    wf = _load_workflow_or_exit(settings, workflow)

    if os_name is not None:
        os_names = [os_name]
    else:
        try:
            jobs = resolve_matrix(wf.matrix.include)
        except ConfigurationError as e:
            console.print(f"[red]Invalid matrix:[/red] {escape(str(e))}", highlight=False)
            raise typer.Exit(code=1) from None
        os_names = list(dict.fromkeys(job.os for job in jobs))

    digest = compute_lockfile_digest(settings.workspace_dir, wf.cache.lockfile)
    keys = {name: compute_cache_key(name, digest, wf.cache.tool) for name in os_names}

    if json_output:
        _print_json({"lockfile_digest": digest, "keys": keys})
        return

    for name, key in keys.items():
        console.print(f"{name}: {key}", markup=False, highlight=False, soft_wrap=True)


def _print_run(data: dict[str, Any]) -> None:
    color = "green" if data["status"] == "succeeded" else "red"
    console.print(
        f"[bold]Run {data['id']}[/bold] ({data['event']}): [{color}]{data['status']}[/{color}]"
    )
    if data.get("error_message"):
        console.print(
            f"  [red]{data['error_code']}[/red]: {escape(data['error_message'])}", highlight=False
        )
    for job in data["jobs"]:
        job_color = "green" if job["status"] == "succeeded" else "red"
        console.print(f"  [{job_color}]{job['job_id']}[/{job_color}]: {job['status']}")
        dims = f"os={job['os']} toolchain={job['toolchain']} platform={job['platform']}"
        console.print(f"    Dimensions: {dims}", markup=False, highlight=False)
        if job.get("cache_status"):
            console.print(f"    Cache: {job['cache_status']}", markup=False)
        if job.get("failed_stage"):
            console.print(
                f"    Failed stage: {job['failed_stage']} ({job['error_code']})",
                markup=False,
            )
            console.print(f"    Error: {job['error_message']}", markup=False, highlight=False)
        if job.get("published_bundles"):
            console.print(
                f"    Bundles: {', '.join(job['published_bundles'])}", markup=False
            )
        if job.get("release_outcome"):
            console.print(f"    Release: {job['release_outcome']}", markup=False)


@app.command()
def run(
    event: Annotated[
        str,
        typer.Option("--event", "-e", help="push, pull_request or workflow_dispatch"),
    ],
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Branch the event refers to"),
    ] = None,
    sha: Annotated[
        str | None,
        typer.Option("--sha", help="Commit SHA of the event"),
    ] = None,
    workflow: WorkflowOption = None,
    json_output: JsonOption = False,
) -> None:
    """Run the pipeline for an event.

    Exits with code 1 if any job fails or the run is blocked by a
    configuration error.
    """
    from ci_release.db import get_session
    from ci_release.errors import TriggerError
    from ci_release.runs.service import run_pipeline
    from ci_release.types import EventContext
    from ci_release.workflow import parse_event

    settings = get_settings()
    try:
        event_type = parse_event(event)
    except TriggerError as e:
        console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        raise typer.Exit(code=1) from None

    wf = _load_workflow_or_exit(settings, workflow)
    ref = f"refs/heads/{branch}" if branch else None
    context = EventContext(event=event_type, ref=ref, sha=sha)

    with _run_history(settings) as factory, get_session(factory) as session:
        pipeline_run = run_pipeline(session, settings, context, workflow=wf)
        data = pipeline_run.to_dict() if pipeline_run is not None else None

    if data is None:
        if json_output:
            _print_json({"triggered": False})
        else:
            console.print(f"[yellow]Workflow not triggered by {event_type.value}[/yellow]")
        return

    if json_output:
        _print_json(data)
    else:
        _print_run(data)

    if data["status"] != "succeeded":
        raise typer.Exit(code=1)


runs_app = typer.Typer(help="Inspect run history")
app.add_typer(runs_app, name="runs")


@runs_app.command("list")
def runs_list(
    status: Annotated[
        str | None,
        typer.Option("--status", "-s", help="Filter by status"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum runs to show"),
    ] = 20,
    json_output: JsonOption = False,
) -> None:
    """List recent runs."""
    from ci_release.runs.service import list_runs
    from ci_release.types import RunStatus

    try:
        status_filter = RunStatus(status) if status else None
    except ValueError:
        console.print(f"[red]Invalid status: {status}[/red]")
        raise typer.Exit(code=1) from None

    settings = get_settings()
    with _run_history(settings) as factory, factory() as session:
        runs = [r.to_dict() for r in list_runs(session, status=status_filter, limit=limit)]

    if json_output:
        _print_json(runs)
        return

    if not runs:
        console.print("[yellow]No runs found[/yellow]")
        return

    console.print(f"[bold]Found {len(runs)} run(s):[/bold]")
    for r in runs:
        color = "green" if r["status"] == "succeeded" else "red"
        failed = sum(1 for j in r["jobs"] if j["status"] != "succeeded")
        console.print(
            f"  {r['id']}: {r['event']} [{color}]{r['status']}[/{color}] "
            f"({len(r['jobs'])} job(s), {failed} failed)"
        )


@runs_app.command("show")
def runs_show(
    run_id: Annotated[int, typer.Argument(help="Run ID")],
    json_output: JsonOption = False,
) -> None:
    """Show one run and its jobs."""
    from ci_release.runs.service import RunNotFoundError, get_run

    settings = get_settings()
    with _run_history(settings) as factory, factory() as session:
        try:
            data = get_run(session, run_id).to_dict()
        except RunNotFoundError:
            console.print(f"[red]Run not found: {run_id}[/red]")
            raise typer.Exit(code=1) from None

    if json_output:
        _print_json(data)
    else:
        _print_run(data)


if __name__ == "__main__":
    app()
