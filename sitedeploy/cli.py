"""Thin CLI wrapper for sitedeploy.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import asyncio
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sitedeploy import __version__
from sitedeploy.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="sitedeploy",
    help="sitedeploy - build submitted web projects and serve the results",
    no_args_is_help=True,
)
console = Console()

STATUS_COLORS = {
    "ready": "green",
    "error": "red",
    "processing": "blue",
    "pending": "yellow",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"sitedeploy version {__version__}")
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
    """sitedeploy - build submitted web projects and serve the results."""


def _session_factory(settings: Settings) -> Any:
    from sitedeploy.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    return get_session_factory(engine)


def _job_to_dict(job: Any, settings: Settings) -> dict[str, Any]:
    return {
        "id": job.id,
        "app_id": job.app_id,
        "status": job.status,
        "source_kind": job.source_kind,
        "url": settings.artifact_url(job.id),
        "artifact_path": job.artifact_path,
        "error_message": job.error_message,
        "log_path": job.log_path,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "finished_at": job.finished_at.isoformat() if job.finished_at else None,
    }


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print_json(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Data directory:      {settings.data_dir}")
        console.print(f"  Staging directory:   {settings.staging_dir}")
        console.print(f"  Artifacts directory: {settings.artifacts_dir}")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print()
        console.print("[bold]Server:[/bold]")
        console.print(f"  Listen:              {settings.host}:{settings.port}")
        console.print(f"  Public base URL:     {settings.public_base_url}")
        console.print(f"  Embedded worker:     {settings.embedded_worker}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print()
        console.print("[bold]Build:[/bold]")
        console.print(f"  Build command:       {settings.build_command}")
        console.print(f"  Fallback command:    {settings.fallback_build_command}")
        console.print(f"  Install command:     {settings.install_command}")
        console.print(f"  Output directories:  {', '.join(settings.output_dirs)}")
        console.print(f"  Cache entries kept:  {settings.cache_keep}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Build timeout:       {settings.build_timeout}")
        console.print(f"  Install timeout:     {settings.install_timeout}")
        console.print(f"  Download timeout:    {settings.download_timeout}")


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default from settings)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Bind port (default from settings)"),
    ] = None,
    no_worker: Annotated[
        bool,
        typer.Option("--no-worker", help="Do not run the embedded build scheduler"),
    ] = False,
) -> None:
    """Run the HTTP API and artifact server."""
    import uvicorn

    from web.app import create_app

    settings = get_settings()
    if no_worker:
        settings.embedded_worker = False

    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def worker() -> None:
    """Run the build scheduler without the HTTP server."""
    from sitedeploy.logconfig import configure_logging
    from sitedeploy.worker.scheduler import Scheduler

    settings = get_settings()
    configure_logging(settings.log_level)
    scheduler = Scheduler.from_settings(settings, _session_factory(settings))

    console.print("[bold]Worker started[/bold] (Ctrl+C to stop)")
    try:
        asyncio.run(scheduler.run_forever())
    except KeyboardInterrupt:
        console.print("[yellow]Worker stopped[/yellow]")


@app.command()
def submit(
    source: Annotated[
        str,
        typer.Argument(help="Project directory, .zip archive, or archive URL"),
    ],
    job_id: Annotated[
        str | None,
        typer.Option("--id", help="Job id (generated if omitted)"),
    ] = None,
    app_id: Annotated[
        str | None,
        typer.Option("--app-id", help="Group the job under an app id"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Submit a project for building."""
    from sitedeploy.db import get_session
    from sitedeploy.errors import ValidationError
    from sitedeploy.jobs.service import create_job
    from sitedeploy.jobs.sources import (
        ArchiveSource,
        InlineSource,
        SourceRef,
        UrlSource,
        read_source_dir,
    )

    settings = get_settings()

    source_ref: SourceRef
    if source.startswith(("http://", "https://")):
        source_ref = UrlSource(url=source, timeout=settings.download_timeout)
    else:
        path = Path(source)
        if path.is_dir():
            source_ref = InlineSource(files=read_source_dir(path))
        elif path.is_file() and path.suffix.lower() == ".zip":
            source_ref = ArchiveSource(path=path.resolve())
        else:
            console.print(f"[red]Not a directory or .zip archive: {source}[/red]")
            raise typer.Exit(code=1)

    try:
        with get_session(_session_factory(settings)) as session:
            job = create_job(session, source_ref, job_id=job_id, app_id=app_id)
            output = {
                "id": job.id,
                "status": job.status,
                "url": settings.artifact_url(job.id),
            }
    except ValidationError as e:
        console.print(f"[red]Error ({e.code}):[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(data=output)
    else:
        console.print(f"[green]Submitted job {output['id']}[/green]")
        console.print(f"  Status: {output['status']}")
        console.print(f"  URL: {output['url']}")


@app.command()
def status(
    job_id: Annotated[str, typer.Argument(help="Job id")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the status of a job."""
    from sitedeploy.errors import NotFoundError
    from sitedeploy.jobs.service import get_job

    settings = get_settings()
    factory = _session_factory(settings)

    with factory() as session:
        try:
            job = get_job(session, job_id)
        except NotFoundError:
            if json_output:
                console.print_json(
                    data={"code": "not_found", "message": f"Job not found: {job_id}"}
                )
            else:
                console.print(f"[red]Job not found: {job_id}[/red]")
            raise typer.Exit(code=1) from None
        output = _job_to_dict(job, settings)

    if json_output:
        console.print_json(data=output)
        return

    color = STATUS_COLORS.get(output["status"], "white")
    console.print(f"[bold]Job {output['id']}[/bold]")
    console.print(f"  Status: [{color}]{output['status']}[/{color}]")
    console.print(f"  Source: {output['source_kind']}")
    console.print(f"  URL: {output['url']}")
    if output["app_id"]:
        console.print(f"  App: {output['app_id']}")
    if output["log_path"]:
        console.print(f"  Log: {output['log_path']}")
    if output["error_message"]:
        console.print(f"  Error: {escape(output['error_message'])}")


jobs_app = typer.Typer(help="Inspect the job queue")
app.add_typer(jobs_app, name="jobs")


@jobs_app.command("list")
def jobs_list(
    status: Annotated[
        str | None,
        typer.Option(
            "--status", "-s", help="Filter by status (pending/processing/ready/error)"
        ),
    ] = None,
    app_id: Annotated[
        str | None,
        typer.Option("--app-id", help="Filter by app id"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of jobs to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List jobs, newest first."""
    from sitedeploy.jobs.service import list_jobs
    from sitedeploy.types import JobStatus

    settings = get_settings()

    status_filter: JobStatus | None = None
    if status:
        try:
            status_filter = JobStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            console.print("Valid values: pending, processing, ready, error")
            raise typer.Exit(code=1) from None

    factory = _session_factory(settings)
    with factory() as session:
        jobs = [
            _job_to_dict(j, settings)
            for j in list_jobs(session, status=status_filter, app_id=app_id, limit=limit)
        ]

    if json_output:
        console.print_json(data=jobs)
        return
    if not jobs:
        console.print("[yellow]No jobs found[/yellow]")
        return

    table = Table(title=f"{len(jobs)} job(s)")
    table.add_column("ID")
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Created")
    for j in jobs:
        color = STATUS_COLORS.get(j["status"], "white")
        table.add_row(
            j["id"],
            f"[{color}]{j['status']}[/{color}]",
            j["source_kind"],
            j["created_at"] or "N/A",
        )
    console.print(table)


cache_app = typer.Typer(help="Manage the dependency cache")
app.add_typer(cache_app, name="cache")


def _dependency_cache(settings: Settings) -> Any:
    from sitedeploy.builds.dependency_cache import DependencyCache

    assert settings.cache_dir is not None
    return DependencyCache(
        cache_dir=settings.cache_dir,
        install_command=settings.install_command,
        install_timeout=settings.install_timeout,
        keep=settings.cache_keep,
    )


@cache_app.command("list")
def cache_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List dependency cache entries, most recently used first."""
    entries = _dependency_cache(get_settings()).list_entries()

    if json_output:
        console.print_json(
            data=[
                {
                    "key": e.key,
                    "path": str(e.path),
                    "last_used": e.last_used.isoformat(),
                }
                for e in entries
            ]
        )
        return
    if not entries:
        console.print("[yellow]Dependency cache is empty[/yellow]")
        return

    console.print(f"[bold]Found {len(entries)} cache entries:[/bold]")
    for e in entries:
        console.print(f"  {e.key[:16]}  last used {e.last_used.isoformat()}")


@cache_app.command("prune")
def cache_prune(
    keep: Annotated[
        int | None,
        typer.Option("--keep", "-k", help="Entries to keep (default from settings)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Remove all but the most recently used cache entries."""
    removed = _dependency_cache(get_settings()).prune(keep)

    if json_output:
        console.print_json(data={"removed": removed})
    elif not removed:
        console.print("[yellow]Nothing to prune[/yellow]")
    else:
        console.print(f"[bold]Pruned {len(removed)} cache entries:[/bold]")
        for key in removed:
            console.print(f"  - {key[:16]}")


if __name__ == "__main__":
    app()
