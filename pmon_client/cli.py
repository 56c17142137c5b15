"""
pmon CLI.

Operator commands against a PMON service: watch the live channel, deliver
artifacts, read logs and send project commands.
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Mapping, Sequence

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from pmon_client import __version__
from pmon_client.collaborators import NullCollaborator
from pmon_client.components.connection import ConnectionState
from pmon_client.components.upload import DeploymentPhase, DeploymentProgress, UploadSource
from pmon_client.config.constants import ManagerAction, NotificationLevel
from pmon_client.config.logging import setup_logging
from pmon_client.config.settings import get_settings
from pmon_client.schemas import LogFileInfo
from pmon_client.session import ClientSession
from pmon_client.utils.exceptions import ConfigurationError, PmonClientError

app = typer.Typer(
    name="pmon",
    help="PMON process-monitoring console client",
    add_completion=False,
)
console = Console()

LEVEL_STYLES = {
    NotificationLevel.INFO: "blue",
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.WARNING: "yellow",
    NotificationLevel.ERROR: "red",
}

STATE_STYLES = {
    ConnectionState.OPEN: "green",
    ConnectionState.CONNECTING: "blue",
    ConnectionState.RECONNECTING: "yellow",
    ConnectionState.DISCONNECTED: "red",
}

STATUS_COLUMNS = ("manager", "state", "pid", "startMode", "restartCount", "startTime", "manNum")


class RichCollaborator(NullCollaborator):
    """Prints what the session reports to the terminal."""

    def __init__(self, out: Console, *, show_status: bool = True) -> None:
        self.out = out
        self.show_status = show_status
        self.progress: Progress | None = None
        self._task: TaskID | None = None

    def render_status(self, instances: Sequence[Mapping[str, Any]]) -> None:
        if not self.show_status:
            return
        for index, instance in enumerate(instances):
            title = instance.get("projectName") or instance.get("hostname") or f"Instance {index + 1}"
            table = Table(title=str(title))
            for column in STATUS_COLUMNS:
                table.add_column(column, style="cyan" if column == "manager" else None)
            for prog in instance.get("progs") or []:
                table.add_row(*(str(prog.get(column, "")) for column in STATUS_COLUMNS))
            self.out.print(table)

    def render_log_lines(self, file: str, lines: Sequence[str], *, replace: bool = False) -> None:
        if replace and lines:
            self.out.rule(file)
        for line in lines:
            self.out.print(line, markup=False, highlight=False)

    def render_log_files(self, files: Sequence[LogFileInfo]) -> None:
        if self.show_status:
            self.out.print(f"[dim]{len(files)} log files available[/dim]")

    def notify(self, level: NotificationLevel, title: str, message: str) -> None:
        style = LEVEL_STYLES.get(level, "white")
        self.out.print(f"[{style}]{title}:[/{style}] {message}")

    def connection_status(self, state: ConnectionState, *, terminal: bool = False) -> None:
        style = STATE_STYLES[state]
        suffix = " (gave up)" if terminal else ""
        self.out.print(f"[{style}]● {state.value}{suffix}[/{style}]")

    def deployment_progress(self, progress: DeploymentProgress) -> None:
        if self.progress is None or self._task is None:
            if progress.phase is not DeploymentPhase.PROGRESS:
                self.out.print(f"[dim]Deployment {progress.phase.value}: {progress.message or ''}[/dim]")
            return
        self.progress.update(
            self._task,
            completed=progress.percent or 0,
            description=progress.message or progress.phase.value,
        )

    def server_availability(self, available: bool) -> None:
        if available:
            self.out.print("[green]Server reachable[/green]")
        else:
            self.out.print("[red]Server unreachable[/red]")

    def track(self, progress: Progress, description: str) -> None:
        self.progress = progress
        self._task = progress.add_task(description, total=100)


def _session(collaborator: NullCollaborator | None = None) -> ClientSession:
    settings = get_settings()
    setup_logging(settings)
    try:
        return ClientSession(settings, collaborator or RichCollaborator(console))
    except ConfigurationError as e:
        for problem in e.problems:
            console.print(f"[red]✗ {problem}[/red]")
        raise typer.Exit(1)


# =============================================================================
# Live channel
# =============================================================================

@app.command()
def watch(
    log: str | None = typer.Option(None, "--log", "-l", help="Log file to tail"),
    since: int = typer.Option(0, help="Log offset to start from"),
):
    """Connect and stream status, deployments and notifications until Ctrl-C."""
    session = _session()

    async def _watch():
        async with session:
            if log:
                await session.select_log_file(log, since)
            await asyncio.Event().wait()

    console.print(f"[blue]Watching {session.settings.ws_url} (Ctrl-C to stop)[/blue]")
    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


# =============================================================================
# Deployment
# =============================================================================

@app.command()
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Artifact to deploy"),
    restart: bool = typer.Option(False, "--restart", "-r", help="Restart the project afterwards"),
    whole: bool = typer.Option(False, "--whole", help="Send in one request instead of chunks"),
):
    """Deliver a deployment artifact."""
    collaborator = RichCollaborator(console, show_status=False)
    session = _session(collaborator)
    source = UploadSource.from_path(path)

    async def _upload() -> bool:
        await session.start(connect=False, monitor=False)
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                console=console,
            ) as progress:
                collaborator.track(progress, f"Uploading {source.name}")
                upload_task = asyncio.ensure_future(session.upload(source, restart, chunked=not whole))
                try:
                    return await upload_task
                except asyncio.CancelledError:
                    session.cancel_upload()
                    raise
        finally:
            await session.stop()

    try:
        ok = asyncio.run(_upload())
    except KeyboardInterrupt:
        console.print("[yellow]Upload cancelled[/yellow]")
        raise typer.Exit(130)
    if not ok:
        raise typer.Exit(1)


@app.command()
def history():
    """List past deployments."""
    session = _session()

    async def _history():
        await session.start(connect=False, monitor=False)
        try:
            return await session.commands.deployment_history()
        finally:
            await session.stop()

    try:
        result = asyncio.run(_history())
    except PmonClientError as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Deployments ({result.total_count})")
    table.add_column("When", style="cyan")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("User")
    table.add_column("Host")
    table.add_column("Status")
    for entry in result.history:
        status = "[green]✓[/green]" if entry.succeeded else f"[red]✗ {entry.status_message or entry.status}[/red]"
        table.add_row(
            entry.timestamp or "-",
            entry.file_name or "-",
            f"{entry.file_size / 1024:.0f} KB",
            entry.user or "-",
            entry.hostname or "-",
            status,
        )
    console.print(table)


# =============================================================================
# Logs
# =============================================================================

@app.command()
def logs(
    file: str | None = typer.Argument(None, help="Log file; omit to list files"),
    since: int = typer.Option(0, help="Read lines after this offset"),
    limit: int = typer.Option(1000, help="Maximum lines"),
):
    """Read a log file, or list log files."""
    session = _session()

    async def _logs():
        await session.start(connect=False, monitor=False)
        try:
            if file is None:
                return await session.commands.list_log_files()
            return await session.http.read_log(file, since, limit)
        finally:
            await session.stop()

    try:
        result = asyncio.run(_logs())
    except PmonClientError as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        raise typer.Exit(1)

    if file is None:
        table = Table(title="Log Files")
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right")
        for info in result.files:
            table.add_row(info.name, f"{info.size:.0f} KB")
        console.print(table)
        return

    if result.error:
        console.print(f"[red]✗ {result.error}[/red]")
        raise typer.Exit(1)
    for line in result.lines:
        console.print(line, markup=False, highlight=False)
    if result.last_id is not None:
        console.print(f"[dim]next offset: {result.last_id}[/dim]")


# =============================================================================
# Project commands
# =============================================================================

@app.command()
def manager(
    action: ManagerAction = typer.Argument(..., help="start, stop or restart"),
    shm_id: int = typer.Argument(..., help="Manager index"),
    hostname: str = typer.Argument(..., help="Instance hostname"),
):
    """Start, stop or restart one manager."""
    session = _session()

    async def _manager():
        await session.start(connect=False, monitor=False)
        try:
            return await session.commands.manager_command(action, shm_id, hostname)
        finally:
            await session.stop()

    result = asyncio.run(_manager())
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def restart(
    hostnames: list[str] = typer.Argument(..., help="Instances to restart"),
):
    """Restart every manager of one or more instances."""
    session = _session()

    async def _restart():
        await session.start(connect=False, monitor=False)
        try:
            if len(hostnames) == 1:
                result = await session.commands.restart_instance(hostnames[0])
                return 0 if result.ok else 1
            _, failed = await session.commands.restart_all(hostnames)
            return failed
        finally:
            await session.stop()

    if asyncio.run(_restart()):
        raise typer.Exit(1)


# =============================================================================
# Health
# =============================================================================

@app.command()
def health():
    """Check that the service and its token endpoint answer."""
    session = _session(NullCollaborator())

    async def _health():
        table = Table(title="Service Health")
        table.add_column("Check", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Response Time", style="yellow")

        try:
            start = time.time()
            reachable = await session.http.probe()
            elapsed = (time.time() - start) * 1000
            if reachable:
                table.add_row("HTTP", "✓ Reachable", f"{elapsed:.0f}ms")
            else:
                table.add_row("HTTP", "✗ Unreachable", "-")

            start = time.time()
            try:
                await session.tokens.acquire()
                elapsed = (time.time() - start) * 1000
                table.add_row("CSRF token", "✓ Issued", f"{elapsed:.0f}ms")
            except PmonClientError as e:
                table.add_row("CSRF token", f"✗ {type(e).__name__}", "-")
        finally:
            await session.stop()
        console.print(table)
        return reachable

    if not asyncio.run(_health()):
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]pmon-client[/bold] v{__version__}")
    console.print(f"Service: {get_settings().base_url}")


if __name__ == "__main__":
    app()
