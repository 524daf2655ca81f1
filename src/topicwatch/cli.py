"""topicwatch CLI - supervise per-topic background workers."""

import json
import logging
import time
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import load_topics, settings
from .exceptions import CollaboratorError, ConfigMissing
from .kinds import DaemonKind
from .utils.console import console
from .utils.logging import set_log_level, setup_logging

logger = logging.getLogger(__name__)

# Seconds to wait before confirming a freshly spawned daemon
START_GRACE_SECONDS = 2.0


def _print_panel(message: str, style: str = "blue") -> None:
    """Print a styled panel message.

    Args:
        message: Message to display in the panel
        style: Panel style (default: "blue")
    """
    console.print(Panel(f"[bold]{message}[/bold]", style=style))


def _supervisor():
    from .daemon.supervisor import Supervisor

    return Supervisor(settings)


app = typer.Typer(
    name="topicwatch",
    help="Supervised per-topic workers - start, stop and inspect reply and alert daemons",
    no_args_is_help=True,
)

daemon_app = typer.Typer(help="Daemon process entry points (used by the supervisor)")
app.add_typer(daemon_app, name="daemon")

TopicArg = Annotated[str, typer.Argument(help="Topic name from the topics file")]
KindArg = Annotated[DaemonKind, typer.Argument(help="Daemon kind")]


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]topicwatch[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show supervisor log output"),
    ] = False,
) -> None:
    """topicwatch - per-topic daemons that survive restarts."""
    setup_logging(level=settings.log_level, console_level="INFO" if verbose else "WARNING")
    if verbose:
        set_log_level("DEBUG")
    settings.ensure_directories()


# ============================================================================
# CONTROL COMMANDS
# ============================================================================


@app.command("topics")
def topics_command() -> None:
    """List configured topics and their daemon kinds."""
    try:
        topics = load_topics(settings)
    except ConfigMissing as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if not topics:
        console.print("[dim]No topics configured.[/dim]")
        return

    table = Table(title=f"Topics ({settings.topics_path})")
    table.add_column("Topic", style="cyan")
    table.add_column("Name")
    table.add_column("Kinds")
    for key, topic in sorted(topics.items()):
        table.add_row(key, topic.name, ", ".join(k.value for k in topic.pipelines))
    console.print(table)


@app.command("start")
def start_command(topic: TopicArg, kind: KindArg) -> None:
    """Start a daemon in the background for TOPIC and KIND.

    Daemons started from the CLI do not watch their parent, because the CLI
    exits right after spawning them. Stop them with `topicwatch stop`.
    """
    supervisor = _supervisor()
    console.print(f"[bold cyan]Starting {kind.value} for {topic}...[/bold cyan]")
    result = supervisor.start(topic, kind, watch_parent=False)
    if not result.success:
        console.print(f"[yellow]{result.message}[/yellow]")
        raise typer.Exit(code=1)

    # Give it a moment to write its PID file
    time.sleep(START_GRACE_SECONDS)
    status = supervisor.status(topic, kind)
    if status.is_running:
        console.print(f"[green]Daemon started (PID {status.pid})[/green]")
    elif status.starting:
        console.print(f"[yellow]Daemon is still starting (PID {status.pid}). Check status shortly.[/yellow]")
    else:
        console.print("[red]Failed to start daemon. Check logs.[/red]")
        raise typer.Exit(code=1)


@app.command("stop")
def stop_command(topic: TopicArg, kind: KindArg) -> None:
    """Stop the daemon for TOPIC and KIND."""
    result = _supervisor().stop(topic, kind)
    if result.success:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(code=1)


@app.command("status")
def status_command(
    topic: TopicArg,
    kind: KindArg,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw status")] = False,
) -> None:
    """Show daemon status for TOPIC and KIND."""
    status = _supervisor().status(topic, kind)

    if as_json:
        console.print_json(json.dumps(status.to_dict()))
        return
    if not status.success:
        console.print(f"[red]{status.message}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[bold cyan]Daemon Status: {topic}/{kind.value}[/bold cyan]\n")
    if status.is_running:
        console.print("Status: [green]Running[/green]")
        console.print(f"PID: {status.pid}")
        if status.uptime_seconds:
            hours = int(status.uptime_seconds // 3600)
            mins = int((status.uptime_seconds % 3600) // 60)
            console.print(f"Uptime: {hours}h {mins}m")
        elif status.externally_managed:
            console.print("[dim]Started outside this session (start time unknown)[/dim]")
    elif status.starting:
        console.print("Status: [yellow]Starting[/yellow]")
        console.print(f"PID: {status.pid}")
    else:
        console.print("Status: [yellow]Stopped[/yellow]")


@app.command("run")
def run_command(topic: TopicArg, kind: KindArg) -> None:
    """Run one processing cycle now (for testing or manual catch-up)."""
    _print_panel(f"Running one {kind.value} cycle for {topic}...")
    result = _supervisor().run_once(topic, kind)
    if result.success:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(code=1)


@app.command("logs")
def logs_command(
    topic: TopicArg,
    kind: KindArg,
    lines: Annotated[int, typer.Option("--lines", "-n", help="Number of lines")] = 50,
) -> None:
    """Show recent log lines for TOPIC and KIND."""
    entries = _supervisor().read_logs(topic, kind, lines)
    if not entries:
        console.print("[dim]No log entries.[/dim]")
        return

    colors = {"success": "green", "error": "red"}
    for entry in entries:
        color = colors.get(entry.classification)
        text = entry.message.replace("[", r"\[")
        console.print(f"[{color}]{text}[/{color}]" if color else text)


# ============================================================================
# DAEMON ENTRY POINTS - run inside the spawned process
# ============================================================================


@daemon_app.command("run")
def daemon_run(topic: TopicArg, kind: KindArg) -> None:
    """Run the daemon for TOPIC and KIND in the foreground until signalled."""
    from .daemon.runtime import run_daemon

    try:
        code = run_daemon(topic, kind, settings)
    except (ConfigMissing, CollaboratorError) as e:
        logger.error(str(e))
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    except KeyboardInterrupt:
        console.print("\n[dim]Daemon stopped.[/dim]")
        return
    if code:
        raise typer.Exit(code=code)


@daemon_app.command("stop")
def daemon_stop(topic: TopicArg, kind: KindArg) -> None:
    """Clean up the daemon's PID record without signalling it."""
    from .daemon.runtime import stop_daemon

    if stop_daemon(topic, kind, settings):
        console.print(f"[green]Removed PID record for {topic}/{kind.value}[/green]")
    else:
        console.print(f"[dim]No PID record for {topic}/{kind.value}[/dim]")


if __name__ == "__main__":
    app()
