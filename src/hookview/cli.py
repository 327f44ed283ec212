"""CLI interface for hookview.

Runs the realtime viewer, inspects the hook log, appends hook events and
stops a running viewer.
"""

import json
import logging
import sys
import webbrowser
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from hookview.client import (
    HookviewAuthError,
    HookviewClient,
    HookviewClientError,
    HookviewConnectionError,
)
from hookview.config import ViewerConfig
from hookview.hook_logger import log_hook_event
from hookview.records import read_log_records

console = Console()


def setup_logging(verbose: bool) -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def handle_error(e: Exception) -> None:
    """Handle and display errors nicely."""
    if isinstance(e, HookviewConnectionError):
        console.print(f"[red]Connection Error:[/red] {e}")
        console.print("[dim]Is the viewer running? Check --url.[/dim]")
    elif isinstance(e, HookviewAuthError):
        console.print(f"[red]Authentication Error:[/red] {e}")
        console.print("[dim]Check --token or HOOKVIEW_SHUTDOWN_TOKEN.[/dim]")
    elif isinstance(e, HookviewClientError):
        console.print(f"[red]Error:[/red] {e}")
    else:
        console.print(f"[red]Unexpected Error:[/red] {e}")
    sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """hookview - realtime viewer for AI coding assistant hook events.

    Configuration (environment):
      HOOKVIEW_LOG_FILE        - JSONL log written by hook handlers
      HOOKVIEW_PORT            - Viewer port (default 3456)
      HOOKVIEW_SHUTDOWN_TOKEN  - Token accepted by POST /shutdown
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


def _config(**overrides) -> ViewerConfig:
    return ViewerConfig(**{k: v for k, v in overrides.items() if v is not None})


# =============================================================================
# Server
# =============================================================================


@main.command()
@click.option("--host", default=None, help="Interface to bind (default 127.0.0.1)")
@click.option("--port", type=int, default=None, help="Port to listen on (default 3456)")
@click.option("--log-file", type=click.Path(path_type=Path), default=None, help="Hook log to tail")
@click.option("--no-open", is_flag=True, help="Don't auto-open browser")
def serve(host: str | None, port: int | None, log_file: Path | None, no_open: bool) -> None:
    """Start the realtime viewer.

    Tails the hook log and streams every change to connected dashboards.
    Stops on Ctrl+C or an authenticated POST /shutdown.
    """
    from hookview.server import ViewerServer

    config = _config(host=host, port=port, log_file=log_file)
    server = ViewerServer(config)
    url = f"http://localhost:{config.port}"

    console.print("[bold]hookview[/bold]")
    console.print(f"  {url}")
    console.print(f"  Tailing {config.log_file}")
    if not config.shutdown_token:
        console.print("  [dim]HOOKVIEW_SHUTDOWN_TOKEN not set - /shutdown is disabled[/dim]")
    console.print("  Press Ctrl+C to stop\n")

    if not no_open:
        # Open browser before blocking on the server
        import threading
        threading.Timer(0.5, lambda: webbrowser.open(url)).start()

    try:
        server.run()
    except OSError as e:
        console.print(f"[red]Cannot listen on {config.host}:{config.port}:[/red] {e}")
        sys.exit(1)
    console.print("Shut down.")


# =============================================================================
# Log inspection
# =============================================================================


@main.command()
@click.option("--log-file", type=click.Path(path_type=Path), default=None, help="Hook log to read")
@click.option("--limit", "-l", default=20, help="Show the last N records")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON instead of a table")
def entries(log_file: Path | None, limit: int, as_json: bool) -> None:
    """Show the most recent hook events."""
    config = _config(log_file=log_file)
    records = read_log_records(config.log_file)
    recent = records[-limit:] if limit > 0 else records

    if as_json:
        click.echo(json.dumps(recent, indent=2, default=str))
        return

    if not recent:
        console.print(f"[yellow]No hook events in {config.log_file}[/yellow]")
        return

    table = Table(title=f"Hook Events ({len(recent)} of {len(records)})")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("Session", style="magenta")
    table.add_column("Tool", style="green")

    for record in recent:
        table.add_row(
            str(record.get("ts", record.get("timestamp", ""))),
            str(record.get("event", record.get("hook_event_name", ""))),
            str(record.get("session_id", ""))[:12],
            str(record.get("tool_name", record.get("tool", ""))),
        )

    console.print(table)


@main.command()
@click.argument("event")
@click.option("--log-file", type=click.Path(path_type=Path), default=None, help="Hook log to append to")
def log(event: str, log_file: Path | None) -> None:
    """Append a hook event, reading its JSON payload from stdin.

    Meant to be wired directly as a hook command:

        hookview log PreToolUse

    Always exits 0 so a logging problem never blocks the assistant.
    """
    config = _config(log_file=log_file)
    payload: dict | None = None
    raw = "" if sys.stdin.isatty() else sys.stdin.read()
    if raw.strip():
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logging.getLogger(__name__).warning(f"Ignoring non-JSON hook payload: {e}")
        else:
            payload = data if isinstance(data, dict) else {"payload": data}

    log_hook_event(event, payload, config.log_file)


# =============================================================================
# Remote control
# =============================================================================


@main.command()
@click.option("--url", default=None, help="Viewer URL (default http://127.0.0.1:<port>)")
def status(url: str | None) -> None:
    """Show whether a viewer is running and what it is tailing."""
    config = _config()
    base_url = url or f"http://127.0.0.1:{config.port}"
    try:
        data = HookviewClient(base_url).health()
    except HookviewClientError as e:
        handle_error(e)
        return

    table = Table(title="hookview Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Server", base_url)
    table.add_row("Status", str(data.get("status", "unknown")))
    table.add_row("Log File", str(data.get("log_file", "?")))
    table.add_row("Offset", f"{data.get('known_length', 0):,} bytes")
    table.add_row("Live Streams", str(data.get("subscribers", 0)))

    console.print(table)


@main.command()
@click.option("--url", default=None, help="Viewer URL (default http://127.0.0.1:<port>)")
@click.option("--token", envvar="HOOKVIEW_SHUTDOWN_TOKEN", default=None, help="Shutdown token")
def shutdown(url: str | None, token: str | None) -> None:
    """Stop a running viewer."""
    config = _config()
    base_url = url or f"http://127.0.0.1:{config.port}"
    try:
        result = HookviewClient(base_url, token=token).shutdown()
        console.print(f"[green]{result.get('message', 'Shutting down')}[/green]")
    except HookviewClientError as e:
        handle_error(e)


if __name__ == "__main__":
    main()
