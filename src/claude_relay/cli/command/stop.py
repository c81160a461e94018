"""Stop command implementation"""

import os
import signal
import time

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    get_pid_file,
    is_initialized,
    is_running,
    pid_alive,
    read_pid,
)

console = Console()

STOP_TIMEOUT_SECONDS = 10


@click.command(name="stop", help="Stop the claude-relay server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force kill if graceful shutdown fails",
)
def stop(path: str = None, force: bool = False):
    """Stop the claude-relay server

    Args:
        path: Instance directory path (default: ~/.claude-relay)
        force: Force kill if graceful shutdown fails
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if not is_running(instance_path):
        console.print(f"[yellow]Instance not running at {instance_path}[/yellow]")
        return

    pid = read_pid(instance_path)
    console.print(f"Stopping claude-relay (pid {pid})...")

    os.kill(pid, signal.SIGTERM)

    deadline = time.monotonic() + STOP_TIMEOUT_SECONDS
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            break
        time.sleep(0.2)

    if pid_alive(pid):
        if not force:
            console.print(
                f"[red]Error: Server did not stop within {STOP_TIMEOUT_SECONDS}s[/red]"
            )
            console.print("[yellow]Retry with --force to kill it[/yellow]")
            raise click.Abort()
        console.print("[yellow]Graceful shutdown timed out, sending SIGKILL[/yellow]")
        os.kill(pid, signal.SIGKILL)

    get_pid_file(instance_path).unlink(missing_ok=True)
    console.print("[green]✓ claude-relay stopped[/green]")
