"""Start command implementation"""

import os
import shutil

import click
import uvicorn
from rich.console import Console

from ...backend.app import create_app
from ..util import (
    get_instance_path,
    get_pid_file,
    is_initialized,
    is_running,
    load_config,
    server_address,
)

console = Console()


def _fail(message: str, hint: str = None):
    console.print(f"[red]Error: {message}[/red]")
    if hint:
        console.print(f"[yellow]{hint}[/yellow]")
    raise click.Abort()


@click.command(name="start", help="Start the claude-relay server")
@click.argument("path", type=click.Path(), required=False)
@click.option("--host", default=None, help="Override [server] host from config.toml")
@click.option("--port", type=int, default=None, help="Override [server] port from config.toml")
def start(path: str = None, host: str = None, port: int = None):
    """Run the relay server in the foreground until interrupted

    Args:
        path: Instance directory path (default: ~/.claude-relay)
        host: Bind address, overrides config
        port: Bind port, overrides config
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        _fail(f"Not initialized at {instance_path}", f"Run: claude-relay init {path or ''}")
    if is_running(instance_path):
        _fail("Instance already running", f"Location: {instance_path}")

    try:
        config = load_config(instance_path)
    except (OSError, ValueError) as e:
        _fail(f"Cannot load config.toml: {e}")

    try:
        host, port = server_address(config, host, port)
    except KeyError as e:
        _fail(
            f"Missing required config key: {e}",
            "Add a [server] section with 'host' and 'port' to config.toml, or pass --host/--port",
        )

    binary = config.get("claude", {}).get("binary", "claude")
    if shutil.which(binary) is None:
        console.print(
            f"[yellow]Warning: Claude CLI '{binary}' not found on PATH; "
            f"conversations will fail until it is installed[/yellow]"
        )

    console.print(f"[cyan]claude-relay instance: {instance_path}[/cyan]")
    console.print(f"[cyan]HTTP:      http://{host}:{port}[/cyan]")
    console.print(f"[cyan]WebSocket: ws://{host}:{port}/ws[/cyan]")
    console.print("")

    app = create_app(instance_path, config)

    # Marks the instance as running for `start` and `stop`
    pid_file = get_pid_file(instance_path)
    pid_file.write_text(str(os.getpid()))
    try:
        uvicorn.run(app, host=host, port=port)
    finally:
        pid_file.unlink(missing_ok=True)
