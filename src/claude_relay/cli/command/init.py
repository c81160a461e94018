"""Init command implementation"""

import json
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console

from ..util import INSTANCE_FLAG, get_instance_path, is_initialized

console = Console()

DEFAULT_CONFIG = """[server]
host = "127.0.0.1"
port = 3000

[cors]
allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
allow_credentials = true
allow_methods = ["*"]
allow_headers = ["*"]

[claude]
binary = "claude"
model = "sonnet"
kill_grace_seconds = 2.0

[relay]
max_buffer_bytes = 100000
dedup_window = 50

[history]
projects_dir = "~/.claude/projects"
poll_interval = 10.0

[mcp]
install_timeout = 45
remove_timeout = 30
status_timeout = 5
custom_timeout = 300

[static]
# Directory with the web frontend, served at /
directory = ""
"""


def _write_instance(instance_path: Path) -> Path:
    """Lay out logs/, config.toml and the instance flag; returns the config path"""
    (instance_path / "logs").mkdir(parents=True, exist_ok=True)
    config_file = instance_path / "config.toml"
    config_file.write_text(DEFAULT_CONFIG)
    flag = {
        "initialized_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "instance_path": str(instance_path),
    }
    (instance_path / INSTANCE_FLAG).write_text(json.dumps(flag, indent=2))
    return config_file


@click.command(name="init", help="Initialize a new claude-relay instance")
@click.argument("path", type=click.Path(), required=False)
def init(path: str = None):
    """Create an instance directory with a default config.toml"""
    instance_path = get_instance_path(path)

    if is_initialized(instance_path):
        console.print(f"[red]Error: Already initialized at {instance_path}[/red]")
        raise click.Abort()
    # Refuse to scatter files into an unrelated directory
    if instance_path.exists() and any(instance_path.iterdir()):
        console.print(f"[red]Error: Directory is not empty: {instance_path}[/red]")
        raise click.Abort()

    config_file = _write_instance(instance_path)

    start_cmd = f"claude-relay start {path}" if path else "claude-relay start"
    console.print(f"[green]✓ Instance ready at {instance_path}[/green]")
    console.print(f"  Config: {config_file}")
    console.print(f"  Logs:   {instance_path / 'logs'}")
    console.print(f"  Run:    {start_cmd}")
