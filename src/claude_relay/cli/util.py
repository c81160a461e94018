"""Instance directory helpers shared by the CLI commands"""

import json
import os
from pathlib import Path
from typing import Optional

import tomli

INSTANCE_FLAG = ".claude_relay_instance"
PID_FILENAME = ".claude_relay.pid"
DEFAULT_INSTANCE_DIR = ".claude-relay"


def get_instance_path(path: Optional[str] = None) -> Path:
    """Absolute instance directory; ~/.claude-relay when path is None"""
    if path is None:
        return Path.home() / DEFAULT_INSTANCE_DIR
    return Path(path).resolve()


def is_initialized(instance_path: Path) -> bool:
    return (instance_path / INSTANCE_FLAG).exists()


def get_instance_info(instance_path: Path) -> dict:
    """Metadata written by `init`

    Raises:
        FileNotFoundError: The directory holds no instance flag
    """
    flag_file = instance_path / INSTANCE_FLAG
    if not flag_file.exists():
        raise FileNotFoundError(f"No claude-relay instance at {instance_path}")
    return json.loads(flag_file.read_text())


def load_config(instance_path: Path) -> dict:
    with open(instance_path / "config.toml", "rb") as f:
        return tomli.load(f)


def get_pid_file(instance_path: Path) -> Path:
    return instance_path / PID_FILENAME


def read_pid(instance_path: Path) -> Optional[int]:
    """PID recorded by `start`, None if missing or unreadable"""
    try:
        return int(get_pid_file(instance_path).read_text().strip())
    except (OSError, ValueError):
        return None


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def is_running(instance_path: Path) -> bool:
    """Check if instance is running: PID file exists and its process is alive

    A PID file left behind by a crashed server is removed.
    """
    pid = read_pid(instance_path)
    if pid is None:
        return False
    if pid_alive(pid):
        return True
    get_pid_file(instance_path).unlink(missing_ok=True)
    return False


def server_address(config: dict, host: Optional[str] = None, port: Optional[int] = None):
    """Bind address from CLI overrides, falling back to the [server] section

    Raises:
        KeyError: A value is neither overridden nor configured
    """
    server = config.get("server", {})
    return (
        host if host is not None else server["host"],
        port if port is not None else server["port"],
    )
