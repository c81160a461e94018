"""Process-wide working directory used as cwd for every CLI turn"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from .exception import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class WorkspaceState:
    """
    Holds the single working directory shared by all sessions.

    Stored in app.state.workspace. Changing it affects the next spawned
    turn of every session, not turns already running.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path).resolve() if path else Path.cwd()

    @property
    def path(self) -> Path:
        return self._path

    def set(self, path: str) -> Path:
        """
        Change the working directory.

        Args:
            path: Directory path (relative paths resolve against the server cwd)

        Returns:
            The resolved absolute path

        Raises:
            ValidationError: Path is empty or not a directory
            NotFoundError: Path does not exist
        """
        directory = _require_directory(path)
        self._path = directory.resolve()
        logger.info(f"Working directory changed to {self._path}")
        return self._path


def _require_directory(path: Optional[str]) -> Path:
    if not path:
        raise ValidationError("Path is required")

    directory = Path(path).expanduser()
    if not directory.exists():
        raise NotFoundError("Directory does not exist")
    if not directory.is_dir():
        raise ValidationError("Path is not a directory")
    return directory


def list_files(path: str) -> List[dict]:
    """
    List the entries of a directory.

    Directories come first, then files, each group ordered by
    case-insensitive name.

    Raises:
        ValidationError: Path is empty or not a directory
        NotFoundError: Path does not exist
    """
    directory = _require_directory(path)

    entries = []
    with os.scandir(directory) as it:
        for entry in it:
            try:
                stat = entry.stat()
                is_directory = entry.is_dir()
            except OSError as e:
                # Broken symlink or entry removed while listing
                logger.debug(f"Skipping {entry.path}: {e}")
                continue
            entries.append({
                "name": entry.name,
                "path": os.path.join(str(directory), entry.name),
                "is_directory": is_directory,
                "size": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime),
            })

    entries.sort(key=lambda e: (not e["is_directory"], e["name"].lower()))
    return entries
