"""CLAUDE.md rule files

User rules live in ~/.claude/CLAUDE.md, one `- rule` line each.
Project rules live in <working directory>/CLAUDE.md, as `- rule` lines
under the `## Project Notes` heading; the rest of that file is left alone.
"""

import logging
from pathlib import Path
from typing import List, Optional

from .exception import InternalError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PROJECT_NOTES_HEADING = "## Project Notes"
RULES_FILENAME = "CLAUDE.md"


def user_rules_path() -> Path:
    return Path.home() / ".claude" / RULES_FILENAME


def project_rules_path(working_directory: Path) -> Path:
    return Path(working_directory) / RULES_FILENAME


def _ensure_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text("", encoding="utf-8")


def _rule_text(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped.startswith("-"):
        return None
    rule = stripped[1:].strip()
    return rule or None


def _project_rule_lines(lines: List[str]) -> List[int]:
    """Indices of rule lines inside the Project Notes section"""
    indices = []
    in_notes = False
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped == PROJECT_NOTES_HEADING:
            in_notes = True
            continue
        if stripped.startswith("## "):
            in_notes = False
            continue
        if in_notes and _rule_text(line) is not None:
            indices.append(i)
    return indices


def _user_rule_lines(lines: List[str]) -> List[int]:
    return [i for i, line in enumerate(lines) if _rule_text(line) is not None]


def load_user_rules(path: Optional[Path] = None) -> List[str]:
    """Read user rules, creating an empty file if needed"""
    path = path or user_rules_path()
    _ensure_file(path)
    lines = path.read_text(encoding="utf-8").split("\n")
    return [_rule_text(lines[i]) for i in _user_rule_lines(lines)]


def load_project_rules(working_directory: Path) -> List[str]:
    """Read rules from the Project Notes section, creating an empty file if needed"""
    path = project_rules_path(working_directory)
    _ensure_file(path)
    lines = path.read_text(encoding="utf-8").split("\n")
    return [_rule_text(lines[i]) for i in _project_rule_lines(lines)]


def add_user_rule(rule: str, path: Optional[Path] = None) -> None:
    rule = (rule or "").strip()
    if not rule:
        raise ValidationError("Rule cannot be empty")

    path = path or user_rules_path()
    _ensure_file(path)
    content = path.read_text(encoding="utf-8").strip()
    prefix = content + "\n" if content else ""
    path.write_text(f"{prefix}- {rule}\n", encoding="utf-8")
    logger.info(f"User rule added to {path}")


def add_project_rule(rule: str, working_directory: Path) -> None:
    """Append a rule at the end of the Project Notes section (created if missing)"""
    rule = (rule or "").strip()
    if not rule:
        raise ValidationError("Rule cannot be empty")

    path = project_rules_path(working_directory)
    _ensure_file(path)
    content = path.read_text(encoding="utf-8")

    if PROJECT_NOTES_HEADING not in content:
        stripped = content.strip()
        content = stripped + ("\n\n" if stripped else "") + PROJECT_NOTES_HEADING + "\n"

    lines = content.rstrip("\n").split("\n")
    heading = next(i for i, line in enumerate(lines) if line.strip() == PROJECT_NOTES_HEADING)

    # End of section: next level-2 heading, or end of file
    end = len(lines)
    for i in range(heading + 1, len(lines)):
        if lines[i].strip().startswith("## "):
            end = i
            break

    # Keep the blank line separating the section from the next heading
    insert_at = end
    while insert_at > heading + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1

    lines.insert(insert_at, f"- {rule}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info(f"Project rule added to {path}")


def _delete_rule_line(path: Path, index: int, project: bool) -> None:
    if index is None or index < 0:
        raise ValidationError("Invalid rule index")
    if not path.exists():
        raise NotFoundError("Rules file not found")

    lines = path.read_text(encoding="utf-8").split("\n")
    rule_lines = _project_rule_lines(lines) if project else _user_rule_lines(lines)
    if index >= len(rule_lines):
        raise ValidationError("Rule index out of range")

    del lines[rule_lines[index]]
    path.write_text("\n".join(lines), encoding="utf-8")
    logger.info(f"Rule {index} deleted from {path}")


def delete_user_rule(index: int, path: Optional[Path] = None) -> None:
    _delete_rule_line(path or user_rules_path(), index, project=False)


def delete_project_rule(index: int, working_directory: Path) -> None:
    _delete_rule_line(project_rules_path(working_directory), index, project=True)


def read_claude_md(file_path: str) -> str:
    """
    Read a CLAUDE.md file for the editor, creating it (and its directory) if missing.

    Raises:
        ValidationError: No path given
        InternalError: The file could not be created or read
    """
    if not file_path:
        raise ValidationError("filePath is required")
    path = Path(file_path).expanduser()
    try:
        _ensure_file(path)
        return path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Error reading {path}: {e}")
        raise InternalError(f"Failed to read {path}: {e}")


def write_claude_md(file_path: str, content: str) -> None:
    """
    Overwrite a CLAUDE.md file from the editor.

    Raises:
        ValidationError: No path given
        InternalError: The file could not be written
    """
    if not file_path:
        raise ValidationError("filePath is required")
    path = Path(file_path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content or "", encoding="utf-8")
    except OSError as e:
        logger.error(f"Error writing {path}: {e}")
        raise InternalError(f"Failed to write {path}: {e}")
    logger.info(f"CLAUDE.md written: {path}")
