"""MCP tool-server management through the Claude CLI

Installation uses fixed command templates; nothing from the client is
interpolated into them except the choice of template.
"""

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..enum import McpType
from ..exception import ValidationError
from .command import CommandResult, run_command

logger = logging.getLogger(__name__)

MCP_INSTALL_TEMPLATES: Dict[McpType, List[str]] = {
    McpType.CONTEXT7: ["mcp", "add", "--transport", "http", "context7", "https://mcp.context7.com/mcp"],
    McpType.ATLASSIAN: ["mcp", "add", "--transport", "sse", "atlassian", "https://mcp.atlassian.com/v1/sse"],
    McpType.NOTION: ["mcp", "add", "--transport", "http", "notion", "https://mcp.notion.com/mcp"],
    McpType.PLAYWRIGHT: ["mcp", "add", "-s", "user", "playwright", "npx", "@playwright/mcp@latest"],
}

INSTALL_MARKERS = ("successfully", "added", "installed")
REMOVE_MARKERS = ("removed", "deleted", "success")

_SERVER_NAME = re.compile(r"^([^:]+):")
_NEEDS_AUTH = re.compile(r"needs authentication|authentication required|not authenticated", re.IGNORECASE)


@dataclass
class McpStatus:
    servers: List[str] = field(default_factory=list)
    unauthenticated_servers: List[str] = field(default_factory=list)


def resolve_mcp_type(value: Optional[str]) -> McpType:
    """Map a client-supplied type to a template, defaulting to context7"""
    try:
        return McpType(value or McpType.CONTEXT7.value)
    except ValueError:
        raise ValidationError(f"Unsupported MCP type: {value}")


def parse_mcp_list(output: str) -> McpStatus:
    """
    Parse `claude mcp list` output.

    Server lines look like `name: url-or-command - status`; a status
    mentioning authentication marks the server as unauthenticated.
    """
    status = McpStatus()
    for line in output.splitlines():
        line = line.strip()
        if not line or "No MCP servers" in line or ":" not in line:
            continue
        match = _SERVER_NAME.match(line)
        if not match:
            continue
        name = match.group(1).strip().lower()
        if not name or name in status.servers:
            continue
        status.servers.append(name)
        if _NEEDS_AUTH.search(line):
            status.unauthenticated_servers.append(name)
    return status


class McpManager:
    """
    Runs `claude mcp ...` subcommands with per-operation timeouts.

    Attributes:
        binary: Claude CLI executable
        install_timeout / remove_timeout / status_timeout / custom_timeout: Seconds
    """

    def __init__(
        self,
        binary: str = "claude",
        install_timeout: float = 45.0,
        remove_timeout: float = 30.0,
        status_timeout: float = 5.0,
        custom_timeout: float = 300.0,
    ):
        self.binary = binary
        self.install_timeout = install_timeout
        self.remove_timeout = remove_timeout
        self.status_timeout = status_timeout
        self.custom_timeout = custom_timeout

    async def install(self, mcp_type: McpType, cwd: str) -> CommandResult:
        args = [self.binary] + MCP_INSTALL_TEMPLATES[mcp_type]
        result = await run_command(args, cwd=cwd, timeout=self.install_timeout)
        logger.info(f"MCP install {mcp_type.value}: exit_code={result.exit_code}")
        return result

    @staticmethod
    def install_succeeded(result: CommandResult) -> bool:
        return result.succeeded or result.contains(*INSTALL_MARKERS)

    async def remove(self, name: str, cwd: str) -> CommandResult:
        name = (name or "").strip()
        if not name:
            raise ValidationError("MCP type is required")
        result = await run_command(
            [self.binary, "mcp", "remove", name], cwd=cwd, timeout=self.remove_timeout
        )
        logger.info(f"MCP remove {name}: exit_code={result.exit_code}")
        return result

    @staticmethod
    def remove_succeeded(result: CommandResult) -> bool:
        return result.succeeded or result.contains(*REMOVE_MARKERS)

    async def status(self, cwd: str):
        """
        Returns:
            Tuple of (CommandResult, McpStatus)
        """
        result = await run_command([self.binary, "mcp", "list"], cwd=cwd, timeout=self.status_timeout)
        status = parse_mcp_list(result.output)
        if status.servers:
            logger.info(f"Detected {len(status.servers)} MCP servers: {', '.join(status.servers)}")
        return result, status

    async def custom(self, command: str, cwd: str) -> CommandResult:
        """Run a user-typed command line (shell-split, executed without a shell)"""
        if not command or not isinstance(command, str) or not command.strip():
            raise ValidationError("Invalid command provided")
        try:
            args = shlex.split(command)
        except ValueError as e:
            raise ValidationError(f"Invalid command provided: {e}")
        return await run_command(args, cwd=cwd, timeout=self.custom_timeout)
