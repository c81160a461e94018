"""Typed view over the config.toml dictionary

The CLI loads config.toml into a plain dict (stored in app.state.config).
RelaySettings resolves every section with defaults so that runtime
components never have to re-check for missing keys.
"""

from pathlib import Path
from typing import List

from pydantic import BaseModel, Field


class ClaudeSettings(BaseModel):
    """[claude] section"""

    binary: str = Field("claude", description="Executable name or path of the Claude CLI")
    model: str = Field("sonnet", description="Model selector passed as --model")
    kill_grace_seconds: float = Field(
        2.0, description="Seconds between SIGINT and SIGKILL when stopping a turn", gt=0
    )


class RelaySection(BaseModel):
    """[relay] section"""

    max_buffer_bytes: int = Field(
        100_000, description="Ceiling for a partial record held by the line splitter", gt=0
    )
    dedup_window: int = Field(
        50, description="Identities kept by each session's live usage deduplicator", gt=0
    )


class HistorySettings(BaseModel):
    """[history] section"""

    projects_dir: str = Field("~/.claude/projects", description="Root of the CLI conversation logs")
    poll_interval: float = Field(10.0, description="Fallback mtime scan interval in seconds", gt=0)

    @property
    def projects_path(self) -> Path:
        return Path(self.projects_dir).expanduser()


class McpSettings(BaseModel):
    """[mcp] section, timeouts in seconds"""

    install_timeout: float = 45.0
    remove_timeout: float = 30.0
    status_timeout: float = 5.0
    custom_timeout: float = 300.0


class CorsSettings(BaseModel):
    """[cors] section"""

    allow_origins: List[str] = Field(default_factory=lambda: ["http://localhost:8080"])
    allow_credentials: bool = True
    allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    allow_headers: List[str] = Field(default_factory=lambda: ["*"])


class StaticSettings(BaseModel):
    """[static] section"""

    directory: str = Field("", description="Frontend directory to mount at /, empty to disable")


class RelaySettings(BaseModel):
    """All runtime settings resolved from config.toml"""

    claude: ClaudeSettings = Field(default_factory=ClaudeSettings)
    relay: RelaySection = Field(default_factory=RelaySection)
    history: HistorySettings = Field(default_factory=HistorySettings)
    mcp: McpSettings = Field(default_factory=McpSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)
    static: StaticSettings = Field(default_factory=StaticSettings)

    @classmethod
    def from_config(cls, config: dict) -> "RelaySettings":
        """Build settings from the raw config dict, ignoring unknown sections

        Args:
            config: Configuration dictionary loaded from config.toml

        Returns:
            RelaySettings with defaults filled in
        """
        known = {name: config[name] for name in cls.model_fields if name in config}
        return cls.model_validate(known)
