"""Shared pytest fixtures for claude-relay tests."""

from pathlib import Path

import pytest

from claude_relay.backend.runtime.session_registry import SessionRegistry
from claude_relay.backend.workspace import WorkspaceState

from .support import FakeRunner, Outbox


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceState:
    return WorkspaceState(tmp_path)


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root
