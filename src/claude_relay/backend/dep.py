"""Dependency injection functions for FastAPI routes

Every long-lived component is created once in create_app() and stored on
app.state; routes receive them through these functions.

Usage:
    from typing import Annotated
    from fastapi import Depends

    WorkspaceDep = Annotated[WorkspaceState, Depends(get_workspace)]

    @router.get("/example")
    async def example_route(workspace: WorkspaceDep):
        ...
"""

from fastapi import Request

from .config import RelaySettings
from .history import ChatHistoryScanner
from .runtime.mcp import McpManager
from .websocket.client_broker import ConnectionBroker
from .workspace import WorkspaceState


def get_settings(request: Request) -> RelaySettings:
    return request.app.state.settings


def get_workspace(request: Request) -> WorkspaceState:
    return request.app.state.workspace


def get_history_scanner(request: Request) -> ChatHistoryScanner:
    return request.app.state.history_scanner


def get_mcp_manager(request: Request) -> McpManager:
    return request.app.state.mcp_manager


def get_connection_broker(request: Request) -> ConnectionBroker:
    return request.app.state.connection_broker
