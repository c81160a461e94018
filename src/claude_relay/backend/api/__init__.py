"""
API package for REST and WebSocket endpoints.
"""

from .websocket import router as websocket_router
from .workspace import router as workspace_router
from .history import router as history_router
from .usage import router as usage_router
from .mcp import router as mcp_router
from .rules import router as rules_router

__all__ = [
    "websocket_router",
    "workspace_router",
    "history_router",
    "usage_router",
    "mcp_router",
    "rules_router",
]
