"""FastAPI application factory and configuration"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .api import (
    history_router,
    mcp_router,
    rules_router,
    usage_router,
    websocket_router,
    workspace_router,
)
from .config import RelaySettings
from .enum import ServerMessageType
from .exception import RelayException
from .history import ChatHistoryScanner, ChatHistoryWatcher
from .logging import setup_logging
from .runtime.mcp import McpManager
from .runtime.process_runner import ProcessRunner
from .runtime.session_registry import SessionRegistry
from .schema.response import ErrorResponse
from .websocket.client_broker import ConnectionBroker
from .workspace import WorkspaceState

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management

    Startup: start the chat history watcher.
    Shutdown: stop the watcher, close client connections and terminate
    any Claude turn still running.
    """
    broker: ConnectionBroker = app.state.connection_broker

    def on_history_change(file_path: str, timestamp: int) -> None:
        broker.broadcast({
            "type": ServerMessageType.CHAT_HISTORY_CHANGED.value,
            "filePath": file_path,
            "timestamp": timestamp,
        })

    settings: RelaySettings = app.state.settings
    watcher = ChatHistoryWatcher(
        settings.history.projects_path,
        on_history_change,
        poll_interval=settings.history.poll_interval,
    )
    app.state.history_watcher = watcher

    logger.info("Starting chat history watcher...")
    await watcher.start()

    yield

    # Shutdown: Stop watcher
    try:
        await watcher.stop()
    except Exception as e:
        logger.error(f"Chat history watcher shutdown failed: {e}")

    # Shutdown: Disconnect all clients
    try:
        await broker.disconnect_all()
    except Exception as e:
        logger.error(f"WebSocket cleanup failed: {e}")

    # Shutdown: Terminate running turns
    registry: SessionRegistry = app.state.session_registry
    for session in registry.streaming_sessions():
        logger.info(f"Terminating running turn of session {session.session_id}")
        session.process.kill()

    logger.info("claude-relay shutdown complete")


def create_app(
    instance_path: Path,
    config: dict,
    process_runner: Optional[ProcessRunner] = None,
) -> FastAPI:
    """Create and configure FastAPI application instance

    This is the application factory function that initializes logging,
    creates the FastAPI app, builds the runtime components, configures
    middleware, registers exception handlers, and includes routers.

    Args:
        instance_path: Path to the claude-relay instance directory
        config: Configuration dictionary loaded from config.toml
        process_runner: Runner for Claude turns (built from [claude] if omitted)

    Returns:
        Configured FastAPI application instance
    """
    # Initialize logging first
    setup_logging(instance_path)

    settings = RelaySettings.from_config(config)

    # Create FastAPI application
    app = FastAPI(
        title="claude-relay API",
        description="Local web relay for the Claude CLI",
        lifespan=lifespan,
    )

    # ==================== Runtime Components ====================

    app.state.config = config
    app.state.settings = settings
    app.state.instance_path = instance_path

    app.state.workspace = WorkspaceState()
    app.state.session_registry = SessionRegistry(dedup_window=settings.relay.dedup_window)
    app.state.connection_broker = ConnectionBroker()
    app.state.process_runner = process_runner or ProcessRunner(
        binary=settings.claude.binary,
        model=settings.claude.model,
        kill_grace_seconds=settings.claude.kill_grace_seconds,
    )
    app.state.history_scanner = ChatHistoryScanner(settings.history.projects_path)
    app.state.mcp_manager = McpManager(
        binary=settings.claude.binary,
        install_timeout=settings.mcp.install_timeout,
        remove_timeout=settings.mcp.remove_timeout,
        status_timeout=settings.mcp.status_timeout,
        custom_timeout=settings.mcp.custom_timeout,
    )

    # ==================== CORS Configuration ====================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # ==================== Exception Handlers ====================

    @app.exception_handler(RelayException)
    async def relay_exception_handler(request: Request, exc: RelayException) -> JSONResponse:
        """Handle all claude-relay business exceptions

        All custom exceptions (ValidationError, ClaudeNotFoundError, etc.) inherit
        from RelayException. This handler returns a unified ErrorResponse format.

        Args:
            request: The incoming request
            exc: The relay exception instance

        Returns:
            JSONResponse with ErrorResponse format (HTTP 200, success=false)
        """
        error = {"code": exc.code}
        if exc.details:
            error["details"] = exc.details
        return JSONResponse(
            status_code=200,  # Business errors return 200 with success=false
            content=ErrorResponse(message=exc.message, error=error).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors

        Args:
            request: The incoming request
            exc: The validation error instance

        Returns:
            JSONResponse with ErrorResponse format (HTTP 200, success=false)
        """
        return JSONResponse(
            status_code=200,  # Validation errors also return 200 with success=false
            content=ErrorResponse(
                message="Invalid input format",
                error={
                    "code": "VALIDATION_ERROR",
                    "details": exc.errors()
                }
            ).model_dump(mode="json")
        )

    # ==================== Router Registration ====================

    app.include_router(websocket_router)
    app.include_router(workspace_router, prefix="/api")
    app.include_router(history_router, prefix="/api")
    app.include_router(usage_router, prefix="/api")
    app.include_router(mcp_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")

    # ==================== Static Frontend ====================

    static_dir = settings.static.directory
    if static_dir:
        static_path = Path(static_dir).expanduser()
        if static_path.is_dir():
            app.mount("/", StaticFiles(directory=static_path, html=True), name="static")
            logger.info(f"Serving frontend from {static_path}")
        else:
            logger.warning(f"Static directory not found, frontend disabled: {static_path}")

    return app
