"""Connection-level WebSocket message broker.

Every client connection gets an outgoing queue and a forwarding task.
Producers (relay listeners, the chat history watcher, HTTP routes) never
await a socket: they push into the queue and return immediately.

Architecture:
    Process reader task / watcher / route
        ↓ broker.push(connection_id, msg)   or   broker.broadcast(msg)
        ↓ queue.put_nowait
    ConnectionBroker._forward_messages(connection_id)
        ↓ queue.get()
        ↓ websocket.send_json(msg)
    Browser

Per-connection order is preserved because each connection has a single
queue drained by a single task.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionBroker:
    """
    Registry of live client connections and their outgoing queues.

    Stored in app.state.connection_broker; lives for the application lifetime.
    """

    def __init__(self):
        # {connection_id → WebSocket}
        self._websockets: Dict[str, WebSocket] = {}

        # {connection_id → asyncio.Queue}
        self._queues: Dict[str, asyncio.Queue] = {}

        # {connection_id → asyncio.Task}
        # Keep reference to tasks so we can cancel them on disconnect
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._websockets)

    async def connect(self, websocket: WebSocket, connection_id: Optional[str] = None) -> str:
        """
        Register an accepted WebSocket and start forwarding to it.

        Args:
            websocket: Accepted WebSocket connection
            connection_id: Identifier to use (generated if omitted)

        Returns:
            The connection id
        """
        connection_id = connection_id or str(uuid.uuid4())

        self._websockets[connection_id] = websocket
        self._queues[connection_id] = asyncio.Queue()

        task = asyncio.create_task(self._forward_messages(connection_id))
        self._tasks[connection_id] = task

        def task_done_callback(t: asyncio.Task):
            if not t.cancelled() and t.exception() is not None:
                exc = t.exception()
                logger.error(
                    f"Forwarding task failed for connection {connection_id}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )

        task.add_done_callback(task_done_callback)

        logger.info(f"Connection {connection_id} registered ({len(self._websockets)} open)")
        return connection_id

    async def disconnect(self, connection_id: str, close: bool = False) -> None:
        """
        Stop forwarding to a connection and forget it.

        Args:
            connection_id: Connection to remove
            close: Also close the WebSocket (used at shutdown)
        """
        websocket = self._websockets.pop(connection_id, None)
        if websocket is None:
            return

        task = self._tasks.pop(connection_id, None)
        if task is not None and not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=1.0)
            except asyncio.CancelledError:
                logger.debug(f"Message forwarding task cancelled for connection {connection_id}")
            except asyncio.TimeoutError:
                logger.warning(f"Task cancellation timed out for connection {connection_id}")

        self._queues.pop(connection_id, None)

        if close:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket for connection {connection_id}: {e}")

        logger.info(f"Connection {connection_id} disconnected ({len(self._websockets)} open)")

    async def _forward_messages(self, connection_id: str):
        """
        Forward messages from a connection's queue to its WebSocket.

        Args:
            connection_id: Connection to serve
        """
        queue = self._queues.get(connection_id)
        if queue is None:
            logger.error(f"Queue not found for connection {connection_id}, task exiting")
            return

        try:
            while connection_id in self._websockets:
                message = await queue.get()

                ws = self._websockets.get(connection_id)
                if ws is None:
                    break

                try:
                    await ws.send_json(message)
                except Exception as e:
                    # Socket already gone; the receive loop will clean up
                    logger.debug(f"Failed to send to connection {connection_id}: {e}")
                    break

                logger.debug(f"Sent to connection {connection_id}: type={message.get('type')}")
        finally:
            logger.debug(f"Message forwarding task ended for connection {connection_id}")

    def push(self, connection_id: str, message: Dict[str, Any]) -> bool:
        """
        Queue a message for one connection (non-blocking).

        Returns:
            True if queued, False if the connection is gone (message dropped)
        """
        queue = self._queues.get(connection_id)
        if queue is None:
            logger.debug(f"No connection {connection_id}, {message.get('type')} dropped")
            return False
        queue.put_nowait(message)
        return True

    def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Queue a message for every open connection.

        Returns:
            Number of connections the message was queued for
        """
        count = 0
        for connection_id in list(self._queues.keys()):
            if self.push(connection_id, message):
                count += 1
        return count

    async def disconnect_all(self):
        """Close every connection (application shutdown)"""
        connection_ids = list(self._websockets.keys())

        for connection_id in connection_ids:
            await self.disconnect(connection_id, close=True)

        logger.info(f"Disconnected all clients ({len(connection_ids)} connections)")
