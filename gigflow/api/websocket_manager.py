"""
WebSocket Manager for Real-Time Marketplace Events

Every authenticated socket joins the room ``user:<id>`` of the user its token
names. The notifier pushes events (``bidHired``, ``gigAssigned``, ``newBid``)
into those rooms; a user with several tabs open gets every event on each.

Features:
- JWT authentication (same token as the HTTP API)
- Per-user rooms with fan-out delivery
- ping/pong, periodic heartbeats and stale-connection cleanup
- Per-client inbound message rate limit

Usage:
    manager = WebSocketManager(identity)
    await manager.start()
    await manager.connect_client(websocket, token)
    await manager.emit_to_room(user_room(user_id), "bidHired", {...})
"""

import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional, Set, Union

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from gigflow.marketplace.errors import UnauthenticatedError
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)


class WebSocketMessageType(PyEnum):
    """Server-originated control messages."""

    AUTH_RESPONSE = "auth_response"
    HEARTBEAT = "heartbeat"
    PONG = "pong"
    ERROR = "error"


def user_room(user_id: str) -> str:
    """Room every socket of ``user_id`` is joined to."""
    return f"user:{user_id}"


@dataclass
class WebSocketMessage:
    """WebSocket message data structure."""

    type: str
    timestamp: float
    data: Dict[str, Any]

    def to_json(self) -> str:
        """Convert message to JSON string."""
        return json.dumps(
            {"type": self.type, "timestamp": self.timestamp, "data": self.data},
            default=str,
        )


class WebSocketAuthError(Exception):
    """Authentication error for WebSocket connections."""

    pass


class WebSocketManager:
    """WebSocket connection manager with authentication and per-user rooms."""

    def __init__(
        self,
        identity,
        heartbeat_interval: int = 30,
        max_messages_per_minute: int = 60,
    ):
        """
        Args:
            identity: IdentityProvider used to verify connection tokens
            heartbeat_interval: Seconds between server heartbeats
            max_messages_per_minute: Inbound messages allowed per client
        """
        self.identity = identity

        # Connection management
        self.active_connections: Dict[str, WebSocket] = {}
        self.client_sessions: Dict[str, Dict[str, Any]] = {}
        self.rooms: Dict[str, Set[str]] = {}  # room -> client ids

        # Heartbeat management
        self.heartbeat_tasks: Dict[str, asyncio.Task] = {}
        self.last_heartbeat: Dict[str, float] = {}
        self.heartbeat_interval = heartbeat_interval
        self.stale_timeout = heartbeat_interval * 4

        # Rate limiting
        self.message_rate_limits: Dict[str, List[float]] = {}
        self.max_messages_per_minute = max_messages_per_minute

        # Background tasks
        self.cleanup_task: Optional[asyncio.Task] = None
        self.cleanup_interval = 60

        logger.info("WebSocket Manager initialized")

    async def start(self):
        """Start background tasks."""
        self.cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("WebSocket Manager started")

    async def stop(self):
        """Stop background tasks and close all connections."""
        if self.cleanup_task:
            self.cleanup_task.cancel()
            try:
                await self.cleanup_task
            except asyncio.CancelledError:
                logger.info("Cleanup task cancelled")
            self.cleanup_task = None

        for client_id in list(self.active_connections):
            await self.disconnect_client(client_id)

        logger.info("WebSocket Manager stopped")

    async def authenticate_client(self, websocket: WebSocket, token: str) -> str:
        """
        Verify a connection token.

        Returns:
            The user id named by the token

        Raises:
            WebSocketAuthError: Missing or invalid token
        """
        if not token:
            raise WebSocketAuthError("Authentication error: no token")
        try:
            return self.identity.decode_token(token)
        except UnauthenticatedError as e:
            raise WebSocketAuthError(f"Authentication error: {e.message}")

    async def connect_client(
        self, websocket: WebSocket, token: Optional[str] = None
    ) -> bool:
        """
        Accept, authenticate and serve a client until it disconnects.

        Args:
            websocket: The incoming socket
            token: JWT from the query string or cookie; when absent the
                first text frame is read as the token

        Returns:
            False if authentication failed
        """
        await websocket.accept()
        client_id = str(uuid.uuid4())

        try:
            if token is None:
                token = await websocket.receive_text()
            user_id = await self.authenticate_client(websocket, token)
        except WebSocketAuthError as e:
            await self._send_message(
                websocket,
                WebSocketMessageType.AUTH_RESPONSE,
                {"success": False, "error": str(e)},
            )
            await websocket.close(code=1008)  # Policy violation
            return False
        except WebSocketDisconnect:
            logger.info(f"Client {client_id} disconnected during authentication")
            return False

        now = time.time()
        self.active_connections[client_id] = websocket
        self.client_sessions[client_id] = {
            "user_id": user_id,
            "connected_at": now,
            "last_activity": now,
        }
        self.last_heartbeat[client_id] = now
        room = user_room(user_id)
        self.join_room(client_id, room)

        self.heartbeat_tasks[client_id] = asyncio.create_task(
            self._heartbeat_loop(client_id)
        )

        await self._send_message(
            websocket,
            WebSocketMessageType.AUTH_RESPONSE,
            {
                "success": True,
                "clientId": client_id,
                "userId": user_id,
                "room": room,
                "serverTime": now,
            },
        )
        logger.info(f"Client {client_id} connected as {user_id}")

        await self._handle_client_messages(client_id)
        return True

    async def disconnect_client(self, client_id: str):
        """Disconnect a client and clean up resources."""
        websocket = self.active_connections.pop(client_id, None)
        if websocket is not None and _is_open(websocket):
            try:
                await websocket.close()
            except Exception as e:
                logger.warning(f"Error closing websocket for {client_id}: {e}")

        self.client_sessions.pop(client_id, None)
        self.last_heartbeat.pop(client_id, None)
        self.message_rate_limits.pop(client_id, None)

        task = self.heartbeat_tasks.pop(client_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        for room, client_ids in list(self.rooms.items()):
            client_ids.discard(client_id)
            if not client_ids:
                self.rooms.pop(room, None)

        logger.info(f"Client {client_id} disconnected")

    def join_room(self, client_id: str, room: str) -> bool:
        """Add a connected client to a room."""
        if client_id not in self.active_connections:
            return False
        self.rooms.setdefault(room, set()).add(client_id)
        logger.debug(f"Client {client_id} joined {room}")
        return True

    def leave_room(self, client_id: str, room: str):
        if room in self.rooms:
            self.rooms[room].discard(client_id)
            if not self.rooms[room]:
                self.rooms.pop(room, None)

    async def emit_to_room(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """
        Send an event to every client in a room.

        A client whose send fails is dropped; the others still receive.

        Returns:
            Number of clients the event was delivered to
        """
        delivered = 0
        for client_id in list(self.rooms.get(room, ())):
            websocket = self.active_connections.get(client_id)
            if websocket is None:
                continue
            try:
                await self._send_message(websocket, event, data)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping client {client_id} after failed send: {e}")
                await self.disconnect_client(client_id)
        return delivered

    async def _handle_client_messages(self, client_id: str):
        """Handle incoming messages from a client."""
        websocket = self.active_connections[client_id]

        try:
            while client_id in self.active_connections:
                message = await websocket.receive_text()
                now = time.time()
                session = self.client_sessions.get(client_id)
                if session is not None:
                    session["last_activity"] = now
                self.last_heartbeat[client_id] = now

                if not self._check_rate_limit(client_id):
                    await self._send_message(
                        websocket,
                        WebSocketMessageType.ERROR,
                        {"error": "Rate limit exceeded"},
                    )
                    continue

                await self._process_client_message(client_id, message)

        except WebSocketDisconnect:
            logger.info(f"Client {client_id} disconnected")
        except Exception as e:
            logger.error(f"Error handling messages for client {client_id}: {e}")
        finally:
            await self.disconnect_client(client_id)

    async def _process_client_message(self, client_id: str, message: str):
        """Process a message from a client."""
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return

        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from client {client_id}: {message}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Unexpected payload from client {client_id}: {message}")
            return

        message_type = data.get("type")
        payload = data.get("data") or {}

        if message_type == "ping":
            await self._send_message(
                websocket,
                WebSocketMessageType.PONG,
                {"timestamp": datetime.now(timezone.utc).isoformat()},
            )
        elif message_type == "heartbeat":
            self.last_heartbeat[client_id] = time.time()
        elif message_type == "join":
            # Clients may only (re)join their own room
            user_id = self.client_sessions[client_id]["user_id"]
            requested = str(payload.get("userId", user_id))
            if requested != user_id:
                await self._send_message(
                    websocket,
                    WebSocketMessageType.ERROR,
                    {"error": "Cannot join another user's room"},
                )
                return
            self.join_room(client_id, user_room(user_id))
        else:
            logger.warning(f"Unknown message type from client {client_id}: {message_type}")

    async def _send_message(
        self,
        websocket: WebSocket,
        message_type: Union[WebSocketMessageType, str],
        data: Dict[str, Any],
    ):
        """Send a message to a specific websocket."""
        if websocket.application_state == WebSocketState.CONNECTED:
            type_name = (
                message_type.value
                if isinstance(message_type, WebSocketMessageType)
                else message_type
            )
            message = WebSocketMessage(type=type_name, timestamp=time.time(), data=data)
            await websocket.send_text(message.to_json())

    async def _heartbeat_loop(self, client_id: str):
        """Send periodic heartbeat messages to a client."""
        while client_id in self.active_connections:
            await asyncio.sleep(self.heartbeat_interval)
            websocket = self.active_connections.get(client_id)
            if websocket is None:
                break
            try:
                await self._send_message(
                    websocket,
                    WebSocketMessageType.HEARTBEAT,
                    {"serverTime": time.time()},
                )
            except Exception as e:
                logger.error(f"Heartbeat failed for client {client_id}: {e}")
                await self.disconnect_client(client_id)
                break

    async def _cleanup_loop(self):
        """Background cleanup task."""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                await self.cleanup_stale_connections()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in cleanup loop: {e}")

    async def cleanup_stale_connections(self, now: Optional[float] = None) -> int:
        """
        Disconnect clients silent for longer than the stale timeout.

        Returns:
            Number of clients disconnected
        """
        now = now or time.time()
        stale_clients = [
            client_id
            for client_id, last_time in self.last_heartbeat.items()
            if now - last_time > self.stale_timeout
        ]
        for client_id in stale_clients:
            logger.warning(f"Client {client_id} heartbeat timeout, disconnecting")
            await self.disconnect_client(client_id)

        cutoff_time = now - 60
        for client_id in list(self.message_rate_limits):
            self.message_rate_limits[client_id] = [
                timestamp
                for timestamp in self.message_rate_limits[client_id]
                if timestamp > cutoff_time
            ]
            if not self.message_rate_limits[client_id]:
                self.message_rate_limits.pop(client_id, None)

        return len(stale_clients)

    def _check_rate_limit(self, client_id: str) -> bool:
        """Check if client has exceeded message rate limit."""
        current_time = time.time()
        timestamps = [
            timestamp
            for timestamp in self.message_rate_limits.get(client_id, [])
            if current_time - timestamp < 60
        ]

        if len(timestamps) >= self.max_messages_per_minute:
            self.message_rate_limits[client_id] = timestamps
            return False

        timestamps.append(current_time)
        self.message_rate_limits[client_id] = timestamps
        return True

    def get_connection_count(self) -> int:
        """Get number of active connections."""
        return len(self.active_connections)

    def get_room_size(self, room: str) -> int:
        """Get number of clients joined to a room."""
        return len(self.rooms.get(room, ()))


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.application_state == WebSocketState.CONNECTED
        and websocket.client_state == WebSocketState.CONNECTED
    )
