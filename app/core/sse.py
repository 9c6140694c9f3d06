"""
Server-Sent Events (SSE) Connection Manager.

Manages SSE connections for live refresh of the assignment and issue lists.
Clients subscribe to a channel: "all" for list pages, or a record id for a
detail page.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Dict, Optional, Set, Any
from dataclasses import dataclass, field
from asyncio import Queue

logger = logging.getLogger(__name__)

ALL_CHANNEL = "all"


@dataclass
class SSEConnection:
    """Represents a single SSE connection."""
    user_id: str
    channel: str = ALL_CHANNEL
    queue: Queue = field(default_factory=Queue)
    connected_at: datetime = field(default_factory=datetime.utcnow)

    def __hash__(self):
        return hash(id(self))

    def __eq__(self, other):
        return id(self) == id(other)


class ConnectionManager:
    """
    Manages SSE connections for the application.

    Supports:
    - Per-channel connection pools
    - Broadcast to every connection on a channel
    - Send to specific user connections
    - Connection statistics
    """

    def __init__(self):
        # channel -> set of connections
        self._channel_connections: Dict[str, Set[SSEConnection]] = {}
        # user_id -> set of connections (user can have multiple browser tabs)
        self._user_connections: Dict[str, Set[SSEConnection]] = {}
        # All connections for global broadcasts
        self._all_connections: Set[SSEConnection] = set()
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, channel: str = ALL_CHANNEL) -> SSEConnection:
        """
        Register a new SSE connection.

        Args:
            user_id: The user's ID
            channel: "all" or a record id

        Returns:
            SSEConnection object for this connection
        """
        connection = SSEConnection(user_id=user_id, channel=channel)

        async with self._lock:
            self._channel_connections.setdefault(channel, set()).add(connection)
            self._user_connections.setdefault(user_id, set()).add(connection)
            self._all_connections.add(connection)

        logger.info(
            f"SSE connection established: user={user_id}, channel={channel}, "
            f"total_connections={len(self._all_connections)}"
        )

        return connection

    async def disconnect(self, connection: SSEConnection):
        """
        Remove a connection from all pools.

        Args:
            connection: The connection to remove
        """
        async with self._lock:
            if connection.channel in self._channel_connections:
                self._channel_connections[connection.channel].discard(connection)
                if not self._channel_connections[connection.channel]:
                    del self._channel_connections[connection.channel]

            if connection.user_id in self._user_connections:
                self._user_connections[connection.user_id].discard(connection)
                if not self._user_connections[connection.user_id]:
                    del self._user_connections[connection.user_id]

            self._all_connections.discard(connection)

        logger.info(
            f"SSE connection closed: user={connection.user_id}, "
            f"channel={connection.channel}, "
            f"total_connections={len(self._all_connections)}"
        )

    async def broadcast(
        self,
        channel: str,
        event_type: str,
        data: Any,
        exclude_user_id: Optional[str] = None
    ) -> int:
        """
        Broadcast an event to all connections on a channel.

        Args:
            channel: The channel to broadcast to
            event_type: The type of event (e.g., 'assignment_updated')
            data: The event data (will be JSON serialized)
            exclude_user_id: Optional user to exclude from broadcast

        Returns:
            Number of connections the event was queued for
        """
        connections = self._channel_connections.get(channel, set())

        if not connections:
            logger.debug(f"No connections for channel {channel}")
            return 0

        message = self.format_message(event_type, data)

        tasks = []
        for conn in list(connections):
            if exclude_user_id and conn.user_id == exclude_user_id:
                continue
            tasks.append(self._send_to_connection(conn, message))

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug(
                f"Broadcast to channel {channel}: event={event_type}, "
                f"recipients={len(tasks)}"
            )
        return len(tasks)

    async def send_to_user(
        self,
        user_id: str,
        event_type: str,
        data: Any
    ) -> int:
        """
        Send an event to all connections for a specific user.

        Args:
            user_id: The user to send to
            event_type: The type of event
            data: The event data
        """
        connections = self._user_connections.get(user_id, set())

        if not connections:
            logger.debug(f"No connections for user {user_id}")
            return 0

        message = self.format_message(event_type, data)

        tasks = [self._send_to_connection(conn, message) for conn in list(connections)]
        await asyncio.gather(*tasks, return_exceptions=True)

        logger.debug(
            f"Sent to user {user_id}: event={event_type}, "
            f"connections={len(tasks)}"
        )
        return len(tasks)

    async def _send_to_connection(self, connection: SSEConnection, message: str):
        """Send a message to a specific connection."""
        try:
            await connection.queue.put(message)
        except Exception as e:
            logger.error(f"Failed to send message to connection: {e}")

    @staticmethod
    def format_message(event_type: str, data: Any) -> str:
        """
        Format a message in the SSE wire format.

        SSE format:
        event: event_type
        data: json_data

        The payload always carries a "type" field so clients listening on the
        default message handler can dispatch on it.
        """
        if isinstance(data, dict) and "type" not in data:
            data = {"type": event_type, **data}
        json_data = json.dumps(data, default=str)
        return f"event: {event_type}\ndata: {json_data}\n\n"

    @classmethod
    def heartbeat_message(cls) -> str:
        return cls.format_message("heartbeat", {"timestamp": datetime.utcnow().isoformat()})

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._all_connections),
            "channels": len(self._channel_connections),
            "users": len(self._user_connections),
            "connections_by_channel": {
                channel: len(conns)
                for channel, conns in self._channel_connections.items()
            }
        }


# Global connection manager instance
connection_manager = ConnectionManager()


async def get_connection_manager() -> ConnectionManager:
    """Dependency to get the connection manager."""
    return connection_manager
