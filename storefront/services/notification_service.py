"""Real-time order notifications over WebSocket connections.

The registry below is process-local. Running more than one API process
requires sticky sessions or a shared pub/sub channel that feeds every
process's NotificationService; without one, a client only hears events
produced by the process it is connected to.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Protocol
from uuid import uuid4

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class NotificationEvent(str, Enum):
    """Event names sent to clients."""

    NEW_ORDER = "new_order"
    ORDER_UPDATED = "order_updated"
    PAYMENT_UPDATE = "payment_update"
    SHIPPING_UPDATE = "shipping_update"


class JSONSender(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(eq=False)
class ClientConnection:
    """One live client session."""

    socket: JSONSender
    user_id: str | None
    role: str
    email: str | None = None
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    async def send(self, event: str, payload: Any) -> None:
        await self.socket.send_json({"event": event, "data": payload})


class ConnectionRegistry:
    """In-memory index of live connections by user, admin group and order room.

    Entries exist only while a connection is open; there is nothing to expire.
    """

    def __init__(self) -> None:
        self._by_user: dict[str, set[ClientConnection]] = defaultdict(set)
        self._admins: set[ClientConnection] = set()
        self._rooms: dict[str, set[ClientConnection]] = defaultdict(set)
        self._room_membership: dict[ClientConnection, set[str]] = defaultdict(set)

    def register(self, connection: ClientConnection) -> None:
        if connection.user_id:
            self._by_user[connection.user_id].add(connection)
        if connection.is_admin:
            self._admins.add(connection)
        logger.info(
            "Client connected: %s (%s)", connection.email or connection.user_id, connection.role
        )

    def unregister(self, connection: ClientConnection) -> None:
        if connection.user_id:
            user_connections = self._by_user.get(connection.user_id)
            if user_connections is not None:
                user_connections.discard(connection)
                if not user_connections:
                    del self._by_user[connection.user_id]
        self._admins.discard(connection)
        for order_id in self._room_membership.pop(connection, set()):
            self._leave(connection, order_id)
        logger.info("Client disconnected: %s", connection.email or connection.user_id)

    def join_order_room(self, connection: ClientConnection, order_id: str) -> None:
        self._rooms[order_id].add(connection)
        self._room_membership[connection].add(order_id)

    def leave_order_room(self, connection: ClientConnection, order_id: str) -> None:
        self._room_membership.get(connection, set()).discard(order_id)
        self._leave(connection, order_id)

    def _leave(self, connection: ClientConnection, order_id: str) -> None:
        members = self._rooms.get(order_id)
        if members is None:
            return
        members.discard(connection)
        if not members:
            del self._rooms[order_id]

    def user_connections(self, user_id: str) -> set[ClientConnection]:
        return set(self._by_user.get(str(user_id), ()))

    def admin_connections(self) -> set[ClientConnection]:
        return set(self._admins)

    def room_connections(self, order_id: str) -> set[ClientConnection]:
        return set(self._rooms.get(str(order_id), ()))

    def snapshot(self) -> dict[str, Any]:
        """Counts and per-connection details for the admin console."""
        connections = {c for group in self._by_user.values() for c in group} | self._admins
        return {
            "connected_users": len(self._by_user),
            "connected_admins": len(self._admins),
            "open_order_rooms": len(self._rooms),
            "connections": [
                {
                    "connection_id": c.connection_id,
                    "user_id": c.user_id,
                    "email": c.email,
                    "role": c.role,
                    "connected_at": c.connected_at.isoformat(),
                    "order_rooms": sorted(self._room_membership.get(c, ())),
                }
                for c in sorted(connections, key=lambda c: c.connected_at)
            ],
        }


class NotificationService:
    """Pushes order lifecycle events to connected sessions.

    Delivery is fire-and-forget: when nobody is connected the event is
    dropped, and clients re-read the REST API on reconnect.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def notify_user(self, user_id: str, event: NotificationEvent, payload: Any) -> int:
        """Send an event to every open session of one user."""
        return await self._deliver(self.registry.user_connections(user_id), event, payload)

    async def notify_admins(self, event: NotificationEvent, payload: Any) -> int:
        """Broadcast an event to every admin session."""
        return await self._deliver(self.registry.admin_connections(), event, payload)

    async def notify_order_room(self, order_id: str, event: NotificationEvent, payload: Any) -> int:
        """Broadcast an event to sessions subscribed to one order."""
        return await self._deliver(self.registry.room_connections(order_id), event, payload)

    async def publish_order_event(self, event: NotificationEvent, order: dict[str, Any]) -> int:
        """Fan an order event out to its owner, its room and the admins.

        A connection reached through several of those routes receives the
        event once. new_order goes to admins only.

        Args:
            event: Event name.
            order: Full current order snapshot.

        Returns:
            int: Number of connections the event was delivered to.
        """
        if event is NotificationEvent.NEW_ORDER:
            return await self.notify_admins(event, order)

        targets = (
            self.registry.user_connections(order["user_id"])
            | self.registry.room_connections(order["id"])
            | self.registry.admin_connections()
        )
        return await self._deliver(targets, event, order)

    async def _deliver(
        self, connections: Iterable[ClientConnection], event: NotificationEvent, payload: Any
    ) -> int:
        body = jsonable_encoder(payload)
        delivered = 0
        for connection in connections:
            try:
                await connection.send(event.value, body)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "Dropping %s for connection %s: %s", event.value, connection.connection_id, e
                )
        if delivered:
            logger.debug("Delivered %s to %d connection(s)", event.value, delivered)
        return delivered
