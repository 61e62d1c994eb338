"""WebSocket endpoint for live order notifications."""

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from storefront.api.middleware.auth import (
    AuthError,
    authorize_credential,
    parse_authorization_header,
    parse_credential,
)
from storefront.api.middleware.error_handler import APIError, NotFoundError
from storefront.schemas.auth import UserContext
from storefront.services.notification_service import ClientConnection, ConnectionRegistry, NotificationService
from storefront.services.order_store import OrderStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def authenticate_socket(websocket: WebSocket) -> UserContext:
    """Resolve the handshake credential with the same rules as REST.

    The token comes from the Authorization header or, for browsers that
    cannot set headers on a WebSocket, the ``token`` query parameter.

    Raises:
        AuthError: Missing or invalid credential.
    """
    authorization = websocket.headers.get("authorization")
    if authorization:
        credential = parse_authorization_header(authorization)
    else:
        credential = parse_credential(websocket.query_params.get("token", ""))
    return authorize_credential(credential)


async def _send_error(connection: ClientConnection, message: str) -> None:
    await connection.send("error", {"message": message})


async def _can_follow(store: OrderStore, user: UserContext, order_id: str) -> bool:
    order = await store.find_by_id(order_id)
    return bool(order) and (user.is_admin or order["user_id"] == str(user.user_id))


async def _handle_message(
    connection: ClientConnection,
    user: UserContext,
    registry: ConnectionRegistry,
    store: OrderStore,
    message: dict[str, Any],
) -> None:
    action = message.get("type")
    order_id = str(message.get("order_id") or "")

    if action not in ("join_order_room", "leave_order_room"):
        await _send_error(connection, f"Unknown message type: {action}")
        return
    if not order_id:
        await _send_error(connection, "order_id is required")
        return

    if action == "leave_order_room":
        registry.leave_order_room(connection, order_id)
        await connection.send("left_order_room", {"order_id": order_id})
        return

    try:
        allowed = await _can_follow(store, user, order_id)
    except NotFoundError:
        allowed = False
    except APIError as e:
        await _send_error(connection, e.message)
        return
    if not allowed:
        await _send_error(connection, "Order not found")
        return

    registry.join_order_room(connection, order_id)
    await connection.send("joined_order_room", {"order_id": order_id})


@router.websocket("/ws")
async def order_updates(websocket: WebSocket) -> None:
    """Stream order events to an authenticated client.

    Clients send ``{"type": "join_order_room", "order_id": ...}`` to follow a
    single order and ``leave_order_room`` to stop. Owners are subscribed to
    their own orders and admins to every order automatically.
    """
    try:
        user = authenticate_socket(websocket)
    except AuthError as e:
        logger.info("Rejected WebSocket handshake: %s", e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    notifier: NotificationService = websocket.app.state.notifier
    store = OrderStore()

    await websocket.accept()
    connection = ClientConnection(
        socket=websocket,
        user_id=str(user.user_id),
        role=user.role or "user",
        email=user.email,
    )
    notifier.registry.register(connection)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await _send_error(connection, "Messages must be JSON objects")
                continue
            if not isinstance(message, dict):
                await _send_error(connection, "Messages must be JSON objects")
                continue
            try:
                await _handle_message(connection, user, notifier.registry, store, message)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Failed to handle %s from user %s", message.get("type"), user.user_id)
                await _send_error(connection, "Could not process message")
    except WebSocketDisconnect:
        pass
    finally:
        notifier.registry.unregister(connection)
