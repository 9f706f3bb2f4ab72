"""Websocket admission and inbound message dispatch.

The gateway authenticates the upgrade, registers the connection with the
``ConnectionManager`` and routes client envelopes. Batch actions go through a
callable injected at construction, so the lifecycle service never has to know
about websockets; its own broadcasts inform the other clients.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import WebSocket, status
from pydantic import ValidationError

from sgmi.core.auth import InvalidCredential, Principal, decode_access_token
from sgmi.core.exceptions import ProductionError
from sgmi.realtime.manager import Audience, Connection, ConnectionManager
from sgmi.schemas.realtime import BatchActionCommand, ClientMessage

logger = logging.getLogger(__name__)

BatchActionHandler = Callable[[uuid.UUID, str], Awaitable[Any]]


class RealtimeGateway:
    """Entry point for realtime clients."""

    def __init__(
        self,
        manager: ConnectionManager,
        perform_batch_action: BatchActionHandler,
        secret: str,
        algorithm: str = "HS256",
    ) -> None:
        self.manager = manager
        self._perform_batch_action = perform_batch_action
        self._secret = secret
        self._algorithm = algorithm
        self._handlers: dict[str, Callable[[Connection, Any], Awaitable[None]]] = {
            "ping": self._on_ping,
            "heartbeat_ack": self._on_heartbeat_ack,
            "subscribe_batch_updates": self._on_subscribe_batch_updates,
            "batch_action": self._on_batch_action,
        }

    def authenticate(self, token: str | None) -> Principal:
        return decode_access_token(token, self._secret, self._algorithm)

    # -------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------

    async def admit(self, websocket: WebSocket, token: str | None) -> Connection | None:
        """Accept and register ``websocket`` if ``token`` verifies.

        A rejected upgrade is closed with 1008 before it is accepted and
        never reaches the connection set.
        """
        try:
            self.authenticate(token)
        except InvalidCredential as exc:
            logger.info("Rejected websocket upgrade: %s", exc)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        await websocket.accept()

        try:
            principal = self.authenticate(token)
        except InvalidCredential as exc:
            logger.info("Credential became invalid during upgrade: %s", exc)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        connection = self.manager.register(websocket, principal)
        self.manager.send(
            connection,
            "connection_established",
            {
                "message": "Connected to SGMI WebSocket server",
                "connection_id": connection.id,
                "userId": principal.subject,
                "role": principal.role.value,
            },
        )
        return connection

    async def serve(self, websocket: WebSocket, token: str | None) -> None:
        """Run one client session until it disconnects or is dropped."""
        connection = await self.admit(websocket, token)
        if connection is None:
            return
        try:
            while not connection.closed:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    logger.warning("Ignoring non-text frame from connection %s", connection.id)
                    continue
                await self.handle_message(connection, text)
        finally:
            await self.manager.unregister(connection)

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------

    async def handle_message(self, connection: Connection, raw: str | bytes) -> None:
        """Route one inbound envelope. Never raises for client mistakes."""
        if connection.principal.is_expired():
            logger.info("Closing connection %s: token expired", connection.id)
            self.manager.send(connection, "error", {"message": "Token has expired"})
            self.manager.terminate(
                connection, code=status.WS_1008_POLICY_VIOLATION, reason="Token expired", flush=True
            )
            return

        try:
            message = ClientMessage.model_validate_json(raw)
        except ValidationError:
            logger.warning("Malformed message from connection %s", connection.id)
            self.manager.send(connection, "error", {"message": "Invalid message format"})
            return

        # Any well-formed envelope proves the peer is alive
        self.manager.mark_alive(connection)

        handler = self._handlers.get(message.type)
        if handler is None:
            logger.info("Received unknown message type: %s", message.type)
            return
        await handler(connection, message.data)

    async def _on_ping(self, connection: Connection, data: Any) -> None:
        self.manager.send(connection, "pong")

    async def _on_heartbeat_ack(self, connection: Connection, data: Any) -> None:
        self.manager.mark_alive(connection)

    async def _on_subscribe_batch_updates(self, connection: Connection, data: Any) -> None:
        # Every batch-operator connection already receives batch events.
        logger.debug("Connection %s subscribed to batch updates", connection.id)

    async def _on_batch_action(self, connection: Connection, data: Any) -> None:
        try:
            command = BatchActionCommand.model_validate(data)
        except ValidationError:
            self.manager.send(
                connection, "batch_action_error", {"message": "Invalid batch_action payload"}
            )
            return

        reply = {"batchId": command.batch_id, "action": command.action.action}
        if not Audience.BATCH_OPERATORS.admits(connection):
            self.manager.send(
                connection,
                "batch_action_error",
                {**reply, "message": "You do not have permission to perform batch actions"},
            )
            return

        try:
            await self._perform_batch_action(command.batch_id, command.action.action)
        except ProductionError as exc:
            self.manager.send(connection, "batch_action_error", {**reply, "message": exc.message})
            return
        except Exception:
            logger.exception("Batch action %s on %s failed", command.action.action, command.batch_id)
            self.manager.send(
                connection, "batch_action_error", {**reply, "message": "Failed to perform batch action"}
            )
            return

        self.manager.send(connection, "batch_action_success", reply)
