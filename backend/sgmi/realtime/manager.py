"""Live websocket connections and role-filtered broadcasting.

Every connection gets a bounded outbox drained by its own writer task, so a
broadcast never waits on a peer: messages to one connection keep their
order, and a slow or broken peer only loses its own connection.

The connection registry is only mutated synchronously from the event loop
and iterated over snapshots, so sweeps and broadcasts never observe a
half-applied add or remove.
"""

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from fastapi import status

from sgmi.core.auth import BATCH_OPERATOR_ROLES, DIRECTOR_ROLES, Principal, UserRole
from sgmi.realtime.periodic import cancel_task, run_every
from sgmi.schemas.realtime import ServerMessage

logger = logging.getLogger(__name__)

# Upper bound on waiting for queued messages before a flushing close
CLOSE_FLUSH_TIMEOUT = 5.0


class Transport(Protocol):
    """The subset of ``fastapi.WebSocket`` a connection writes to."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class Connection:
    """One authenticated realtime client."""

    def __init__(self, transport: Transport, principal: Principal, outbox_size: int = 256) -> None:
        self.id = uuid.uuid4().hex
        self.transport = transport
        self.principal = principal
        self.connected_at = datetime.now(timezone.utc)
        self.is_alive = True
        self.closed = False
        self.messages_sent = 0
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=outbox_size)
        self._writer: asyncio.Task | None = None
        self.close_task: asyncio.Task | None = None

    @property
    def user_id(self) -> str:
        return self.principal.subject

    @property
    def role(self) -> UserRole:
        return self.principal.role

    def start(self, on_failure: Callable[["Connection"], None]) -> None:
        self._writer = asyncio.create_task(self._drain(on_failure), name=f"ws-writer-{self.id}")

    def enqueue(self, payload: str) -> bool:
        """Queue ``payload`` for sending. False when closed or the outbox is full."""
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    async def wait_sent(self) -> None:
        """Block until everything queued so far has been handed to the transport."""
        await self._outbox.join()

    async def _drain(self, on_failure: Callable[["Connection"], None]) -> None:
        while True:
            payload = await self._outbox.get()
            try:
                await self.transport.send_text(payload)
                self.messages_sent += 1
            except Exception as exc:
                logger.warning("Send to connection %s failed: %s", self.id, exc)
                self._outbox.task_done()
                self._discard_pending()
                on_failure(self)
                return
            self._outbox.task_done()

    def _discard_pending(self) -> None:
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

    async def stop(self) -> None:
        """Stop the writer without touching the socket."""
        self.closed = True
        if self._writer is not asyncio.current_task():
            await cancel_task(self._writer)
        self._discard_pending()

    async def close(
        self,
        code: int = status.WS_1000_NORMAL_CLOSURE,
        reason: str | None = None,
        flush_timeout: float | None = None,
    ) -> None:
        """Stop the writer and close the socket.

        With ``flush_timeout`` the writer first gets that long to send what is
        already queued.
        """
        if flush_timeout is not None and self._writer is not None and not self._writer.done():
            try:
                await asyncio.wait_for(self.wait_sent(), flush_timeout)
            except asyncio.TimeoutError:
                logger.warning("Connection %s did not flush before close", self.id)
        await self.stop()
        try:
            await self.transport.close(code=code, reason=reason)
        except (RuntimeError, OSError) as exc:
            # Already closed by the peer or the server loop
            logger.debug("Close of connection %s ignored: %s", self.id, exc)


class Audience(enum.Enum):
    """Standing broadcast audiences."""

    ALL = "all"
    BATCH_OPERATORS = "batch_operators"
    DIRECTORS = "directors"

    def admits(self, connection: Connection) -> bool:
        if self is Audience.ALL:
            return True
        if self is Audience.BATCH_OPERATORS:
            return connection.role in BATCH_OPERATOR_ROLES
        return connection.role in DIRECTOR_ROLES


ConnectionFilter = Callable[[Connection], bool]


def _admits(audience: "Audience | ConnectionFilter", connection: Connection) -> bool:
    if isinstance(audience, Audience):
        return audience.admits(connection)
    return audience(connection)


class ConnectionManager:
    """Owns the live connection set, fan-out, and the liveness sweep."""

    def __init__(self, heartbeat_interval: float = 30.0, outbox_size: int = 256) -> None:
        self.heartbeat_interval = heartbeat_interval
        self.outbox_size = outbox_size
        self._connections: dict[str, Connection] = {}
        self._heartbeat_task: asyncio.Task | None = None
        self._closing: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: Connection) -> bool:
        return self._connections.get(connection.id) is connection

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    # -------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------

    def register(self, transport: Transport, principal: Principal) -> Connection:
        connection = Connection(transport, principal, outbox_size=self.outbox_size)
        connection.start(self._on_send_failure)
        self._connections[connection.id] = connection
        logger.info(
            "Client %s connected (user=%s, role=%s). Total clients: %d",
            connection.id,
            principal.subject,
            principal.role.value,
            len(self._connections),
        )
        return connection

    async def unregister(self, connection: Connection) -> None:
        """Forget a connection whose peer went away."""
        if self._connections.pop(connection.id, None) is None:
            # Already dropped; its close task owns the writer and the socket
            if connection.close_task is not None:
                await asyncio.gather(connection.close_task, return_exceptions=True)
            return
        logger.info("Client %s disconnected. Total clients: %d", connection.id, len(self._connections))
        await connection.stop()

    def terminate(
        self,
        connection: Connection,
        code: int = status.WS_1001_GOING_AWAY,
        reason: str | None = None,
        flush: bool = False,
    ) -> None:
        """Remove a connection now and close its socket in the background.

        With ``flush`` the messages already queued are sent before the close.
        """
        self._connections.pop(connection.id, None)
        connection.closed = True
        flush_timeout = CLOSE_FLUSH_TIMEOUT if flush else None
        task = asyncio.create_task(connection.close(code=code, reason=reason, flush_timeout=flush_timeout))
        connection.close_task = task
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def _on_send_failure(self, connection: Connection) -> None:
        self._connections.pop(connection.id, None)
        connection.closed = True

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------

    def _deliver(self, connection: Connection, payload: str) -> bool:
        if connection.enqueue(payload):
            return True
        if not connection.closed:
            logger.warning("Outbox full for connection %s, dropping it", connection.id)
            self.terminate(connection, code=status.WS_1013_TRY_AGAIN_LATER, reason="Too slow")
        return False

    def send(self, connection: Connection, message_type: str, data: Any = None) -> bool:
        """Queue one message for a single connection."""
        payload = ServerMessage(type=message_type, data=data).model_dump_json()
        return self._deliver(connection, payload)

    def broadcast(
        self,
        message_type: str,
        data: Any = None,
        audience: "Audience | ConnectionFilter" = Audience.ALL,
        timestamp: datetime | None = None,
    ) -> int:
        """Queue a message for every connection in ``audience``.

        Returns the number of connections the message was queued for.
        """
        message = ServerMessage(type=message_type, data=data)
        if timestamp is not None:
            message.timestamp = timestamp
        payload = message.model_dump_json()

        delivered = 0
        for connection in self.connections:
            if _admits(audience, connection) and self._deliver(connection, payload):
                delivered += 1
        logger.debug("Broadcast %s to %d clients", message_type, delivered)
        return delivered

    def broadcast_to_batch_operators(self, message_type: str, data: Any = None) -> int:
        return self.broadcast(message_type, data, Audience.BATCH_OPERATORS)

    def broadcast_to_directors(self, message_type: str, data: Any = None) -> int:
        return self.broadcast(message_type, data, Audience.DIRECTORS)

    def has_audience(self, audience: "Audience | ConnectionFilter") -> bool:
        return any(_admits(audience, connection) for connection in self.connections)

    # -------------------------------------------------------------------
    # Liveness
    # -------------------------------------------------------------------

    def mark_alive(self, connection: Connection) -> None:
        connection.is_alive = True

    async def sweep_liveness(self) -> int:
        """Terminate connections silent since the previous sweep and probe the rest.

        Returns the number of terminated connections.
        """
        terminated = 0
        for connection in self.connections:
            if not connection.is_alive:
                logger.info("Terminating unresponsive client %s", connection.id)
                self.terminate(connection)
                terminated += 1
                continue
            connection.is_alive = False
            self.send(connection, "heartbeat")
        return terminated

    def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(
                run_every(self.heartbeat_interval, self.sweep_liveness, "liveness"),
                name="ws-liveness-sweep",
            )

    async def close(self) -> None:
        """Stop the liveness sweep and close every connection."""
        await cancel_task(self._heartbeat_task)
        self._heartbeat_task = None
        for connection in self.connections:
            self.terminate(connection, code=status.WS_1001_GOING_AWAY, reason="Server shutting down")
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        logger.info("Realtime connections closed")
