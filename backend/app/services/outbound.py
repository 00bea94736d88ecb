"""Per-connection outbound event queues.

Pushing an event never awaits: it is appended to the connection's queue and a
single writer task per connection sends events in FIFO order. A failing socket
only closes its own queue.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from app.services.chat_errors import TransportFailure

logger = logging.getLogger(__name__)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


class Transport(Protocol):
    def push(self, connection_id: str, event: dict[str, Any]) -> None: ...


class _OutboundChannel:
    def __init__(self, connection_id: str, send: SendFn) -> None:
        self.connection_id = connection_id
        self._send = send
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self.closed = False
        self._task = asyncio.create_task(self._drain())

    def put(self, event: dict[str, Any]) -> None:
        if self.closed:
            raise TransportFailure(
                f"Connection {self.connection_id} is closed", code="connection_closed"
            )
        self._queue.put_nowait(event)

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            try:
                await self._send(event)
            except Exception as exc:
                self.closed = True
                logger.warning(
                    "Dropping outbound queue for connection %s after send failure: %s",
                    self.connection_id,
                    exc,
                )
                return

    async def close(self, flush: bool = False) -> None:
        if flush and not self.closed:
            self.closed = True
            self._queue.put_nowait(None)
            await self._task
            return
        self.closed = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class OutboundTransport:
    """Route pushed events to the writer task of each live connection."""

    def __init__(self) -> None:
        self._channels: dict[str, _OutboundChannel] = {}

    def attach(self, connection_id: str, send: SendFn) -> None:
        """Start a writer task for a connection. Must run on the event loop."""
        if connection_id in self._channels:
            raise ValueError(f"Connection {connection_id} already attached")
        self._channels[connection_id] = _OutboundChannel(connection_id, send)

    def push(self, connection_id: str, event: dict[str, Any]) -> None:
        """Enqueue an event for one connection, raising TransportFailure if it is gone."""
        channel = self._channels.get(connection_id)
        if channel is None:
            raise TransportFailure(
                f"Connection {connection_id} is not attached", code="connection_closed"
            )
        channel.put(event)

    async def detach(self, connection_id: str, flush: bool = False) -> None:
        """Stop a connection's writer; ``flush`` delivers what is already queued first."""
        channel = self._channels.pop(connection_id, None)
        if channel is not None:
            await channel.close(flush=flush)

    def is_attached(self, connection_id: str) -> bool:
        return connection_id in self._channels


def deliver(transport: Transport, connection_ids, event: dict[str, Any]) -> int:
    """Push ``event`` to each connection, isolating per-recipient failures.

    Returns the number of connections the event was enqueued for.
    """
    delivered = 0
    for connection_id in connection_ids:
        try:
            transport.push(connection_id, event)
        except TransportFailure as exc:
            logger.warning("Push to connection %s failed: %s", connection_id, exc.message)
            continue
        delivered += 1
    return delivered
