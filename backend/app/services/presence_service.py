"""Presence broadcasting for connect, room join and disconnect events.

Each handler applies its registry mutation and enqueues every resulting
notification in one synchronous step, so notifications for a transition reach
each connection's queue in the order the transition was applied.
"""

import logging

from app.services.connection_registry import Connection, ConnectionRegistry
from app.services.outbound import Transport, deliver

logger = logging.getLogger(__name__)


def presence_entry(connection: Connection) -> dict[str, str | None]:
    """Public view of a connection as shown in online lists."""
    return {
        "connection_id": connection.connection_id,
        "user_id": connection.user_id,
        "username": connection.username,
        "avatar_url": connection.avatar_url,
        "room": connection.current_room,
    }


class PresenceBroadcaster:
    def __init__(self, registry: ConnectionRegistry, transport: Transport) -> None:
        self._registry = registry
        self._transport = transport

    def snapshot(self) -> list[dict[str, str | None]]:
        return [presence_entry(item) for item in self._registry.snapshot_all()]

    def room_roster(self, room: str) -> list[dict[str, str | None]]:
        return [presence_entry(item) for item in self._registry.list_room(room)]

    def on_connect(self, connection: Connection) -> Connection:
        """Register an admitted connection and send it the global online list."""
        registered = self._registry.register(connection)
        logger.info(
            "Connection %s admitted for user %s (%d online)",
            registered.connection_id,
            registered.username,
            len(self._registry),
        )
        deliver(
            self._transport,
            [registered.connection_id],
            {"type": "presenceSnapshot", "users": self.snapshot()},
        )
        return registered

    def on_join(self, connection_id: str, room: str) -> bool:
        """Move a connection into ``room`` and notify everyone affected.

        Returns False when the connection has already gone away.
        """
        transition = self._registry.move_to_room(connection_id, room)
        if transition is None:
            return False

        joiner = transition.connection
        new_member_ids = [item.connection_id for item in transition.new_room_members]
        deliver(
            self._transport,
            new_member_ids,
            {
                "type": "roomRosterUpdate",
                "room": room,
                "users": [presence_entry(item) for item in transition.new_room_members],
            },
        )

        if transition.changed:
            logger.info(
                "%s (%s) moved from %s to %s",
                joiner.username,
                connection_id,
                transition.previous_room,
                room,
            )
            if transition.previous_room is not None:
                deliver(
                    self._transport,
                    [item.connection_id for item in transition.old_room_members],
                    {
                        "type": "roomRosterUpdate",
                        "room": transition.previous_room,
                        "users": [
                            presence_entry(item) for item in transition.old_room_members
                        ],
                    },
                )
            deliver(
                self._transport,
                [member for member in new_member_ids if member != connection_id],
                {"type": "userJoined", "room": room, "user": presence_entry(joiner)},
            )

        self._broadcast_snapshot()
        return True

    def on_leave(self, connection_id: str) -> Connection | None:
        """Unregister a connection and notify the remaining members.

        Unknown connection ids (duplicate disconnects) are ignored.
        """
        departed = self._registry.unregister(connection_id)
        if departed is None:
            return None

        logger.info(
            "Connection %s closed for user %s (%d online)",
            connection_id,
            departed.username,
            len(self._registry),
        )
        room = departed.current_room
        if room is not None:
            remaining = self._registry.list_room(room)
            remaining_ids = [item.connection_id for item in remaining]
            deliver(
                self._transport,
                remaining_ids,
                {"type": "userLeft", "room": room, "user": presence_entry(departed)},
            )
            deliver(
                self._transport,
                remaining_ids,
                {
                    "type": "roomRosterUpdate",
                    "room": room,
                    "users": [presence_entry(item) for item in remaining],
                },
            )

        self._broadcast_snapshot()
        return departed

    def _broadcast_snapshot(self) -> None:
        connections = self._registry.snapshot_all()
        deliver(
            self._transport,
            [item.connection_id for item in connections],
            {
                "type": "presenceSnapshot",
                "users": [presence_entry(item) for item in connections],
            },
        )
