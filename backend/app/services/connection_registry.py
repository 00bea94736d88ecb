"""Track live connections and the rooms they have joined.

The registry is the single owner of presence state. Every method is
synchronous, so on the asyncio event loop each call is atomic with respect to
all other connection events: no observer can see a connection in two rooms,
or a half-applied move.
"""

from dataclasses import dataclass, replace

from app.config import settings


@dataclass(frozen=True)
class Connection:
    """Snapshot of one live, authenticated connection."""

    connection_id: str
    user_id: str
    username: str
    avatar_url: str | None = None
    current_room: str | None = None


@dataclass(frozen=True)
class RoomTransition:
    """Result of moving a connection into a room."""

    connection: Connection
    previous_room: str | None
    room: str
    changed: bool
    # Members left behind in the previous room (empty when unchanged).
    old_room_members: list[Connection]
    # Members of the target room after the move, joiner included.
    new_room_members: list[Connection]


class ConnectionRegistry:
    """Connection registry plus the room membership index derived from it."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        # Insertion-ordered dicts double as ordered sets (join order).
        self._rooms: dict[str, dict[str, None]] = {}
        self._by_user: dict[str, set[str]] = {}

    def can_connect(self, user_id: str) -> bool:
        """Return True if the user has fewer than the maximum allowed connections."""
        active = self._by_user.get(user_id)
        if active is None:
            return True
        return len(active) < settings.max_ws_connections_per_user

    def register(self, connection: Connection) -> Connection:
        """Insert a freshly admitted connection (not yet in any room)."""
        if connection.connection_id in self._connections:
            raise ValueError(f"Connection {connection.connection_id} already registered")
        if connection.current_room is not None:
            connection = replace(connection, current_room=None)
        self._connections[connection.connection_id] = connection
        self._by_user.setdefault(connection.user_id, set()).add(connection.connection_id)
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def move_to_room(self, connection_id: str, room: str) -> RoomTransition | None:
        """Move a connection into ``room``, leaving its previous room.

        Returns None when the connection is no longer registered, so a late
        join after a disconnect is a silent no-op.
        """
        current = self._connections.get(connection_id)
        if current is None:
            return None

        previous_room = current.current_room
        if previous_room == room:
            return RoomTransition(
                connection=current,
                previous_room=previous_room,
                room=room,
                changed=False,
                old_room_members=[],
                new_room_members=self.list_room(room),
            )

        if previous_room is not None:
            self._discard_member(previous_room, connection_id)
        self._rooms.setdefault(room, {})[connection_id] = None
        moved = replace(current, current_room=room)
        self._connections[connection_id] = moved

        return RoomTransition(
            connection=moved,
            previous_room=previous_room,
            room=room,
            changed=True,
            old_room_members=self.list_room(previous_room) if previous_room else [],
            new_room_members=self.list_room(room),
        )

    def unregister(self, connection_id: str) -> Connection | None:
        """Remove a connection and its membership.

        Returns the removed snapshot (its ``current_room`` names the room it
        left), or None if the connection was already gone.
        """
        removed = self._connections.pop(connection_id, None)
        if removed is None:
            return None
        if removed.current_room is not None:
            self._discard_member(removed.current_room, connection_id)
        active = self._by_user.get(removed.user_id)
        if active is not None:
            active.discard(connection_id)
            if not active:
                del self._by_user[removed.user_id]
        return removed

    def list_room(self, room: str) -> list[Connection]:
        """Return the members of ``room`` in join order."""
        members = self._rooms.get(room)
        if not members:
            return []
        return [self._connections[connection_id] for connection_id in members]

    def snapshot_all(self) -> list[Connection]:
        """Return every live connection in registration order."""
        return list(self._connections.values())

    def rooms(self) -> dict[str, list[str]]:
        """Return room name to member connection ids (for diagnostics and tests)."""
        return {room: list(members) for room, members in self._rooms.items()}

    def __len__(self) -> int:
        return len(self._connections)

    def _discard_member(self, room: str, connection_id: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.pop(connection_id, None)
        if not members:
            del self._rooms[room]
