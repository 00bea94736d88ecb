"""In memory sliding window throttle for live message sends.

Two windows guard each send: one per connection, so a single socket cannot
flood, and one per room, so many sockets together cannot drown a room.
"""

import time
from collections import deque

from app.config import settings
from app.services.chat_errors import RateLimited

WINDOW_SECONDS = 60.0


class SendThrottle:
    """Track per connection and per room send rates using sliding windows."""

    def __init__(self) -> None:
        self._connection_windows: dict[str, deque[float]] = {}
        self._room_windows: dict[str, deque[float]] = {}

    @staticmethod
    def _active(windows: dict[str, deque[float]], key: str, now: float) -> int:
        """Prune stale timestamps and return how many sends remain in the window."""
        window = windows.get(key)
        if window is None:
            return 0
        cutoff = now - WINDOW_SECONDS
        while window and window[0] < cutoff:
            window.popleft()
        if not window:
            del windows[key]
            return 0
        return len(window)

    def _sweep_rooms(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        stale = [room for room, window in self._room_windows.items() if window[-1] < cutoff]
        for room in stale:
            del self._room_windows[room]

    def check(self, connection_id: str, room: str) -> None:
        """Record a send, or raise RateLimited without recording it."""
        now = time.monotonic()
        # Room names come from clients; idle rooms must not accumulate.
        self._sweep_rooms(now)
        if (
            self._active(self._connection_windows, connection_id, now)
            >= settings.rate_limit_connection_per_minute
        ):
            raise RateLimited("You are sending messages too quickly.")
        if self._active(self._room_windows, room, now) >= settings.rate_limit_room_per_minute:
            raise RateLimited(f"Room '{room}' is busy, try again shortly.", code="room_rate_limited")

        self._connection_windows.setdefault(connection_id, deque()).append(now)
        self._room_windows.setdefault(room, deque()).append(now)

    def forget(self, connection_id: str) -> None:
        """Drop a closed connection's window."""
        self._connection_windows.pop(connection_id, None)

    def tracked_rooms(self) -> list[str]:
        return list(self._room_windows)
