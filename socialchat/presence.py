"""
Presence registry: which user is online and through which connection.

One entry per user. The registry lives for the lifetime of the process and is
owned by the gateway that app startup creates; nothing is persisted, so a
restart begins empty. All access happens on the event loop, so no locking.
"""
from typing import Any, Dict, Optional, Set


class PresenceRegistry:
    def __init__(self):
        self._connections: Dict[int, Any] = {}

    def register(self, user_id: int, connection: Any) -> Optional[Any]:
        """Make `connection` the user's active session; returns the superseded one, if any."""
        previous = self._connections.get(user_id)
        self._connections[user_id] = connection
        return previous if previous is not connection else None

    def unregister(self, user_id: int, connection: Any) -> bool:
        """Drop the entry only if it still points at `connection`."""
        if self._connections.get(user_id) is not connection:
            return False
        del self._connections[user_id]
        return True

    def resolve(self, user_id: int) -> Optional[Any]:
        return self._connections.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return user_id in self._connections

    def list_online(self) -> Set[int]:
        return set(self._connections)

    def clear(self):
        self._connections.clear()

    def __len__(self):
        return len(self._connections)
