"""
Registry of page clients and the worker version controlling each.
"""

from typing import Dict, List, Optional


class ClientRegistry:
    """Tracks connected clients by id.

    A client keeps the controller it had when it connected until a newly
    activated version claims it.
    """

    def __init__(self):
        self._clients: Dict[str, Optional[str]] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._clients

    def connect(self, client_id: str, controller: Optional[str]) -> Optional[str]:
        """Register a client if unseen; return its controlling version tag."""
        if client_id not in self._clients:
            self._clients[client_id] = controller
        return self._clients[client_id]

    def disconnect(self, client_id: str) -> bool:
        if client_id not in self._clients:
            return False
        del self._clients[client_id]
        return True

    def controller_of(self, client_id: str) -> Optional[str]:
        return self._clients.get(client_id)

    def controlled_by(self, tag: str) -> List[str]:
        return [client_id for client_id, controller in self._clients.items() if controller == tag]

    def claim(self, tag: str) -> int:
        """Make ``tag`` the controller of every connected client."""
        for client_id in self._clients:
            self._clients[client_id] = tag
        return len(self._clients)
