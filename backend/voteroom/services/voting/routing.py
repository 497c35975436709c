"""Ephemeral routing between durable identities and live connections.

Only this process's Socket.IO connections are tracked. Nothing here is
persisted; after a restart the table is rebuilt from ``reconnect`` requests.
"""

import threading
from typing import Dict, List, Optional


class Route:
    __slots__ = ('sid', 'identity', 'code')

    def __init__(self, sid: str, identity: str, code: Optional[str] = None):
        self.sid = sid
        self.identity = identity
        self.code = code

    def __repr__(self):
        return f"<Route sid={self.sid} identity={self.identity} code={self.code}>"


class RoutingTable:

    def __init__(self):
        self._lock = threading.Lock()
        self._by_sid: Dict[str, Route] = {}
        self._sid_by_identity: Dict[str, str] = {}

    def connect(self, sid: str, identity: str) -> Route:
        """Register a fresh connection that is not yet in any session."""
        with self._lock:
            route = Route(sid, identity)
            self._by_sid[sid] = route
            return route

    def bind(self, sid: str, identity: str, code: str) -> Optional[str]:
        """Point ``identity`` at ``sid`` inside session ``code``.

        Returns the sid the identity was previously routed to, when that was
        a different connection, so the caller can detach it.
        """
        with self._lock:
            former = self._by_sid.get(sid)
            if (former is not None and former.identity != identity
                    and self._sid_by_identity.get(former.identity) == sid):
                del self._sid_by_identity[former.identity]
            previous = self._sid_by_identity.get(identity)
            self._by_sid[sid] = Route(sid, identity, code)
            self._sid_by_identity[identity] = sid
            if previous == sid:
                return None
            if previous is not None:
                stale = self._by_sid.get(previous)
                if stale is not None:
                    stale.code = None
            return previous

    def route(self, sid: str) -> Optional[Route]:
        with self._lock:
            route = self._by_sid.get(sid)
            return Route(route.sid, route.identity, route.code) if route else None

    def sid_for(self, identity: str) -> Optional[str]:
        with self._lock:
            return self._sid_by_identity.get(identity)

    def disconnect(self, sid: str) -> Optional[Route]:
        """Forget ``sid``; returns its last route.

        The identity mapping is only dropped when ``sid`` is still the
        identity's current connection.
        """
        with self._lock:
            route = self._by_sid.pop(sid, None)
            if route is None:
                return None
            if self._sid_by_identity.get(route.identity) == sid:
                del self._sid_by_identity[route.identity]
            return route

    def evict_session(self, code: str) -> List[Route]:
        """Detach every connection bound to ``code``; they stay connected."""
        with self._lock:
            evicted = []
            for route in self._by_sid.values():
                if route.code == code:
                    route.code = None
                    if self._sid_by_identity.get(route.identity) == route.sid:
                        del self._sid_by_identity[route.identity]
                    evicted.append(Route(route.sid, route.identity, code))
            return evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_sid)
