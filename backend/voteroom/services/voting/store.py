"""Session store backends.

Every backend offers the same small contract: ``get``/``set``/``delete``/
``exists`` for sessions, and ``bind_identity``/``identity_code``/
``unbind_identity`` for the durable identity -> session association. ``set``
refreshes the expiry on every write. Nothing here is atomic across calls;
callers serialize multi-step sequences with the lock manager.

Storage failures surface as ``InfrastructureError``.
"""

import json
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import redis
from sqlalchemy.exc import SQLAlchemyError

from voteroom.errors import InfrastructureError
from voteroom.models import StoredSession, IdentityBinding
from .session import VotingSession

SESSION_PREFIX = 'session:'
IDENTITY_PREFIX = 'identity:'


class SessionStore:

    def get(self, code: str) -> Optional[VotingSession]:
        raise NotImplementedError

    def set(self, session: VotingSession, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, code: str) -> None:
        raise NotImplementedError

    def exists(self, code: str) -> bool:
        raise NotImplementedError

    def bind_identity(self, identity: str, code: str, ttl: int) -> None:
        raise NotImplementedError

    def identity_code(self, identity: str) -> Optional[str]:
        raise NotImplementedError

    def unbind_identity(self, identity: str) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local store; sessions are kept serialized so callers never share objects."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Tuple[dict, float]] = {}
        self._identities: Dict[str, Tuple[str, float]] = {}

    def _live(self, table: dict, key: str):
        rec = table.get(key)
        if rec is None:
            return None
        if rec[1] <= self._clock():
            table.pop(key, None)
            return None
        return rec[0]

    def get(self, code):
        with self._lock:
            data = self._live(self._sessions, code)
        return VotingSession.from_dict(json.loads(json.dumps(data))) if data is not None else None

    def set(self, session, ttl):
        data = json.loads(json.dumps(session.to_dict()))
        with self._lock:
            self._sessions[session.code] = (data, self._clock() + ttl)

    def delete(self, code):
        with self._lock:
            self._sessions.pop(code, None)

    def exists(self, code):
        with self._lock:
            return self._live(self._sessions, code) is not None

    def bind_identity(self, identity, code, ttl):
        with self._lock:
            self._identities[identity] = (code, self._clock() + ttl)

    def identity_code(self, identity):
        with self._lock:
            return self._live(self._identities, identity)

    def unbind_identity(self, identity):
        with self._lock:
            self._identities.pop(identity, None)


class SqlSessionStore(SessionStore):
    """Flask-SQLAlchemy backed store; must be used inside an app context."""

    def __init__(self, db, clock: Callable[[], float] = time.time):
        self.db = db
        self._clock = clock

    def _run(self, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise InfrastructureError() from exc

    def get(self, code):
        def _get():
            row = self.db.session.get(StoredSession, code, populate_existing=True)
            if row is None:
                return None
            if row.expires_at <= self._clock():
                self.db.session.delete(row)
                self.db.session.commit()
                return None
            return VotingSession.from_dict(json.loads(row.payload))
        return self._run(_get)

    def set(self, session, ttl):
        def _set():
            row = self.db.session.get(StoredSession, session.code)
            if row is None:
                row = StoredSession(code=session.code)
            row.payload = json.dumps(session.to_dict())
            row.expires_at = self._clock() + ttl
            self.db.session.add(row)
            self.db.session.commit()
        self._run(_set)

    def delete(self, code):
        def _delete():
            StoredSession.query.filter_by(code=code).delete()
            self.db.session.commit()
        self._run(_delete)

    def exists(self, code):
        return self.get(code) is not None

    def bind_identity(self, identity, code, ttl):
        def _bind():
            row = self.db.session.get(IdentityBinding, identity, populate_existing=True)
            if row is None:
                row = IdentityBinding(identity=identity)
            row.session_code = code
            row.expires_at = self._clock() + ttl
            self.db.session.add(row)
            self.db.session.commit()
        self._run(_bind)

    def identity_code(self, identity):
        def _lookup():
            row = self.db.session.get(IdentityBinding, identity, populate_existing=True)
            if row is None or row.expires_at <= self._clock():
                return None
            return row.session_code
        return self._run(_lookup)

    def unbind_identity(self, identity):
        def _unbind():
            IdentityBinding.query.filter_by(identity=identity).delete()
            self.db.session.commit()
        self._run(_unbind)

    def purge_expired(self) -> int:
        """Delete expired rows; returns how many sessions were removed."""

        def _purge():
            now = self._clock()
            removed = StoredSession.query.filter(StoredSession.expires_at <= now).delete()
            IdentityBinding.query.filter(IdentityBinding.expires_at <= now).delete()
            self.db.session.commit()
            return removed
        return self._run(_purge)


class RedisSessionStore(SessionStore):
    """Redis backed store; expiry is delegated to Redis key TTLs."""

    def __init__(self, client):
        self.redis = client

    @classmethod
    def from_url(cls, url: str) -> 'RedisSessionStore':
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def _run(self, fn):
        try:
            return fn()
        except redis.RedisError as exc:
            raise InfrastructureError() from exc

    def get(self, code):
        raw = self._run(lambda: self.redis.get(SESSION_PREFIX + code))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return VotingSession.from_dict(json.loads(raw))

    def set(self, session, ttl):
        payload = json.dumps(session.to_dict())
        self._run(lambda: self.redis.set(SESSION_PREFIX + session.code, payload, ex=ttl))

    def delete(self, code):
        self._run(lambda: self.redis.delete(SESSION_PREFIX + code))

    def exists(self, code):
        return bool(self._run(lambda: self.redis.exists(SESSION_PREFIX + code)))

    def bind_identity(self, identity, code, ttl):
        self._run(lambda: self.redis.set(IDENTITY_PREFIX + identity, code, ex=ttl))

    def identity_code(self, identity):
        raw = self._run(lambda: self.redis.get(IDENTITY_PREFIX + identity))
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return raw

    def unbind_identity(self, identity):
        self._run(lambda: self.redis.delete(IDENTITY_PREFIX + identity))


def build_store(config, db=None) -> SessionStore:
    backend = (config.get('STORE_BACKEND') or 'sql').lower()
    if backend == 'memory':
        return MemorySessionStore()
    if backend == 'redis':
        return RedisSessionStore.from_url(config.get('REDIS_URL', 'redis://localhost:6379/0'))
    if backend == 'sql':
        return SqlSessionStore(db)
    raise ValueError(f"Unknown STORE_BACKEND {backend!r}")
