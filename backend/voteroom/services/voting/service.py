"""Voting service: the control flow behind every Socket.IO action.

Each mutating action follows the same path: resolve the caller's durable
identity from the routing table, take the session lock, load the session,
apply the state machine transition, store it, release the lock, then
broadcast the snapshot. Broadcasts always happen after the store write so
no client sees state that was not persisted.
"""

import logging
import uuid
from typing import Any, Dict, NamedTuple, Optional, Tuple

from voteroom.errors import (
    ConflictError, InfrastructureError, NotFoundError, ValidationError, VotingError,
)
from . import machine
from .broadcast import build_snapshot
from .locks import SessionLockManager
from .routing import Route, RoutingTable
from .session import VotingSession, VOTING
from .settings import VotingSettings


class Membership(NamedTuple):
    role: str
    code: str
    identity: str
    snapshot: Dict[str, Any]
    vote: Optional[int] = None


def new_identity() -> str:
    return uuid.uuid4().hex


class VotingService:

    def __init__(self, store, broadcaster, timer, settings: Optional[VotingSettings] = None,
                 locks: Optional[SessionLockManager] = None, routing: Optional[RoutingTable] = None,
                 logger: Optional[logging.Logger] = None):
        self.store = store
        self.broadcaster = broadcaster
        self.timer = timer
        self.settings = settings or VotingSettings()
        self.locks = locks or SessionLockManager()
        self.routing = routing or RoutingTable()
        self.logger = logger or logging.getLogger(__name__)

    # ---- helpers ----

    def _connection(self, sid: str) -> Route:
        route = self.routing.route(sid)
        if route is None:
            raise ValidationError('Unknown connection')
        return route

    def _caller(self, sid: str) -> Route:
        route = self._connection(sid)
        if not route.code:
            raise NotFoundError('No session in progress')
        return route

    def _load(self, code: str) -> VotingSession:
        session = self.store.get(code)
        if session is None:
            raise NotFoundError()
        return session

    def _commit(self, session: VotingSession) -> Dict[str, Any]:
        """Persist ``session`` and renew every member's binding with it.

        Bindings share the session's TTL so they never lapse while the
        session is still live.
        """
        ttl = self.settings.session_ttl_sec
        session.revision += 1
        self.store.set(session, ttl)
        for identity in session.member_identities():
            self.store.bind_identity(identity, session.code, ttl)
        return build_snapshot(session)

    def _route(self, sid: str, identity: str, code: str) -> None:
        former = self.routing.route(sid)
        previous = self.routing.bind(sid, identity, code)
        if former is not None and former.code and former.code != code:
            self.broadcaster.detach(sid, former.code)
        if previous:
            self.broadcaster.detach(previous, code)
        self.broadcaster.attach(sid, code)

    def _bound_elsewhere(self, identity: str, code: Optional[str] = None) -> bool:
        """Whether ``identity`` is still a member of another live session."""
        bound = self.store.identity_code(identity)
        if not bound or bound == code:
            return False
        session = self.store.get(bound)
        return session is not None and session.knows(identity)

    def _restore(self, session: VotingSession, sid: str, identity: str) -> Membership:
        """Re-attach a known identity to ``session`` on connection ``sid``.

        Caller holds the session lock.
        """
        machine.set_connected(session, identity, True)
        snapshot = self._commit(session)
        self._route(sid, identity, session.code)
        vote = session.votes.get(identity) if session.state == VOTING else None
        if (session.state == VOTING and session.timer_deadline
                and not self.timer.is_armed(session.code)):
            # Timers are per process; rebuild one lost to a restart.
            self.timer.arm(session.code, session.timer_deadline, self.expire_round)
        return Membership(session.role_of(identity), session.code, identity, snapshot, vote)

    # ---- connection lifecycle ----

    def connect(self, sid: str, identity: Any = None) -> Tuple[str, bool]:
        """Register a connection; returns its identity and whether it was generated."""
        generated = not machine.is_valid_identity(identity)
        if generated:
            identity = new_identity()
        self.routing.connect(sid, identity)
        return identity, generated

    def disconnect(self, sid: str) -> None:
        route = self.routing.disconnect(sid)
        if route is None or not route.code:
            return
        code, identity = route.code, route.identity
        snapshot = None
        try:
            with self.locks.hold(code):
                if self.routing.sid_for(identity) is not None:
                    # Already reconnected on a newer connection.
                    return
                session = self.store.get(code)
                if session is None:
                    return
                if machine.set_connected(session, identity, False):
                    snapshot = self._commit(session)
        except VotingError:
            self.logger.exception(f"[disconnect] session={code} identity={identity} cleanup failed")
            return
        self.logger.info(f"[disconnect] session={code} identity={identity}")
        if snapshot is not None:
            self.broadcaster.publish(code, snapshot)

    # ---- actions ----

    def start(self, sid: str) -> Membership:
        route = self._connection(sid)
        identity = route.identity
        if (route.code and self.store.exists(route.code)) or self._bound_elsewhere(identity):
            raise ConflictError()

        for _ in range(self.settings.code_allocation_attempts):
            code = machine.generate_code()
            with self.locks.hold(code):
                if self.store.exists(code):
                    continue
                session = machine.new_session(code, identity)
                snapshot = self._commit(session)
                self._route(sid, identity, code)
            break
        else:
            raise InfrastructureError('No free session code')

        self.logger.info(f"[session-created] session={code} coordinator={identity}")
        self.broadcaster.publish(code, snapshot)
        return Membership('coordinator', code, identity, snapshot)

    def join(self, sid: str, code: Any, display_name: Any = None, identity: Any = None) -> Membership:
        code = machine.normalize_code(code)
        route = self._connection(sid)
        if identity is None:
            identity = route.identity
        elif not machine.is_valid_identity(identity):
            raise ValidationError('Invalid identity')
        if route.code and route.code != code and self.store.exists(route.code):
            raise ConflictError()
        name = machine.clean_display_name(display_name, self.settings)

        with self.locks.hold(code):
            session = self._load(code)
            if session.knows(identity):
                membership = self._restore(session, sid, identity)
                self.logger.info(f"[rejoin] session={code} identity={identity} role={membership.role}")
            else:
                if self._bound_elsewhere(identity, code):
                    raise ConflictError()
                machine.add_participant(session, identity, name, self.settings)
                snapshot = self._commit(session)
                self._route(sid, identity, code)
                membership = Membership('participant', code, identity, snapshot)
                self.logger.info(f"[join] session={code} identity={identity} name={name!r}")

        self.broadcaster.publish(code, membership.snapshot)
        return membership

    def reconnect(self, sid: str, identity: Any, code: Any) -> Membership:
        """Restore a known identity; any VotingError means the client should start over."""
        if not machine.is_valid_identity(identity):
            raise NotFoundError('Unknown identity')
        code = machine.normalize_code(code)
        route = self.routing.route(sid)
        if (route is not None and route.code and (route.code, route.identity) != (code, identity)
                and self.store.exists(route.code)):
            # This connection already speaks for someone in a live session.
            raise ConflictError()
        with self.locks.hold(code):
            session = self._load(code)
            if not session.knows(identity):
                raise NotFoundError('Unknown identity')
            membership = self._restore(session, sid, identity)
        self.logger.info(f"[reconnect] session={code} identity={identity} role={membership.role}")
        self.broadcaster.publish(code, membership.snapshot)
        return membership

    def check(self, sid: str) -> Tuple[str, Optional[Dict[str, Any]]]:
        """Caller's current role and snapshot, without taking the lock."""
        route = self.routing.route(sid)
        if route is None or not route.code:
            return 'none', None
        session = self.store.get(route.code)
        if session is None:
            return 'none', None
        return session.role_of(route.identity), build_snapshot(session)

    def close_doors(self, sid: str) -> None:
        route = self._caller(sid)
        with self.locks.hold(route.code):
            session = self._load(route.code)
            machine.close_doors(session, route.identity)
            snapshot = self._commit(session)
        self.logger.info(f"[doors-closed] session={route.code}")
        self.broadcaster.publish(route.code, snapshot)

    def open_vote(self, sid: str, timer_seconds: Any = None) -> Optional[float]:
        route = self._caller(sid)
        seconds = machine.parse_timer_seconds(timer_seconds, self.settings)
        with self.locks.hold(route.code):
            session = self._load(route.code)
            deadline = machine.open_vote(session, route.identity, seconds)
            snapshot = self._commit(session)
            if deadline:
                self.timer.arm(route.code, deadline, self.expire_round)
            else:
                self.timer.cancel(route.code)
        self.logger.info(
            f"[vote-opened] session={route.code} round={len(session.history) + 1} timer={seconds or 'none'}"
        )
        self.broadcaster.publish(route.code, snapshot)
        return deadline

    def close_vote(self, sid: str) -> Optional[float]:
        route = self._caller(sid)
        with self.locks.hold(route.code):
            session = self._load(route.code)
            machine.close_vote(session, route.identity)
            self.timer.cancel(route.code)
            snapshot = self._commit(session)
        self.logger.info(f"[vote-closed] session={route.code} average={session.average}")
        self.broadcaster.publish(route.code, snapshot)
        return session.average

    def expire_round(self, code: str, deadline: float) -> None:
        """Timer-driven close; a no-op when the round already moved on."""
        with self.locks.hold(code):
            session = self.store.get(code)
            if session is None or session.state != VOTING or session.timer_deadline != deadline:
                self.logger.info(f"[timer-abort] session={code} round no longer matches deadline")
                return
            machine.close_vote(session, automatic=True)
            snapshot = self._commit(session)
        self.logger.info(f"[vote-closed] session={code} average={session.average} reason=timer")
        self.broadcaster.publish(code, snapshot)

    def cast_vote(self, sid: str, value: Any) -> int:
        route = self._caller(sid)
        with self.locks.hold(route.code):
            session = self._load(route.code)
            vote = machine.cast_vote(session, route.identity, value, self.settings)
            snapshot = self._commit(session)
        self.broadcaster.publish(route.code, snapshot)
        return vote

    def end(self, sid: str) -> str:
        route = self._caller(sid)
        code = route.code
        with self.locks.hold(code):
            session = self._load(code)
            machine.require_coordinator(session, route.identity)
            self.timer.cancel(code)
            self.store.delete(code)
            for identity in session.member_identities():
                if self.store.identity_code(identity) == code:
                    self.store.unbind_identity(identity)
        evicted = self.routing.evict_session(code)
        self.broadcaster.end(code)
        self.logger.info(f"[session-ended] session={code} evicted={len(evicted)}")
        return code

    # ---- read side ----

    def snapshot(self, code: Any) -> Optional[Dict[str, Any]]:
        return build_snapshot(self.store.get(machine.normalize_code(code)))
