"""Session record shared by every store backend.

A ``VotingSession`` is the durable unit of coordination. Stores persist it as
the plain dict produced by ``to_dict`` and rebuild it with ``from_dict``; the
Socket.IO snapshot is a separate, redacted projection (see ``broadcast``).
"""

import time
from typing import Any, Dict, List, Optional

OPEN = 'OPEN'
CLOSED = 'CLOSED'
VOTING = 'VOTING'
RESULTS = 'RESULTS'


class VotingSession:

    def __init__(self, code: str, coordinator_identity: str, state: str = OPEN,
                 participants: Optional[Dict[str, Dict[str, Any]]] = None,
                 votes: Optional[Dict[str, int]] = None,
                 average: Optional[float] = None,
                 history: Optional[List[Dict[str, Any]]] = None,
                 timer_deadline: Optional[float] = None,
                 created_at: Optional[float] = None,
                 revision: int = 0):
        self.code = code
        self.coordinator_identity = coordinator_identity
        self.state = state
        self.participants = participants if participants is not None else {}
        self.votes = votes if votes is not None else {}
        self.average = average
        self.history = history if history is not None else []
        self.timer_deadline = timer_deadline
        self.created_at = created_at if created_at is not None else time.time()
        self.revision = revision

    def __repr__(self):
        return f"<VotingSession {self.code} {self.state} participants={len(self.participants)}>"

    def is_coordinator(self, identity: Optional[str]) -> bool:
        return bool(identity) and identity == self.coordinator_identity

    def is_participant(self, identity: Optional[str]) -> bool:
        return bool(identity) and identity in self.participants

    def knows(self, identity: Optional[str]) -> bool:
        return self.is_coordinator(identity) or self.is_participant(identity)

    def role_of(self, identity: Optional[str]) -> str:
        if self.is_coordinator(identity):
            return 'coordinator'
        if self.is_participant(identity):
            return 'participant'
        return 'none'

    def member_identities(self) -> List[str]:
        return [self.coordinator_identity, *self.participants.keys()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'coordinator_identity': self.coordinator_identity,
            'state': self.state,
            'participants': {k: dict(v) for k, v in self.participants.items()},
            'votes': dict(self.votes),
            'average': self.average,
            'history': [dict(r) for r in self.history],
            'timer_deadline': self.timer_deadline,
            'created_at': self.created_at,
            'revision': self.revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VotingSession':
        return cls(
            code=data['code'],
            coordinator_identity=data['coordinator_identity'],
            state=data.get('state', OPEN),
            participants={k: dict(v) for k, v in (data.get('participants') or {}).items()},
            votes={k: int(v) for k, v in (data.get('votes') or {}).items()},
            average=data.get('average'),
            history=list(data.get('history') or []),
            timer_deadline=data.get('timer_deadline'),
            created_at=data.get('created_at'),
            revision=int(data.get('revision') or 0),
        )
