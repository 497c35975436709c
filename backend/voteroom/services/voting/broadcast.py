from typing import Any, Dict, Optional

from .session import VotingSession

NAMESPACE = '/ws'


def room_for(code: str) -> str:
    return f"session:{code}"


def build_snapshot(session: Optional[VotingSession]) -> Optional[Dict[str, Any]]:
    """Redacted projection of a session sent to every member.

    Active-round votes appear only as ``has_voted`` flags; the values are
    revealed through ``average`` and ``history`` once the round closes.
    """
    if session is None:
        return None
    participants = [
        {
            'identity': identity,
            'display_name': data.get('display_name'),
            'has_voted': identity in session.votes,
            'connected': bool(data.get('connected')),
        }
        for identity, data in session.participants.items()
    ]
    return {
        'code': session.code,
        'state': session.state,
        'participant_count': len(session.participants),
        'average': session.average,
        'participants': participants,
        'vote_count': len(session.votes),
        'history': [dict(r) for r in session.history],
        'timer_deadline': session.timer_deadline,
        'round_number': len(session.history),
        'revision': session.revision,
    }


class SessionBroadcaster:
    """Fans session events out over Socket.IO rooms, one room per session."""

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def attach(self, sid: str, code: str) -> None:
        self.socketio.server.enter_room(sid, room_for(code), namespace=self.namespace)

    def detach(self, sid: str, code: str) -> None:
        self.socketio.server.leave_room(sid, room_for(code), namespace=self.namespace)

    def publish(self, code: str, snapshot: Dict[str, Any]) -> None:
        self.socketio.emit('session_state', snapshot, to=room_for(code), namespace=self.namespace)

    def end(self, code: str) -> None:
        room = room_for(code)
        self.socketio.emit('session_ended', {'code': code}, to=room, namespace=self.namespace)
        self.socketio.close_room(room, namespace=self.namespace)
