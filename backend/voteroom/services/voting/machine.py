"""Session state machine.

Pure transitions over a ``VotingSession``: each function validates the
caller's role and the current state, then mutates the session in place.
Errors are raised before any mutation so a rejected action leaves the
session untouched. Persistence, locking and broadcasting live in
``service``.
"""

import random
import re
import string
import time
from typing import Any, Optional

from voteroom.errors import AuthorizationError, StateError, ValidationError
from .session import VotingSession, OPEN, CLOSED, VOTING, RESULTS
from .settings import VotingSettings
from .tally import close_round

CODE_LENGTH = 4
IDENTITY_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')


def generate_code(length: int = CODE_LENGTH) -> str:
    """Random fixed-width numeric join code; uniqueness is checked by the caller."""
    return ''.join(random.choices(string.digits, k=length))


def is_valid_code(code: Any) -> bool:
    return isinstance(code, str) and len(code) == CODE_LENGTH and code.isdigit()


def normalize_code(code: Any) -> str:
    if isinstance(code, int) and not isinstance(code, bool):
        code = f"{code:0{CODE_LENGTH}d}"
    if isinstance(code, str):
        code = code.strip()
    if not is_valid_code(code):
        raise ValidationError('Invalid code')
    return code


def is_valid_identity(identity: Any) -> bool:
    return isinstance(identity, str) and bool(IDENTITY_PATTERN.match(identity))


def clean_display_name(name: Any, settings: VotingSettings) -> str:
    if name is None:
        name = ''
    if not isinstance(name, str):
        raise ValidationError('Invalid display name')
    name = name.strip()[:settings.display_name_max_len]
    return name or settings.default_display_name


def parse_vote(value: Any, settings: VotingSettings) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'Invalid value ({settings.vote_min}-{settings.vote_max})')
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            value = None
    if not isinstance(value, int) or not settings.vote_min <= value <= settings.vote_max:
        raise ValidationError(f'Invalid value ({settings.vote_min}-{settings.vote_max})')
    return value


def parse_timer_seconds(value: Any, settings: VotingSettings) -> Optional[int]:
    """Round timer length in seconds, or None when no timer was requested."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError('Invalid timer')
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError('Invalid timer')
    if seconds <= 0:
        return None
    if seconds > settings.max_round_timer_sec:
        raise ValidationError(f'Timer cannot exceed {settings.max_round_timer_sec} seconds')
    return seconds


def new_session(code: str, coordinator_identity: str) -> VotingSession:
    return VotingSession(code=code, coordinator_identity=coordinator_identity, state=OPEN)


def require_coordinator(session: VotingSession, identity: Optional[str]) -> None:
    if not session.is_coordinator(identity):
        raise AuthorizationError()


def add_participant(session: VotingSession, identity: str, display_name: str,
                    settings: VotingSettings) -> None:
    if session.state != OPEN:
        raise StateError('The doors are closed')
    if len(session.participants) >= settings.max_participants:
        raise StateError('Maximum number of participants reached')
    session.participants[identity] = {'display_name': display_name, 'connected': True}


def set_connected(session: VotingSession, identity: str, connected: bool) -> bool:
    """Flag a participant's connection; returns True when something changed."""
    participant = session.participants.get(identity)
    if participant is None or participant.get('connected') == connected:
        return False
    participant['connected'] = connected
    return True


def close_doors(session: VotingSession, identity: str) -> None:
    require_coordinator(session, identity)
    if session.state != OPEN:
        raise StateError('The doors are already closed')
    session.state = CLOSED


def open_vote(session: VotingSession, identity: str, timer_seconds: Optional[int] = None,
              now: Optional[float] = None) -> Optional[float]:
    """Start a new round; returns the timer deadline, if one was requested."""
    require_coordinator(session, identity)
    if session.state not in (CLOSED, RESULTS):
        raise StateError('Voting cannot be opened now')
    session.votes = {}
    session.average = None
    session.state = VOTING
    if timer_seconds:
        session.timer_deadline = (now if now is not None else time.time()) + timer_seconds
    else:
        session.timer_deadline = None
    return session.timer_deadline


def close_vote(session: VotingSession, identity: Optional[str] = None, automatic: bool = False):
    if not automatic:
        require_coordinator(session, identity)
    if session.state != VOTING:
        raise StateError('Voting is not open')
    return close_round(session)


def cast_vote(session: VotingSession, identity: str, value: Any, settings: VotingSettings) -> int:
    if session.state != VOTING:
        raise StateError('Voting is not open')
    if not session.is_participant(identity):
        raise AuthorizationError('You are not a participant')
    vote = parse_vote(value, settings)
    session.votes[identity] = vote
    return vote
