from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .session import VotingSession, RESULTS


def compute_average(values: Iterable[int]) -> Optional[float]:
    """Mean of ``values`` rounded half away from zero to one decimal.

    Returns None for an empty round.
    """
    values = list(values)
    if not values:
        return None
    mean = Decimal(sum(values)) / Decimal(len(values))
    return float(mean.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def close_round(session: VotingSession) -> Optional[dict]:
    """Close the active round and append its summary to the history.

    A round with no votes still moves the session to RESULTS but leaves the
    history untouched. Returns the appended round, if any.
    """
    session.state = RESULTS
    session.timer_deadline = None
    session.average = compute_average(session.votes.values())
    if session.average is None:
        return None

    votes_by_name = {}
    for identity, value in session.votes.items():
        participant = session.participants.get(identity)
        if participant:
            votes_by_name[participant['display_name']] = value

    entry = {
        'sequence_number': len(session.history) + 1,
        'average': session.average,
        'voter_count': len(session.votes),
        'votes_by_name': votes_by_name,
    }
    session.history.append(entry)
    return entry
