from functools import wraps

from flask import current_app, request
from flask_socketio import emit

from voteroom import socketio, get_voting_service
from voteroom.errors import InfrastructureError, ValidationError, VotingError

SERVER_ERROR = InfrastructureError.message


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _payload(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Malformed request')
    return data


def _guarded(handler):
    """Report failures to the caller only; never let one crash the server."""
    @wraps(handler)
    def wrapper(*args):
        try:
            return handler(*args)
        except InfrastructureError:
            current_app.logger.exception(f"[server-error] event={handler.__name__} sid={_get_sid()}")
            emit('action_error', {'message': SERVER_ERROR})
        except VotingError as exc:
            emit('action_error', {'message': exc.message})
        except Exception:
            current_app.logger.exception(f"[server-error] event={handler.__name__} sid={_get_sid()}")
            emit('action_error', {'message': SERVER_ERROR})
    return wrapper


def _announce(membership) -> None:
    emit('role', {'role': membership.role})
    emit('session_code', {'code': membership.code})
    if membership.vote is not None:
        emit('vote_acknowledged', {'value': membership.vote})


@_guarded
def handle_connect(auth=None):
    identity = auth.get('identity') if isinstance(auth, dict) else None
    identity, _ = get_voting_service().connect(_get_sid(), identity)
    emit('assigned_identity', {'identity': identity})
    emit('role', {'role': 'none'})
    emit('session_state', None)


def handle_disconnect(reason=None):
    try:
        get_voting_service().disconnect(_get_sid())
    except Exception:
        # Participant stays connected=false until a successful reconnect
        current_app.logger.exception(f"[disconnect] sid={_get_sid()} cleanup failed")


@_guarded
def handle_start_session(data=None):
    membership = get_voting_service().start(_get_sid())
    _announce(membership)


@_guarded
def handle_join_session(data=None):
    data = _payload(data)
    service = get_voting_service()
    membership = service.join(
        _get_sid(), data.get('code'), data.get('display_name'), data.get('identity'),
    )
    if data.get('identity') != membership.identity:
        emit('assigned_identity', {'identity': membership.identity})
    _announce(membership)


@_guarded
def handle_reconnect(data=None):
    data = _payload(data)
    try:
        membership = get_voting_service().reconnect(_get_sid(), data.get('identity'), data.get('code'))
    except InfrastructureError:
        raise
    except VotingError as exc:
        emit('reconnect_failed', {'code': data.get('code'), 'message': exc.message})
        return
    _announce(membership)


@_guarded
def handle_check_session(data=None):
    service = get_voting_service()
    role, snapshot = service.check(_get_sid())
    emit('role', {'role': role})
    if snapshot is not None:
        emit('session_code', {'code': snapshot['code']})
    emit('session_state', snapshot)


@_guarded
def handle_close_doors(data=None):
    get_voting_service().close_doors(_get_sid())


@_guarded
def handle_open_vote(data=None):
    timer_seconds = data.get('timer_seconds') if isinstance(data, dict) else data
    get_voting_service().open_vote(_get_sid(), timer_seconds)


@_guarded
def handle_close_vote(data=None):
    get_voting_service().close_vote(_get_sid())


@_guarded
def handle_cast_vote(data=None):
    value = data.get('value') if isinstance(data, dict) else data
    vote = get_voting_service().cast_vote(_get_sid(), value)
    emit('vote_acknowledged', {'value': vote})


@_guarded
def handle_end_session(data=None):
    get_voting_service().end(_get_sid())
    emit('role', {'role': 'none'})
    emit('session_state', None)


_HANDLERS = (
    ('connect', handle_connect),
    ('disconnect', handle_disconnect),
    ('start_session', handle_start_session),
    ('join_session', handle_join_session),
    ('reconnect', handle_reconnect),
    ('check_session', handle_check_session),
    ('close_doors', handle_close_doors),
    ('open_vote', handle_open_vote),
    ('close_vote', handle_close_vote),
    ('cast_vote', handle_cast_vote),
    ('end_session', handle_end_session),
)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in _HANDLERS:
        socketio.on_event(event, handler, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        for event, handler in _HANDLERS:
            socketio.on_event(event, handler, namespace='/')
