from flask import Blueprint, current_app, jsonify
from voteroom import get_voting_service
from voteroom.errors import InfrastructureError, ValidationError

sessions = Blueprint('sessions', __name__)


@sessions.route('/<string:code>/state', methods=['GET'])
def get_session_state(code):
    """Redacted snapshot of a live session, for clients that poll over HTTP."""
    try:
        snapshot = get_voting_service().snapshot(code)
    except ValidationError as exc:
        return jsonify({'error': exc.message}), 400
    except InfrastructureError:
        current_app.logger.exception(f"[server-error] GET state session={code}")
        return jsonify({'error': InfrastructureError.message}), 500
    if snapshot is None:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify(snapshot)
