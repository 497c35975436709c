"""Errors raised by the voting core.

Every error carries a short user-facing ``message``. The transport layer
sends that message back to the caller as ``action_error``; nothing here is
ever broadcast to the rest of a session.
"""


class VotingError(Exception):
    message = 'Action failed'

    def __init__(self, message=None):
        if message:
            self.message = message
        super().__init__(self.message)


class AuthorizationError(VotingError):
    message = 'Action not allowed'


class NotFoundError(VotingError):
    message = 'Session not found'


class StateError(VotingError):
    message = 'Action not available right now'


class ValidationError(VotingError):
    message = 'Invalid request'


class ConflictError(VotingError):
    message = 'You are already in a session'


class InfrastructureError(VotingError):
    # Detail stays in the logs; callers only ever see this text.
    message = 'Server error'
