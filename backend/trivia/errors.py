"""Failures surfaced to the caller of a room operation.

Every error is recoverable by the client: it ends up in the direct
acknowledgement as ``{'ok': False, 'error': message, 'code': code}`` and
never in a broadcast.
"""


class TriviaError(Exception):
    """Base class for room operation failures."""

    code = 'TriviaError'
    message = 'Request failed'

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self):
        return {'ok': False, 'error': self.message, 'code': self.code}


class RoomNotFound(TriviaError):
    code = 'RoomNotFound'
    message = 'Room not found'


class NotAuthorized(TriviaError):
    """A non-host attempted a host-only action."""

    code = 'NotAuthorized'
    message = 'Only the host can do that'


class InvalidState(TriviaError):
    code = 'InvalidState'
    message = 'Action not allowed right now'


class NotAcceptingAnswers(InvalidState):
    code = 'NotAcceptingAnswers'
    message = 'Not accepting answers'


class AlreadyAnswered(TriviaError):
    code = 'AlreadyAnswered'
    message = 'Already answered'


class NotInRoom(TriviaError):
    code = 'NotInRoom'
    message = 'Not in room'


class QuestionBankError(Exception):
    """The question bank file is missing or malformed."""
