"""
Error taxonomy for bracket progression and the match event log.

Every error carries a ``kind`` (the broad category callers branch on), a
``code`` (the specific condition), and the HTTP status the web layer maps
it to.
"""


class BracketError(Exception):
    """Base class for all bracket core errors."""

    kind = 'error'
    code = 'error'
    http_status = 500

    def __init__(self, message, code=None, **context):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context

    def to_dict(self):
        data = {'error': self.message, 'kind': self.kind, 'code': self.code}
        if self.context:
            data['context'] = self.context
        return data


class ValidationError(BracketError):
    """Malformed or missing input; raised before anything is written."""

    kind = 'validation'
    code = 'invalid_input'
    http_status = 400


class InvalidParticipantError(ValidationError):
    """Declared winner is not one of the match's two concrete teams."""

    code = 'invalid_participant'


class NotFoundError(BracketError):
    kind = 'not_found'
    code = 'not_found'
    http_status = 404


class NoEventError(NotFoundError):
    """Undo requested for a match that has nothing to undo."""

    code = 'no_event'


class ConflictError(BracketError):
    """Stale revision, lost completion race, or a busy store."""

    kind = 'conflict'
    code = 'stale_revision'
    http_status = 409


class AlreadyRevertedError(ConflictError):
    code = 'already_reverted'


class InvariantViolation(BracketError):
    """The operation would break a data-integrity rule.

    These are bug reports rather than user errors; raisers log them with
    full context before surfacing them.
    """

    kind = 'invariant_violation'
    code = 'invariant_violation'
    http_status = 500


class UnauthorizedError(BracketError):
    """Capability check failed for the acting identity."""

    kind = 'unauthorized'
    code = 'unauthorized'
    http_status = 403
