"""Error taxonomy shared by the round services and the HTTP layer.

Services raise these; the ``/api`` blueprint turns them into
``{'error': message}`` JSON responses with the matching status code.
"""


class RoundError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ValidationError(RoundError):
    """Missing or malformed request fields. Not retryable."""
    status_code = 400


class AuthorizationError(RoundError):
    """Unpaid entry, missing/stale session, or a failed time check."""
    status_code = 403


class ExternalDependencyError(RoundError):
    """Chain RPC or durable store unreachable, timed out, or returned garbage."""
    status_code = 500
