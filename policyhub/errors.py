"""
Error kinds raised inside the service layer.

Each error maps to an HTTP-equivalent status. Services raise these and the
``service_operation`` wrapper turns them into failed results, so callers
never see them as exceptions.
"""


class PolicyHubError(Exception):
    """Base class for every business error."""
    kind = 'InternalError'
    http_status = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.kind, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload

    def __repr__(self):
        return f'<{self.kind} {self.message!r}>'


class ValidationError(PolicyHubError):
    """Malformed or out-of-range input."""
    kind = 'ValidationError'
    http_status = 400


class UnauthenticatedError(PolicyHubError):
    kind = 'UnauthenticatedError'
    http_status = 401


class ForbiddenError(PolicyHubError):
    kind = 'ForbiddenError'
    http_status = 403


class NotFoundError(PolicyHubError):
    kind = 'NotFoundError'
    http_status = 404


class ConflictError(PolicyHubError):
    """State-machine violation: duplicate code, terminal status, installment cap."""
    kind = 'ConflictError'
    http_status = 409


class InternalError(PolicyHubError):
    kind = 'InternalError'
    http_status = 500
