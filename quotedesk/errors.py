from __future__ import annotations


class QuoteDeskError(Exception):
    kind = 'Error'
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'message': self.message}


class ValidationError(QuoteDeskError):
    kind = 'ValidationError'
    status_code = 400


class DependencyError(ValidationError):
    """Delete refused because other records still reference the target."""

    kind = 'DependencyError'
    status_code = 409


class NotFoundError(QuoteDeskError):
    kind = 'NotFoundError'
    status_code = 404


class AuthorizationError(QuoteDeskError):
    kind = 'AuthorizationError'
    status_code = 403


class IllegalTransitionError(QuoteDeskError):
    kind = 'IllegalTransitionError'
    status_code = 409


class ExternalServiceError(QuoteDeskError):
    kind = 'ExternalServiceError'
    status_code = 502


class PersistenceError(QuoteDeskError):
    kind = 'PersistenceError'
    status_code = 500
