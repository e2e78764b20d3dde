"""
Custom exception hierarchy for type-safe error handling

Provides a structured exception hierarchy that maps to HTTP status codes
and enables consistent error responses across the application.

Usage:
    from app.error_handlers.exceptions import SchedulingRejected

    def schedule(job):
        if job.status == 'done':
            raise SchedulingRejected('Job is already done')

Exception Hierarchy:
    AppException (base)
    ├── ValidationException (400)
    │   └── SchedulingRejected (400)
    ├── AuthorizationException (403)
    ├── ResourceNotFoundException (404)
    │   └── JobNotFoundException (404)
    ├── ConfigurationException (500)
    ├── DatabaseException (500)
    │   └── PersistenceFailedException (500)
    └── ExternalAPIException (502)
        └── CollaboratorUnavailableException (502)
"""
from typing import Dict, Any, Optional


class AppException(Exception):
    """
    Base exception for all application errors

    Attributes:
        status_code: HTTP status code for the error
        error_type: String identifier for the error type
        message: Human-readable error message
        details: Additional context about the error
    """
    status_code = 500
    error_type = 'ApplicationError'

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to JSON-serializable dictionary

        Returns:
            Dictionary suitable for JSON response
        """
        result = {
            'error': self.error_type,
            'message': self.message,
            'status_code': self.status_code
        }
        if self.details:
            result.update(self.details)
        return result

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}('{self.message}', status_code={self.status_code})>"


class ValidationException(AppException):
    """Request data failed validation (HTTP 400)"""
    status_code = 400
    error_type = 'ValidationError'


class SchedulingRejected(ValidationException):
    """
    A scheduling operation was refused (HTTP 400)

    Raised for blocking production rules, invalid stage transitions,
    blocked/done jobs and invalid status transitions. Nothing is mutated.

    Example:
        >>> raise SchedulingRejected('Quantity 6 is below the minimum batch size of 12',
        ...                          violations=[violation])
    """
    error_type = 'ValidationRejected'

    def __init__(self, message: str, violations=None, details: Optional[Dict[str, Any]] = None):
        self.violations = list(violations or [])
        details = dict(details or {})
        if self.violations:
            details['violations'] = [v.to_dict() for v in self.violations]
        super().__init__(message, details=details)


class AuthorizationException(AppException):
    """
    Authorization errors (HTTP 403)

    Example:
        >>> if not actor.can_schedule():
        ...     raise AuthorizationException('Scheduling requires a manager or operator role')
    """
    status_code = 403
    error_type = 'AuthorizationError'


class ResourceNotFoundException(AppException):
    """Resource not found (HTTP 404)"""
    status_code = 404
    error_type = 'NotFound'


class JobNotFoundException(ResourceNotFoundException):
    """Unknown production job id (HTTP 404)"""

    def __init__(self, job_id: str):
        super().__init__(f'Job {job_id} not found', details={'job_id': job_id})
        self.job_id = job_id


class ConfigurationException(AppException):
    """Application or organization is misconfigured (HTTP 500)"""
    status_code = 500
    error_type = 'ConfigurationError'


class DatabaseException(AppException):
    """Database operation errors (HTTP 500)"""
    status_code = 500
    error_type = 'DatabaseError'


class PersistenceFailedException(DatabaseException):
    """
    A deferred persistence or audit effect failed

    Only logged by the effect runner; the local decision already stands
    and callers reconcile on the next refresh.
    """
    error_type = 'PersistenceFailed'


class ExternalAPIException(AppException):
    """External API call errors (HTTP 502)"""
    status_code = 502
    error_type = 'ExternalAPIError'


class CollaboratorUnavailableException(ExternalAPIException):
    """A required collaborator (such as the stage dependency gate) raised"""
    error_type = 'CollaboratorUnavailable'
