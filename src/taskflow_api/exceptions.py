"""
TaskFlow API custom exceptions.

All exceptions in this module should inherit from TaskFlowAPIException, so we can catch for that externally.
"""

from fastapi import status


class TaskFlowAPIException(Exception):
    """Base exception for all TaskFlow errors."""

    def __init__(self, message: str, status_code: int, headers: dict[str, str] | None = None):
        self.message = message
        self.status_code = status_code
        self.headers = headers or {}
        super().__init__(self.message)


class NotFoundError(TaskFlowAPIException):
    """Raised when an entity looked up by id or unique field does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message=message, status_code=status.HTTP_404_NOT_FOUND)


class DuplicateError(TaskFlowAPIException):
    """Raised when a unique constraint (username, email, membership...) would be violated."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT)


class AuthenticationError(TaskFlowAPIException):
    def __init__(self, message: str = "Authentication required"):
        default_headers = {"WWW-Authenticate": "Bearer"}
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED, headers=default_headers)


class TokenError(TaskFlowAPIException):
    """
    Raised when a token cannot be decoded while extracting data from it.

    Note: TokenService.validate never raises this, it returns False instead.
    """

    def __init__(self, message: str = "Invalid or expired token"):
        default_headers = {"WWW-Authenticate": "Bearer"}
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED, headers=default_headers)


class AccessDeniedError(TaskFlowAPIException):
    """Identity/ownership violation, e.g. editing a comment you did not write."""

    def __init__(self, action: str, resource: str | None = None):
        message = f"Access denied to {action} {resource}" if resource else action
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)


class BusinessLogicError(TaskFlowAPIException):
    """Valid actors but the operation is not allowed (bad status transition, non participant...)."""

    def __init__(self, operation: str, reason: str | None = None):
        message = f"Cannot {operation}: {reason}" if reason else operation
        # literal, the status constant for 422 was renamed in newer Starlette releases
        super().__init__(message=message, status_code=422)


class ValidationError(TaskFlowAPIException):
    """Malformed input, optionally tied to a single field."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        if field:
            message = f"Validation failed for field '{field}': {message}"
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST)
