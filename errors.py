"""Exception hierarchy shared by repositories, services and the REST layer."""

from typing import Optional


class TrainingError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code: int = 500

    def __init__(self, message: str = "An error occurred", detail: Optional[str] = None) -> None:
        self.message = message
        self.detail = detail or message
        super().__init__(message)


class UnauthenticatedError(TrainingError, PermissionError):
    """No active session accompanies the request."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated", detail: Optional[str] = None) -> None:
        super().__init__(message, detail)


class NotFoundError(TrainingError, LookupError):
    """A row, document or user profile does not exist."""

    status_code = 404


class ConflictError(TrainingError):
    """A duplicate request or name."""

    status_code = 409


class ValidationError(TrainingError, ValueError):
    """A required field is missing or malformed."""

    status_code = 400


class TransientError(TrainingError, ConnectionError):
    """The data store could not be reached or timed out."""

    status_code = 503
