"""Custom exception classes for the application."""


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when user input fails validation."""

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


class LocationRequired(AppError):
    """Raised when an operation needs a resolved location and none is available."""

    def __init__(
        self, message="Location is required. Please retry or allow location access."
    ):
        """Initialize the error."""
        super().__init__(message, 422)


class PermissionDenied(AppError):
    """Raised when a user acts on a resource they do not own."""

    def __init__(self, message="You do not have permission to do that."):
        """Initialize the error."""
        super().__init__(message, 403)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class OperationFailed(AppError):
    """Raised when a store write fails; the message is safe to show to users."""

    def __init__(self, message="Something went wrong. Please try again."):
        """Initialize the error."""
        super().__init__(message, 503)
