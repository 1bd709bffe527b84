"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str, fields: list[str] | None = None, original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.fields = fields or []


class PreconditionError(AppError):
    """Raised when an operation is attempted in a state that forbids it."""
    pass


class NotFoundError(AppError):
    """Raised when a document does not exist in the store."""
    pass


class PermissionDeniedError(AppError):
    """Raised when the current user may not perform an action."""
    pass


class TransportError(AppError):
    """Raised when the document store cannot be reached."""
    pass


class IndexMissingError(TransportError):
    """Raised when a live query needs an index or schema that does not exist.

    Retrying does not help; an operator has to create the index.
    """
    pass


class DispatchError(AppError):
    """Raised when an outbound notification could not be delivered."""

    def __init__(self, message: str, channel: str = "", original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.channel = channel


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass
