"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""

    status_code = 500
    title = "Internal Error"

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input validation fails."""

    status_code = 400
    title = "Validation Failed"


class NotFoundError(AppError):
    """Raised when a record is missing or not owned by the caller."""

    status_code = 404
    title = "Not Found"


class InvalidTransitionError(AppError):
    """Raised when a commit status change is not an allowed edge."""

    status_code = 409
    title = "Invalid Status Transition"


class AuthorizationError(AppError):
    """Raised when an operation is not permitted for the caller or environment."""

    status_code = 403
    title = "Forbidden"


class ReadOnlyQueryViolation(AuthorizationError):
    """Raised when a custom graph query starts with a write verb."""

    title = "Read-Only Query Violation"


class DatabaseError(AppError):
    """Raised when a database operation fails."""

    title = "Database Error"


class EntityResolutionError(AppError):
    """Raised when a canonical entity cannot be resolved."""

    title = "Entity Resolution Failed"


class GraphStoreError(AppError):
    """Raised when the graph store rejects or fails a call."""

    status_code = 503
    title = "Graph Store Unavailable"


class GraphStoreTimeoutError(GraphStoreError):
    """Raised when a graph store call exceeds its time budget."""

    title = "Graph Store Timeout"
