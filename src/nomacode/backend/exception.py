"""Custom exceptions for Nomacode application"""


class NomacodeException(Exception):
    """Base exception for all Nomacode business errors

    All custom exceptions should inherit from this class.
    The global exception handler will catch this and return ErrorResponse.

    Attributes:
        message: Human-readable error message
        code: Error code for client-side error handling
    """

    def __init__(self, message: str, code: str):
        """Initialize Nomacode exception

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "NOT_FOUND")
        """
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(NomacodeException):
    """Validation error (invalid input data)

    Examples:
        - Working directory does not exist
        - Terminal size out of range
    """

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class NotFoundError(NomacodeException):
    """Resource not found error

    Examples:
        - Tool not in the catalog
    """

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class InternalError(NomacodeException):
    """Internal server error (unexpected errors)

    Examples:
        - Log directory cannot be created under the instance path
    """

    def __init__(self, message: str):
        super().__init__(message, "INTERNAL_ERROR")


# ==================== Terminal Layer Exceptions ====================


class TerminalException(NomacodeException):
    """Base exception for all terminal layer errors

    Raised by SessionRegistry, Session and the process backends. They inherit
    from NomacodeException so they are caught by the global exception handler.
    """

    def __init__(self, message: str, code: str):
        super().__init__(message, code)


class SessionNotFoundError(TerminalException):
    """Session not found in registry

    Examples:
        - Session was never created
        - Session has been deleted
    """

    def __init__(self, message: str):
        super().__init__(message, "SESSION_NOT_FOUND")


class SessionConflictError(TerminalException):
    """Session already exists (conflict)

    Examples:
        - Attempting to create session with duplicate session_id
    """

    def __init__(self, message: str):
        super().__init__(message, "SESSION_CONFLICT")


class SpawnError(TerminalException):
    """Process could not be started

    Examples:
        - Executable missing
        - Permission denied
        - Working directory vanished
    """

    def __init__(self, message: str):
        super().__init__(message, "SPAWN_ERROR")


class BackendUnavailableError(TerminalException):
    """Requested process backend cannot run on this host

    Examples:
        - backend = "pty" configured on a platform without pty support
        - backend = "script" configured but the script utility is missing
    """

    def __init__(self, message: str):
        super().__init__(message, "BACKEND_UNAVAILABLE")
