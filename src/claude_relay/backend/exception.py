"""Custom exceptions for claude-relay backend"""


class RelayException(Exception):
    """Base exception for all claude-relay business errors

    All custom exceptions should inherit from this class.
    The global exception handler will catch this and return ErrorResponse.

    Attributes:
        message: Human-readable error message
        code: Error code for client-side error handling
        details: Optional extra data included in the error response
    """

    def __init__(self, message: str, code: str):
        """Initialize relay exception

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "NOT_FOUND")
        """
        self.message = message
        self.code = code
        self.details = None
        super().__init__(message)


class ValidationError(RelayException):
    """Validation error (invalid input data)

    Examples:
        - Missing path in set-working-directory request
        - Path is not a directory
        - Empty rule text
        - Rule index out of range
    """

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class NotFoundError(RelayException):
    """Resource not found error

    Examples:
        - Directory does not exist
        - Chat session file not found
        - Rules file not found
    """

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class InternalError(RelayException):
    """Internal server error (unexpected errors)

    Examples:
        - Failed to read a file
        - Failed to write CLAUDE.md
    """

    def __init__(self, message: str):
        super().__init__(message, "INTERNAL_ERROR")


# ==================== Runtime Layer Exceptions ====================


class RuntimeException(RelayException):
    """Base exception for all runtime layer errors

    Runtime layer exceptions are raised by the process runner and
    one-shot command helpers. They inherit from RelayException so the
    HTTP layer reports them through the same ErrorResponse envelope.
    """

    def __init__(self, message: str, code: str):
        super().__init__(message, code)


class ClaudeNotFoundError(RuntimeException):
    """The external Claude CLI binary could not be found on PATH

    This is the most common misconfiguration, so it gets its own code
    and an actionable message instead of a generic spawn failure.
    """

    def __init__(self, binary: str = "claude"):
        super().__init__(
            f"Claude CLI not found ('{binary}'). Please install Claude CLI first: "
            f"npm install -g @anthropic-ai/claude-code",
            "CLAUDE_NOT_FOUND"
        )
        self.binary = binary


class ProcessSpawnError(RuntimeException):
    """Subprocess could not be started for a reason other than a missing binary

    Examples:
        - Permission denied on the binary
        - Working directory removed
    """

    def __init__(self, message: str):
        super().__init__(message, "PROCESS_SPAWN_ERROR")


class CommandTimeoutError(RuntimeException):
    """One-shot command exceeded its wall-clock bound and was killed

    Examples:
        - MCP installation still running after 45 seconds
        - `claude mcp list` hanging
    """

    def __init__(self, message: str):
        super().__init__(message, "COMMAND_TIMEOUT")


class CommandFailedError(RuntimeException):
    """One-shot command finished without success

    Carries the captured output so the client can show what went wrong.
    """

    def __init__(self, message: str, output: str = "", error_output: str = "", exit_code=None):
        super().__init__(message, "COMMAND_FAILED")
        self.details = {
            "output": output,
            "error_output": error_output,
            "exit_code": exit_code,
        }
