"""Custom exception classes for the application"""

# Execution Errors
#
# Raised inside the engine and converted into an ExecutionResult by the
# orchestrator; none of them is expected to reach an API caller.
class ExecutionError(Exception):
    """Base class for failures of a single execution job"""

    error_type = "runtime_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnsupportedLanguageError(ExecutionError):
    """No adapter is registered for the requested language"""

    error_type = "unsupported_language"

    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class CompileError(ExecutionError):
    """Toolchain exited non-zero during compilation"""

    error_type = "compile_error"


class ExecutionRuntimeError(ExecutionError):
    """Run step exited non-zero or crashed"""

    error_type = "runtime_error"


class ExecutionTimeoutError(ExecutionError):
    """Compile or run step exceeded its wall-clock bound and was killed"""

    error_type = "time_limit_exceeded"


class MalformedVerdictError(ExecutionError):
    """Harness marker was printed but the payload after it could not be parsed"""

    error_type = "malformed_verdict"

    def __init__(self, message: str = "malformed test result payload"):
        super().__init__(message)


class SpawnError(ExecutionError):
    """The command could not be started at all"""

    error_type = "spawn_error"


class ExecutionCancelledError(ExecutionError):
    """The caller cancelled the job before it finished"""

    error_type = "cancelled"

    def __init__(self, message: str = "Execution cancelled"):
        super().__init__(message)


class InvalidRequestError(ExecutionError):
    """Job input that cannot be executed (e.g. a malformed test case)"""

    error_type = "invalid_request"
