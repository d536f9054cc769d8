"""Exit codes and the exceptions that carry them out of the checker pipeline."""

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    SYNTAX_ERRORS = 1
    BAD_ARGUMENTS = 2
    MISSING_CHECKOUT = 3
    EXCLUSIVE_FLAGS = 4
    INVALID_REVISION = 5
    UNKNOWN_VCS = 6
    CLASS_DUPLICATES = 7
    NODE_DATABASE_ERROR = 8
    NODE_REGEX_DUPLICATES = 9
    COMPILE_ERRORS = 10
    TOOL_FAILURE = 11


class ToolError(Exception):
    """Raised when an external command exits non-zero or cannot be started."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class CheckAbort(Exception):
    """
    Stops the pipeline with a specific exit code.

    The console script prints the message to stderr and exits with `code`.
    An empty message means the findings were already reported.
    """

    code: ExitCode = ExitCode.TOOL_FAILURE

    def __init__(self, message: str = "", code: ExitCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class UsageError(CheckAbort):
    code = ExitCode.BAD_ARGUMENTS


class MissingCheckoutError(CheckAbort):
    code = ExitCode.MISSING_CHECKOUT


class ExclusiveFlagsError(CheckAbort):
    code = ExitCode.EXCLUSIVE_FLAGS


class InvalidRevisionError(CheckAbort):
    code = ExitCode.INVALID_REVISION


class UnknownVCSError(CheckAbort):
    code = ExitCode.UNKNOWN_VCS


class ValidationFailed(CheckAbort):
    """A validation category produced findings; `code` names the category."""
    pass
