"""Exit-code carrying errors and the decorator that turns them into CLI exits"""

from typing import Optional, Callable, Any, Dict, Tuple, Type, TypeVar
from functools import wraps
import sys
import logging

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

INTERRUPTED_EXIT_CODE = 130


class CLIError(Exception):
    """Base exception for CLI operations."""

    exit_code = 1

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(message)


class FileError(CLIError):
    """Candidate, results or list file could not be used."""

    exit_code = 2


class ConfigError(CLIError):
    """Invalid or missing run settings."""

    exit_code = 3


class DataError(CLIError):
    """Input parsed but holds nothing usable."""

    exit_code = 4


class NetworkError(CLIError):
    """A control-plane request failed."""

    exit_code = 5


class GeoDatabaseError(NetworkError):
    """The datacenter location database could not be obtained or parsed."""


class OutputError(FileError):
    """The export artifact could not be written."""


class UploadError(NetworkError):
    """The upload endpoint rejected the results."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


FRIENDLY_NAMES: Dict[Type[BaseException], str] = {
    FileNotFoundError: "File not found",
    PermissionError: "Permission denied",
    ValueError: "Invalid value",
    TimeoutError: "Operation timeout",
    ConnectionError: "Connection failed",
    KeyboardInterrupt: "Operation cancelled",
    GeoDatabaseError: "Location database unavailable",
    OutputError: "Cannot write output",
    UploadError: "Upload failed",
}

# Builtin failures that escape a command: (fallback context, exit code)
BUILTIN_EXITS: Tuple[Tuple[Tuple[Type[BaseException], ...], str, int], ...] = (
    ((FileNotFoundError, PermissionError), "File operation", FileError.exit_code),
    ((TimeoutError, ConnectionError), "Network operation", NetworkError.exit_code),
    ((ValueError,), "Validation", DataError.exit_code),
)


def format_error_message(
    error: BaseException, context: Optional[str] = None, include_traceback: bool = False
) -> str:
    """
    Format error message for user display.

    Args:
        error: Exception that occurred
        context: Operation the error interrupted, e.g. "Scan"
        include_traceback: Append the active traceback

    Returns:
        Formatted error message string
    """
    error_name = FRIENDLY_NAMES.get(type(error), type(error).__name__)
    message = f"❌ {context}: {error_name}" if context else f"❌ {error_name}"

    if str(error):
        message += f" - {error}"

    if include_traceback:
        import traceback

        message += f"\n{traceback.format_exc()}"

    return message


def _fail(message: str, exit_code: int) -> None:
    print(message, file=sys.stderr)
    sys.exit(exit_code)


def handle_cli_errors(
    context: str = "", exit_on_keyboard_interrupt: bool = True
) -> Callable[[F], F]:
    """
    Decorator mapping errors raised by a command to a message and exit code.

    ``CLIError`` subclasses exit with their own code; common builtin errors
    use ``BUILTIN_EXITS``; anything else exits 1 with a traceback.

    Args:
        context: Operation name shown in error messages
        exit_on_keyboard_interrupt: Exit 130 on Ctrl+C instead of re-raising
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                if not exit_on_keyboard_interrupt:
                    raise
                _fail("\n⚠️  Operation cancelled by user", INTERRUPTED_EXIT_CODE)
            except CLIError as e:
                message = format_error_message(e, context or e.context)
                logger.debug("CLI Error: %s", message)
                _fail(message, e.exit_code)
            except Exception as e:
                for types, fallback, exit_code in BUILTIN_EXITS:
                    if isinstance(e, types):
                        _fail(format_error_message(e, context or fallback), exit_code)
                _fail(
                    format_error_message(e, context or "Operation", include_traceback=True),
                    1,
                )

        return wrapper  # type: ignore

    return decorator
