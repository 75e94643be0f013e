"""
Error handling and reporting for vmisym.

Parsers and loaders raise the exceptions defined here internally. The public
symbol surface never lets them escape: builders catch them, log them through
the module logger and report failure as ``None`` or ``False``.
"""

import sys
import traceback
import logging
import functools
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass


class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class ErrorCategory(Enum):
    """Categories of errors that can occur."""
    INPUT_ERROR = "Input Error"
    READ_ERROR = "Read Error"
    PARSE_ERROR = "Parse Error"
    CONFIGURATION_ERROR = "Configuration Error"
    INTERNAL_ERROR = "Internal Error"


class PdbFileState(Enum):
    """Outcome of opening a PDB file."""
    OK = "ok"
    ALREADY_LOADED = "already_loaded"
    ERR_FILE_OPEN = "err_file_open"
    INVALID_FILE = "invalid_file"
    UNSUPPORTED_VERSION = "unsupported_version"


@dataclass
class ErrorContext:
    """Context information for an error."""
    file: Optional[str] = None
    function: Optional[str] = None
    module: Optional[str] = None
    address: Optional[int] = None
    stream: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class VmiSymError(Exception):
    """Base exception class for vmisym errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        suggestion: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.suggestion = suggestion
        self.original_exception = original_exception

    def __str__(self):
        """Format error message with all context."""
        lines = [
            f"\n{'='*70}",
            f"{self.severity.value}: {self.category.value}",
            f"{'='*70}",
            f"\nMessage: {self.message}",
        ]

        if self.context.file:
            lines.append(f"File: {self.context.file}")
        if self.context.function:
            lines.append(f"Function: {self.context.function}")
        if self.context.module:
            lines.append(f"Module: {self.context.module}")
        if self.context.address is not None:
            lines.append(f"Address: {self.context.address:#x}")
        if self.context.stream is not None:
            lines.append(f"Stream: {self.context.stream}")
        if self.context.additional_info:
            lines.append("\nAdditional Information:")
            for key, value in self.context.additional_info.items():
                lines.append(f"  {key}: {value}")

        if self.suggestion:
            lines.append(f"\nSuggestion: {self.suggestion}")

        if self.original_exception:
            lines.append(f"\nOriginal Exception: {type(self.original_exception).__name__}")
            lines.append(f"  {str(self.original_exception)}")

        lines.append(f"{'='*70}\n")

        return "\n".join(lines)


class InputError(VmiSymError):
    """Error related to invalid user input."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.INPUT_ERROR,
            **kwargs
        )


class ReadError(VmiSymError):
    """Guest memory could not be read."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.READ_ERROR,
            **kwargs
        )


class ParseError(VmiSymError):
    """Malformed debug information."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PARSE_ERROR,
            **kwargs
        )


class PdbError(ParseError):
    """A PDB file could not be loaded; ``state`` classifies why."""

    def __init__(self, message: str, state: PdbFileState = PdbFileState.INVALID_FILE, **kwargs):
        super().__init__(message, **kwargs)
        self.state = state


class ConfigurationError(VmiSymError):
    """Error related to configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION_ERROR,
            **kwargs
        )


class ErrorHandler:
    """Central error handler for the command-line front end."""

    def __init__(self, debug_mode: bool = False):
        self.debug_mode = debug_mode
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Set up logging configuration."""
        logger = logging.getLogger("vmisym")
        logger.setLevel(logging.DEBUG if self.debug_mode else logging.INFO)

        if not logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        for handler in logger.handlers:
            handler.setLevel(logging.DEBUG if self.debug_mode else logging.INFO)

        return logger

    def handle_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        reraise: bool = False
    ):
        """
        Handle an error with appropriate logging and reporting.

        Args:
            error: The exception to handle
            context: Additional context information
            reraise: Whether to re-raise the exception after handling
        """
        if isinstance(error, VmiSymError):
            self._log_error(error)
        else:
            wrapped = VmiSymError(
                message=str(error),
                context=context,
                original_exception=error
            )
            self._log_error(wrapped)

        if self.debug_mode:
            traceback.print_exc()

        if reraise:
            raise error

    def _log_error(self, error: VmiSymError):
        """Log an error with the level matching its severity."""
        error_message = str(error)

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(error_message)
        elif error.severity == ErrorSeverity.ERROR:
            self.logger.error(error_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(error_message)
        else:
            self.logger.info(error_message)


_error_handler: Optional[ErrorHandler] = None


def get_error_handler(debug_mode: bool = False) -> ErrorHandler:
    """Get or create the global error handler."""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler(debug_mode=debug_mode)
    return _error_handler


def handle_gracefully(func):
    """
    Decorator for graceful error handling.

    Catches exceptions, reports them through the global handler and returns
    None instead of crashing.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except VmiSymError as e:
            get_error_handler().handle_error(e)
            return None
        except Exception as e:
            context = ErrorContext(
                function=func.__name__,
                additional_info={"args": str(args), "kwargs": str(kwargs)}
            )
            get_error_handler().handle_error(e, context=context)
            return None

    return wrapper


# Common error messages with suggestions
ERROR_MESSAGES = {
    PdbFileState.ERR_FILE_OPEN: {
        "message": "Unable to open pdb {path}: {reason}",
        "suggestion": "Check that the symbol store contains <module>/<guid>/<module>."
    },
    PdbFileState.INVALID_FILE: {
        "message": "Invalid or corrupted pdb {path}: {reason}",
        "suggestion": "Delete the cached file and fetch it again from the symbol server."
    },
    PdbFileState.UNSUPPORTED_VERSION: {
        "message": "Unsupported pdb version in {path}: {reason}",
        "suggestion": "Only MSF 7.00 files with VC70 (or later) streams are supported."
    },
    PdbFileState.ALREADY_LOADED: {
        "message": "Pdb {path} is already loaded: {reason}",
        "suggestion": "Create a new PdbFile for each file to load."
    },
    "invalid_address": {
        "message": "Invalid address: {value}",
        "suggestion": "Use a decimal or 0x-prefixed hexadecimal number."
    },
}


def create_error(
    error_key,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    context: Optional[ErrorContext] = None,
    **format_args
) -> VmiSymError:
    """
    Create an error from a predefined error message.

    PdbFileState keys produce a PdbError carrying that state.

    Args:
        error_key: Key in ERROR_MESSAGES dictionary
        severity: Error severity level
        context: Error context
        **format_args: Arguments to format the error message

    Returns:
        Configured VmiSymError instance
    """
    if error_key not in ERROR_MESSAGES:
        return VmiSymError(
            message=f"Unknown error: {error_key}",
            severity=severity,
            context=context
        )

    error_info = ERROR_MESSAGES[error_key]
    message = error_info["message"].format(**format_args)
    suggestion = error_info.get("suggestion")

    if isinstance(error_key, PdbFileState):
        return PdbError(
            message,
            state=error_key,
            severity=severity,
            context=context,
            suggestion=suggestion
        )

    return VmiSymError(
        message=message,
        severity=severity,
        context=context,
        suggestion=suggestion
    )
