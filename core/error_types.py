from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import TypeVar, Generic, Callable, Optional
from pathlib import Path
import traceback
import logging

T = TypeVar("T")


class ErrorSeverity(Enum):
    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CRITICAL = auto()


@dataclass(frozen=True)
class AppError(ABC):
    """Base class for all engine errors with rich context."""

    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    source_file: Optional[str] = None
    source_line: Optional[int] = None
    stack_trace: Optional[str] = None

    @abstractmethod
    def error_code(self) -> str:
        """Return unique error code for this error type."""
        pass

    def log(self, logger: logging.Logger) -> None:
        """Log this error with appropriate severity level."""
        log_methods = {
            ErrorSeverity.DEBUG: logger.debug,
            ErrorSeverity.INFO: logger.info,
            ErrorSeverity.WARNING: logger.warning,
            ErrorSeverity.ERROR: logger.error,
            ErrorSeverity.CRITICAL: logger.critical,
        }
        log_method = log_methods.get(self.severity, logger.error)
        log_message = f"[{self.error_code()}] {self.message}"
        if self.source_file:
            log_message += f" at {self.source_file}:{self.source_line}"
        log_method(log_message)


@dataclass(frozen=True)
class ValidationError(AppError):
    """An operation was rejected because it would break an invariant."""

    severity: ErrorSeverity = ErrorSeverity.WARNING
    field_name: Optional[str] = None
    invalid_value: Optional[str] = None

    def error_code(self) -> str:
        return "VALIDATION_ERR"


@dataclass(frozen=True)
class SerializationError(AppError):
    """Errors related to serialization/deserialization."""

    data_type: Optional[str] = None

    def error_code(self) -> str:
        return "SERIALIZATION_ERR"


@dataclass(frozen=True)
class MalformedImportError(SerializationError):
    """An import payload could not be parsed or did not match the schema."""

    source_path: Optional[Path] = None

    def error_code(self) -> str:
        return "MALFORMED_IMPORT_ERR"


@dataclass(frozen=True)
class FileSystemError(AppError):
    """Errors related to reading or writing export files."""

    path: Optional[Path] = None
    operation: Optional[str] = None

    def error_code(self) -> str:
        return "FS_ERR"


@dataclass(frozen=True)
class FileNotFoundError(FileSystemError):
    """File does not exist."""

    def error_code(self) -> str:
        return "FS_NOT_FOUND"


@dataclass(frozen=True)
class FilePermissionError(FileSystemError):
    """Permission denied for file operation."""

    def error_code(self) -> str:
        return "FS_PERMISSION"


@dataclass(frozen=True)
class ExportError(AppError):
    """Errors related to export operations."""

    destination: Optional[Path] = None

    def error_code(self) -> str:
        return "EXPORT_ERR"


class Result(Generic[T], ABC):
    """
    Outcome of an engine operation: a Success holding a value or a Failure
    holding an AppError. Store methods return Results instead of raising.
    """

    @abstractmethod
    def is_success(self) -> bool:
        pass

    @abstractmethod
    def is_failure(self) -> bool:
        pass

    @abstractmethod
    def unwrap(self) -> T:
        """Get the success value. Raises RuntimeError on a Failure."""
        pass

    @abstractmethod
    def unwrap_or(self, default: T) -> T:
        pass

    @abstractmethod
    def map(self, transform: Callable[[T], "U"]) -> "Result[U]":
        """Transform the success value; a Failure passes through unchanged."""
        pass

    @abstractmethod
    def get_error(self) -> Optional[AppError]:
        """The error of a Failure, None for a Success."""
        pass


U = TypeVar("U")


@dataclass
class Success(Result[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, transform: Callable[[T], U]) -> Result[U]:
        return Success(transform(self.value))

    def get_error(self) -> Optional[AppError]:
        return None


@dataclass
class Failure(Result[T]):
    error: AppError

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise RuntimeError(f"Attempted to unwrap a Failure: [{self.error.error_code()}] {self.error.message}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, transform: Callable[[T], U]) -> Result[U]:
        return Failure(self.error)

    def get_error(self) -> Optional[AppError]:
        return self.error


def capture_exception(
    error_class: type[AppError],
    message: str,
    **extra_fields
) -> AppError:
    """
    Capture current exception context and create an error with stack trace.
    """
    stack = traceback.format_exc()
    frame = traceback.extract_stack()[-2] if len(traceback.extract_stack()) >= 2 else None

    return error_class(
        message=message,
        stack_trace=stack,
        source_file=frame.filename if frame else None,
        source_line=frame.lineno if frame else None,
        **extra_fields
    )


def try_execute(
    operation: Callable[[], T],
    error_class: type[AppError],
    error_message: str,
    **error_fields
) -> Result[T]:
    """
    Execute an operation and wrap exceptions in a Result.
    """
    try:
        return Success(operation())
    except Exception as exception:
        return Failure(capture_exception(
            error_class,
            f"{error_message}: {str(exception)}",
            **error_fields
        ))


def combine_results(results: list[Result[T]]) -> Result[list[T]]:
    """
    Combine multiple results into a single result containing all values.
    Returns Failure with first error encountered if any result is failure.
    """
    values: list[T] = []
    for result in results:
        if result.is_failure():
            return Failure(result.get_error())
        values.append(result.unwrap())
    return Success(values)
