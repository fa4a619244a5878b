"""Error handling framework for release operations."""

from typing import Optional, Dict, Any, List, TYPE_CHECKING
from enum import Enum
from dataclasses import dataclass
from kubeship.utils.logging import get_logger

if TYPE_CHECKING:
    from kubeship.release.models import Release

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during release operations."""
    VALIDATION = "validation"
    PRECONDITION = "precondition"
    EXECUTION = "execution"
    ATOMIC_ROLLBACK = "atomic_rollback"
    CANCELLED = "cancelled"
    STORAGE = "storage"
    CLUSTER = "cluster"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Operation cannot continue
    ERROR = "error"  # Operation failed, release record reflects it
    WARNING = "warning"  # Non-fatal issue
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    release_name: Optional[str] = None
    namespace: Optional[str] = None
    version: Optional[int] = None
    operation: Optional[str] = None
    resource: Optional[str] = None
    hook: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class KubeshipError(Exception):
    """Base exception for release engine errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None,
        release: Optional["Release"] = None
    ):
        """Initialize release engine error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
            release: Release record as it stood when the error was raised
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []
        self.release = release

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        ctx = self.context
        release_name = ctx.release_name or (self.release.name if self.release else None)
        version = ctx.version or (self.release.version if self.release else None)

        lines = [f"{self.severity.value.upper()}: {self.message}"]
        if release_name:
            where = ", ".join(
                part for part in (
                    f"namespace {ctx.namespace}" if ctx.namespace else "",
                    f"version {version}" if version else "",
                ) if part
            )
            lines.append(f"   Release: {release_name}" + (f" ({where})" if where else ""))
        details = (("Operation", ctx.operation), ("Resource", ctx.resource), ("Hook", ctx.hook))
        lines.extend(f"   {label}: {value}" for label, value in details if value)
        if self.cause is not None and str(self.cause) != self.message:
            lines.append(f"   Cause: {self.cause}")

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            lines.extend(f"   {i}. {s}" for i, s in enumerate(self.suggestions, 1))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'release_name': self.context.release_name,
                'namespace': self.context.namespace,
                'version': self.context.version,
                'operation': self.context.operation,
                'resource': self.context.resource,
                'hook': self.context.hook,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ValidationError(KubeshipError):
    """Invalid input: bad name, conflicting options, reserved labels."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class PreconditionError(KubeshipError):
    """Cluster or history state forbids the operation before anything is persisted."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PRECONDITION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class NameInUseError(PreconditionError):
    """Release name is held by a live release."""

    def __init__(self, message: str = "cannot re-use a name that is still in use", **kwargs):
        super().__init__(message, **kwargs)


class PlatformVersionError(PreconditionError):
    """Bundle platform-version constraint does not match the cluster."""


class OwnershipConflictError(PreconditionError):
    """Live objects exist that this release may not adopt."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('suggestions', [
            'Remove the conflicting objects from the cluster',
            'Retry with take_ownership enabled to adopt unowned objects',
        ])
        super().__init__(message, **kwargs)


class PendingOperationError(PreconditionError):
    """Another operation holds the newest release version."""

    def __init__(
        self,
        message: str = "another operation (install/upgrade/rollback) is in progress",
        **kwargs
    ):
        super().__init__(message, **kwargs)


class ExecutionError(KubeshipError):
    """Failure of a remote step: render, apply, hook, wait."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.EXECUTION)
        kwargs.setdefault('severity', ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)


class RenderError(ExecutionError):
    """Bundle rendering failed."""


class ApplyError(ExecutionError):
    """Applying resources to the cluster failed."""


class HookError(ExecutionError):
    """A lifecycle hook failed to apply or become ready."""


class WaitError(ExecutionError):
    """Resources did not become ready within the timeout."""


class OperationCancelledError(ExecutionError):
    """The caller cancelled the operation."""

    def __init__(self, message: str = "operation cancelled", **kwargs):
        kwargs.setdefault('category', ErrorCategory.CANCELLED)
        super().__init__(message, **kwargs)


class AtomicRollbackError(ExecutionError):
    """An atomic operation failed and its side effects were reverted (or not)."""

    def __init__(
        self,
        message: str,
        original: Exception,
        cleanup_error: Optional[Exception] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.ATOMIC_ROLLBACK)
        kwargs.setdefault('cause', original)
        super().__init__(message, **kwargs)
        self.original = original
        self.cleanup_error = cleanup_error

    @property
    def cleanup_failed(self) -> bool:
        """Check whether reverting the failed operation also failed."""
        return self.cleanup_error is not None


class StorageError(KubeshipError):
    """Release store failure."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.STORAGE)
        super().__init__(message, **kwargs)


class ReleaseNotFoundError(StorageError):
    """No record exists for the requested release name or version."""

    def __init__(self, message: str = "release: not found", **kwargs):
        super().__init__(message, **kwargs)


class ReleaseExistsError(StorageError):
    """A record already exists for the release name and version."""

    def __init__(self, message: str = "release: already exists", **kwargs):
        super().__init__(message, **kwargs)


class NoDeployedReleasesError(StorageError):
    """The release name has history but nothing deployed."""

    def __init__(self, name: str, **kwargs):
        super().__init__(f'"{name}" has no deployed releases', **kwargs)
        self.name = name


class ErrorHandler:
    """Converts errors raised by external collaborators into engine errors."""

    def __init__(self):
        """Initialize error handler."""
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        error_class: type = ExecutionError
    ) -> KubeshipError:
        """Handle an exception and convert to KubeshipError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred
            error_class: Engine error type for errors that are not already engine errors

        Returns:
            KubeshipError with categorization and suggestions
        """
        # Handle already-wrapped errors
        if isinstance(error, KubeshipError):
            return error

        context = context or ErrorContext()

        # Timeouts from client waits
        if isinstance(error, TimeoutError):
            return WaitError(
                message=str(error) or 'timed out waiting for the condition',
                context=context,
                cause=error,
                suggestions=[
                    'Increase the operation timeout',
                    'Inspect the state of the release resources in the cluster'
                ]
            )

        # Handle network errors
        if isinstance(error, ConnectionError):
            return error_class(
                message=f'cluster unreachable: {str(error)}',
                category=ErrorCategory.CLUSTER,
                context=context,
                cause=error,
                suggestions=[
                    'Check connectivity to the cluster API server',
                    'Verify the client credentials are still valid'
                ]
            )

        return error_class(
            message=str(error),
            context=context,
            cause=error
        )

    def log_error(self, error: KubeshipError):
        """Log an error with appropriate level.

        Args:
            error: The error to log
        """
        log_message = error.to_user_message()

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(log_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

        # Log full error details at debug level
        self.logger.debug(f"Error details: {error.to_dict()}")


# Global error handler instance
error_handler = ErrorHandler()
