"""Utility modules for logging and error handling."""

from kubeship.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    KubeshipError,
    ValidationError,
    PreconditionError,
    NameInUseError,
    PlatformVersionError,
    OwnershipConflictError,
    PendingOperationError,
    ExecutionError,
    RenderError,
    ApplyError,
    HookError,
    WaitError,
    OperationCancelledError,
    AtomicRollbackError,
    StorageError,
    ReleaseNotFoundError,
    ReleaseExistsError,
    NoDeployedReleasesError,
    ErrorHandler,
    error_handler
)
from kubeship.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'KubeshipError',
    'ValidationError',
    'PreconditionError',
    'NameInUseError',
    'PlatformVersionError',
    'OwnershipConflictError',
    'PendingOperationError',
    'ExecutionError',
    'RenderError',
    'ApplyError',
    'HookError',
    'WaitError',
    'OperationCancelledError',
    'AtomicRollbackError',
    'StorageError',
    'ReleaseNotFoundError',
    'ReleaseExistsError',
    'NoDeployedReleasesError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
