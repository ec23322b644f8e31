"""
Custom exception classes for the PodSet operator.
Errors raised by the store are returned from reconcile, never swallowed.
"""

from typing import Any, Dict, Optional


class PodSetOperatorError(Exception):
    """Base exception class for the PodSet operator."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (Context: {context_str})"
        return self.message


class ConfigurationError(PodSetOperatorError):
    """Raised when configuration is invalid or missing."""
    pass


class StoreError(PodSetOperatorError):
    """Raised when a cluster store operation fails."""

    def __init__(self, message: str, status: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.status = status


class NotFoundError(StoreError):
    """Raised when the requested object does not exist."""
    pass


class ConflictError(StoreError):
    """Raised when a write loses an optimistic-concurrency race."""
    pass


class TransientStoreError(StoreError):
    """Raised on network failures, throttling and server-side errors."""
    pass


class OwnerReferenceError(PodSetOperatorError):
    """Raised when an owner reference cannot be set on a pod."""
    pass


class InvalidSpecError(PodSetOperatorError):
    """Raised when a PodSet spec is malformed."""
    pass


class ReconcileCancelledError(PodSetOperatorError):
    """Raised by store calls once the operator is shutting down."""
    pass


# Context manager for error handling
class ErrorContext:
    """Context manager for consistent error handling."""

    def __init__(self, operation: str, component: str = "podset-operator"):
        self.operation = operation
        self.component = component
        self.context = {}

    def add_context(self, **kwargs) -> 'ErrorContext':
        """Add context information."""
        self.context.update(kwargs)
        return self

    def __enter__(self) -> 'ErrorContext':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            return

        if isinstance(exc_val, PodSetOperatorError):
            exc_val.context.update({
                'operation': self.operation,
                'component': self.component,
                **self.context
            })

        # Re-raise the exception
        return False
