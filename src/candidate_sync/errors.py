"""
Custom exceptions and error handling for the candidate sync engine.

Provides:
- Typed exception hierarchy for the three failure categories a webhook
  handler can report (malformed input, unresolvable identity, store failure)
- Error context preservation for debugging
- Translation of raw driver exceptions into the store error category
"""

from typing import Any


class CandidateSyncError(Exception):
    """Base exception for all candidate sync errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(CandidateSyncError):
    """Base class for errors raised by external collaborators."""

    pass


class StoreError(ClientError):
    """Error from the relational store."""

    pass


class StoreConnectionError(StoreError):
    """Failed to reach the relational store."""

    pass


class StoreQueryError(StoreError):
    """Error executing a store query."""

    pass


class StoreConstraintError(StoreError):
    """Constraint violation in the store (e.g., duplicate unique key)."""

    pass


class CRMError(ClientError):
    """Error from the outbound CRM API."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(CandidateSyncError):
    """Base class for event handling errors."""

    pass


class ValidationError(PipelineError):
    """Input validation failed."""

    pass


class MalformedPayloadError(ValidationError):
    """Payload is not a structured object or lacks a required identifier."""

    pass


class IdentityNotFoundError(PipelineError):
    """An external identifier could not be mapped to an internal entity."""

    pass


class CandidateNotFoundError(IdentityNotFoundError):
    """No candidate matched any of the identity hints."""

    pass


class UserNotFoundError(IdentityNotFoundError):
    """No internal user is mapped to the external CRM user id."""

    pass


class UnknownEventTypeError(PipelineError):
    """The event type tag has no registered handler."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_store_error(exc: Exception, context: dict[str, Any] | None = None) -> StoreError:
    """
    Wrap a store exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed StoreError subclass
    """
    if isinstance(exc, StoreError):
        return exc

    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'connection' in error_str or 'connect' in error_str or isinstance(exc, OSError):
        return StoreConnectionError(
            f"Store connection failed: {exc}",
            context=ctx,
        )
    elif 'constraint' in error_str or 'unique' in error_str or 'duplicate key' in error_str:
        return StoreConstraintError(
            f"Store constraint violation: {exc}",
            context=ctx,
        )
    else:
        return StoreQueryError(
            f"Store query error: {exc}",
            context=ctx,
        )
