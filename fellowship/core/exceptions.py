"""
Application exception hierarchy.

Services raise these; the handlers registered in ``fellowship.main`` turn
them into JSON error responses with the matching HTTP status.

    FellowshipError (base)             -> 500
    ├── ValidationError                -> 400  client can fix the input
    ├── PermissionDeniedError          -> 403
    ├── NotFoundError                  -> 404
    ├── ConflictError                  -> 409
    └── CalendarIntegrationError       -> 502  calendar provider failed on a fatal path
"""

from typing import Any, Dict, List, Optional


class FellowshipError(Exception):
    """
    Base exception for all application errors.

    Attributes
    ----------
    message:
        User-facing description, safe to return in an API response.
    context:
        Extra diagnostic information, logged server-side.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(FellowshipError):
    """
    Raised when client input fails a business rule.

    ``details`` carries the individual messages, e.g. the list returned by
    ``validate_recurrence_params``.
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[List[str]] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.details = list(details or [])
        self.field = field


class PermissionDeniedError(FellowshipError):
    """Raised when the requester may not perform the operation."""

    status_code = 403
    error_code = "permission_denied"


class NotFoundError(FellowshipError):
    """Raised when a requested resource does not exist (or is inactive)."""

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(FellowshipError):
    """Raised when the request conflicts with current state (already a member, group full)."""

    status_code = 409
    error_code = "conflict"


class CalendarIntegrationError(FellowshipError):
    """
    Raised when the calendar provider fails on a path where calendar and
    database state must not diverge (recurring create, any delete).

    The enclosing transaction has already been rolled back when this is raised.
    """

    status_code = 502
    error_code = "calendar_integration_failed"

    def __init__(
        self,
        message: str = "Google Calendar integration failed",
        provider_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if provider_message:
            ctx["provider_message"] = provider_message
        super().__init__(message=message, context=ctx)
        self.provider_message = provider_message
