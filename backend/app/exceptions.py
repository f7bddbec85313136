"""
Typed errors raised by the maintenance engine.

Every error carries a machine-readable ``error_code`` and the HTTP status
the API layer answers with. Services raise them and never catch their own;
``app.main`` turns them into ``{error, message, details, timestamp}``.

    raise NotFoundError("Equipment", equipment_id)
    raise ValidationError("hours_interval must be positive", field="hours_interval")
"""
from typing import Any, Dict, List, Optional


def _with_resource(details: Optional[Dict[str, Any]], resource: str, resource_id: Any) -> Dict[str, Any]:
    details = dict(details or {})
    details["resource"] = resource
    if resource_id is not None:
        details["resource_id"] = str(resource_id)
    return details


def _label(resource: str, resource_id: Any, sep: str = " ") -> str:
    return resource if resource_id is None else f"{resource}{sep}{resource_id}"


class CorTrackException(Exception):
    """Root of the hierarchy; unmapped subclasses answer 500."""

    error_code: str = "CORTRACK_ERROR"
    status_code: int = 500

    def __init__(self, message: str = "Maintenance engine error", *, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CorTrackException):
    """Input that is well-formed JSON but breaks a domain rule."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Invalid input",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class AuthenticationError(CorTrackException):
    error_code = "AUTHENTICATION_ERROR"
    status_code = 401

    def __init__(self, message: str = "Caller identity required", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class PermissionDeniedError(CorTrackException):
    error_code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(
        self,
        message: str = "Role not permitted",
        *,
        action: Optional[str] = None,
        role: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        for key, val in (("action", action), ("role", role)):
            if val:
                details[key] = val
        super().__init__(message, details=details)


class NotFoundError(CorTrackException):
    """
    The row is missing or belongs to another tenant.

    Both cases answer the same way so tenant boundaries are not observable.
    """

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource", resource_id: Any = None, *,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"{_label(resource, resource_id, ' #')} not found",
            details=_with_resource(details, resource, resource_id),
        )


class InvalidTransitionError(CorTrackException):
    """The requested work order edge is not in the lifecycle graph."""

    error_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(
        self,
        message: str = "Work order transition not allowed",
        *,
        current_state: Optional[str] = None,
        target_state: Optional[str] = None,
        allowed_states: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if current_state:
            details["current_state"] = current_state
        if target_state:
            details["target_state"] = target_state
        if allowed_states is not None:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


class ConflictError(CorTrackException):
    error_code = "CONFLICT"
    status_code = 409

    def __init__(self, message: str = "Conflicting state", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class ConcurrentModificationError(ConflictError):
    """Another writer changed the row after it was read; the caller may reload and retry."""

    error_code = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        expected_state: Optional[str] = None,
        actual_state: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = _with_resource(details, resource, resource_id)
        if expected_state:
            details["expected_state"] = expected_state
        if actual_state:
            details["actual_state"] = actual_state
        super().__init__(f"{_label(resource, resource_id)} changed underneath this request", details=details)


class AlreadyClosedError(ConflictError):
    """Second close of a downtime event, or a change to a terminal work order."""

    error_code = "ALREADY_CLOSED"

    def __init__(self, resource: str = "Resource", resource_id: Any = None, *,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"{_label(resource, resource_id)} is already closed",
            details=_with_resource(details, resource, resource_id),
        )
