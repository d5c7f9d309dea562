"""
Service-layer exception hierarchy.

Services raise these; the app registers one handler per type so every
blueprint gets the same HTTP status and JSON shape.

Usage:
    from opsdesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=project_id)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist (or is not visible to the caller).

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Task").
        resource_id: The PK that was looked up. Included in logs, not in the response.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the caller is authenticated but not allowed to act.

    Maps to HTTP 403. ``required`` is the ``resource:action`` string that
    was missing, when the check was permission-based.
    """

    def __init__(self, message: str = "Permission denied", required: str | None = None) -> None:
        self.required = required
        super().__init__(message)


class AuthenticationError(Exception):
    """Raised when credentials (password, token) are missing or wrong. Maps to HTTP 401."""
