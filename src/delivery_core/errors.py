"""
Exception hierarchy for the delivery tracking core.

Components raise these types; the HTTP layer registers one handler per type
and maps it to a status code, so callers never depend on component modules
for error classes.

Usage:
    from delivery_core.errors import NotFoundError, ValidationError

    raise NotFoundError(resource="WorkItem", resource_id=work_item_id)
    raise ValidationError("Submission note is required", details={"submission_note": "blank"})
"""
from typing import Any, Optional


class DeliveryError(Exception):
    """Base class for every error the core raises on purpose."""

    #: Whether the caller may succeed by retrying the same request unchanged.
    retryable = False


class ValidationError(DeliveryError):
    """A required field is missing or blank, or a business rule rejects the input.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(DeliveryError):
    """An unknown container, work item, member, blocker or roster user was referenced."""

    def __init__(self, resource: str, resource_id: Any = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id}"
        msg += " not found"
        super().__init__(msg)


class AuthorizationError(DeliveryError):
    """The actor lacks the rights required for the requested action."""

    def __init__(self, message: str, action: Optional[str] = None) -> None:
        self.action = action
        super().__init__(message)


class NotAssignedError(AuthorizationError):
    """A contributor-only action was attempted by someone outside ``assigned_to``."""

    def __init__(self, user_id: str, work_item_id: Any, action: Optional[str] = None) -> None:
        self.user_id = user_id
        self.work_item_id = work_item_id
        super().__init__(
            f"User {user_id} is not assigned to work item {work_item_id}",
            action=action,
        )


class ConflictError(DeliveryError):
    """Duplicate active membership/assignment, or a stale concurrent write.

    Stale writes are retryable: the client reloads the container and resubmits.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(message)


class InvalidTransition(DeliveryError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(
        self,
        message: str,
        current_status: Any,
        requested_status: Any,
        allowed_transitions: Optional[list] = None,
    ) -> None:
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions or []


class StorageError(DeliveryError):
    """An external collaborator (attachment store, roster service) failed."""

    retryable = True

    def __init__(self, message: str, collaborator: str = "attachment-store") -> None:
        self.collaborator = collaborator
        super().__init__(message)
