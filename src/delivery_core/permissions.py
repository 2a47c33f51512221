"""Permission checks for container and work item actions.

Every decision is made here, server-side, from the authenticated actor. What
the client shows or hides is advisory only.

Roles:
- Owner: the container's active lead, or the department head of the
  container's department.
- Member: any active container member.
- Contributor: a member listed in a work item's ``assigned_to``.
"""
import enum
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import AuthorizationError, NotAssignedError
from .models import Container, MemberRole, WorkItem

logger = logging.getLogger("delivery-core.permissions")


class ActorRole(str, enum.Enum):
    """Portal-level role carried by the signed session."""

    EMPLOYEE = "employee"
    DEPT_HEAD = "dept-head"


class Actor(BaseModel):
    """The authenticated caller of a mutation."""

    user_id: str
    name: str
    role: ActorRole = ActorRole.EMPLOYEE
    department: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def heads_department(self, department: str) -> bool:
        return self.role == ActorRole.DEPT_HEAD and self.department == department


def is_lead(container: Container, actor: Actor) -> bool:
    member = container.active_member(actor.user_id)
    return member is not None and member.role == MemberRole.LEAD


def is_owner(container: Container, actor: Actor) -> bool:
    """Check if the actor holds owner rights on the container."""
    return is_lead(container, actor) or actor.heads_department(container.department)


def is_member(container: Container, actor: Actor) -> bool:
    return container.active_member(actor.user_id) is not None


def is_assignee(work_item: WorkItem, actor: Actor) -> bool:
    return actor.user_id in (work_item.assigned_to or [])


def require_owner(container: Container, actor: Actor, action: str) -> None:
    """
    Raise unless the actor is the container lead or its department head.

    Raises:
        AuthorizationError: If the actor lacks owner rights
    """
    if is_owner(container, actor):
        return
    logger.warning(f"Denied owner-only action '{action}' on {container.number} for user {actor.user_id}")
    raise AuthorizationError(
        f"Only the {container.kind.value} lead or department head can perform '{action}'",
        action=action,
    )


def require_member_or_owner(container: Container, actor: Actor, action: str) -> None:
    """
    Raise unless the actor is an active member or holds owner rights.

    Raises:
        AuthorizationError: If the actor is neither
    """
    if is_member(container, actor) or is_owner(container, actor):
        return
    logger.warning(f"Denied member action '{action}' on {container.number} for user {actor.user_id}")
    raise AuthorizationError(
        f"You are not a member of this {container.kind.value}",
        action=action,
    )


def require_assignee(container: Container, work_item: WorkItem, actor: Actor, action: str) -> None:
    """
    Raise unless the actor is an active member assigned to the work item.

    Raises:
        NotAssignedError: If the actor is not a current assignee
    """
    if is_member(container, actor) and is_assignee(work_item, actor):
        return
    logger.warning(f"Denied contributor action '{action}' on work item {work_item.id} for user {actor.user_id}")
    raise NotAssignedError(actor.user_id, work_item.id, action=action)


def require_department_head(department: str, actor: Actor, action: str) -> None:
    """
    Raise unless the actor heads the given department.

    Raises:
        AuthorizationError: If the actor is not that department's head
    """
    if actor.heads_department(department):
        return
    logger.warning(f"Denied '{action}' in department {department} for user {actor.user_id}")
    raise AuthorizationError(
        f"Only the head of department '{department}' can perform '{action}'",
        action=action,
    )
