"""Container membership and work item assignment.

A container always has exactly one active lead. Members are never deleted:
removal sets ``left_at`` and strips the user from every work item's
``assigned_to`` so that assignees remain a subset of the active members.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from .errors import ConflictError, NotFoundError, ValidationError
from .models import Container, Member, MemberRole, WorkItem, WorkItemStatus
from .schemas import MemberInput

logger = logging.getLogger("delivery-core.membership")


def validate_initial_members(members: list[MemberInput]) -> None:
    """
    Check the member list supplied at container creation.

    Raises:
        ValidationError: If the list is empty, has duplicate user ids, or does
            not name exactly one lead
    """
    if not members:
        raise ValidationError("At least one member is required", details={"members": "empty"})

    seen = set()
    for member in members:
        if member.user_id in seen:
            raise ValidationError(
                f"Duplicate member {member.user_id}",
                details={"members": f"duplicate user id {member.user_id}"},
            )
        seen.add(member.user_id)

    leads = [m for m in members if m.role == MemberRole.LEAD]
    if len(leads) != 1:
        raise ValidationError(
            f"Exactly one lead is required, got {len(leads)}",
            details={"members": "lead count"},
        )


def build_member(member: MemberInput, now: datetime) -> Member:
    return Member(user_id=member.user_id, name=member.name, role=member.role, joined_at=now)


def get_active_member(container: Container, user_id: Optional[str]) -> Member:
    """
    Raises:
        NotFoundError: If ``user_id`` is not an active member
    """
    member = container.active_member(user_id) if user_id else None
    if member is None:
        raise NotFoundError(resource=f"Active member of {container.number}", resource_id=user_id)
    return member


def add_member(container: Container, member: Optional[MemberInput], now: datetime) -> Member:
    """
    Add an active member; adding a lead demotes the current one.

    Raises:
        ValidationError: If no member was supplied
        ConflictError: If the user already has an active membership
    """
    if member is None:
        raise ValidationError("Member is required", details={"member": "missing"})
    if container.active_member(member.user_id) is not None:
        raise ConflictError(f"User {member.user_id} is already a member of {container.number}")

    if member.role == MemberRole.LEAD:
        for current in container.active_leads:
            current.role = MemberRole.MEMBER
            logger.info(f"Lead {current.user_id} of {container.number} demoted by new lead {member.user_id}")

    record = build_member(member, now)
    container.members.append(record)
    logger.info(f"Added {member.role.value} {member.user_id} to {container.number}")
    return record


def remove_member(container: Container, user_id: Optional[str], now: datetime) -> Member:
    """
    Soft-remove an active member and unassign them from every work item.

    Raises:
        NotFoundError: If the user is not an active member
        ValidationError: If the user is the sole active lead, or removing them
            would leave an open work item with no assignee
    """
    if not user_id:
        raise ValidationError("Member id is required", details={"member_id": "missing"})
    member = get_active_member(container, user_id)

    if member.role == MemberRole.LEAD and len(container.active_leads) <= 1:
        raise ValidationError(
            f"Cannot remove the only lead of {container.number}; change the lead first",
            details={"member_id": user_id},
        )

    orphaned = [
        item for item in container.work_items
        if item.status != WorkItemStatus.DONE and item.assigned_to == [member.user_id]
    ]
    if orphaned:
        raise ValidationError(
            f"User {member.user_id} is the only assignee of {len(orphaned)} open work item(s); reassign them first",
            details={"work_items": [str(item.id) for item in orphaned]},
        )

    member.left_at = now
    for item in container.work_items:
        if member.user_id in (item.assigned_to or []):
            item.assigned_to = [uid for uid in item.assigned_to if uid != member.user_id]
            item.updated_at = now
    logger.info(f"Removed {member.user_id} from {container.number}")
    return member


def change_lead(container: Container, new_lead_id: Optional[str]) -> Member:
    """
    Promote an active member to lead and demote the current lead.

    Raises:
        ValidationError: If no new lead id was supplied
        NotFoundError: If ``new_lead_id`` is not an active member
    """
    if not new_lead_id:
        raise ValidationError("New lead id is required", details={"new_lead_id": "missing"})
    new_lead = get_active_member(container, new_lead_id)
    for current in container.active_leads:
        if current is not new_lead:
            current.role = MemberRole.MEMBER
    new_lead.role = MemberRole.LEAD
    logger.info(f"{new_lead.user_id} is now lead of {container.number}")
    return new_lead


def validate_assignees(container: Container, assigned_to: Iterable[str]) -> list[str]:
    """
    Check a new work item's assignees and return them de-duplicated.

    Raises:
        ValidationError: If the list is empty or names a non-member
    """
    assignees = list(dict.fromkeys(assigned_to))
    if not assignees:
        raise ValidationError("At least one assignee is required", details={"assigned_to": "empty"})
    for user_id in assignees:
        if container.active_member(user_id) is None:
            raise ValidationError(
                f"User {user_id} is not an active member of {container.number}",
                details={"assigned_to": user_id},
            )
    return assignees


def assign(container: Container, work_item: WorkItem, user_id: Optional[str], now: datetime) -> None:
    """
    Add an active container member to ``assigned_to``.

    Raises:
        ValidationError: If the user is not an active member
        ConflictError: If the user is already assigned
    """
    if not user_id or container.active_member(user_id) is None:
        raise ValidationError(
            f"User {user_id} is not an active member of {container.number}",
            details={"member_id": user_id},
        )
    if user_id in (work_item.assigned_to or []):
        raise ConflictError(f"User {user_id} is already assigned to work item {work_item.id}")

    work_item.assigned_to = list(work_item.assigned_to or []) + [user_id]
    work_item.updated_at = now


def unassign(work_item: WorkItem, user_id: Optional[str], now: datetime) -> None:
    """
    Remove a user from ``assigned_to``.

    Raises:
        ValidationError: If the user is not assigned or is the last assignee
    """
    current = list(work_item.assigned_to or [])
    if not user_id or user_id not in current:
        raise ValidationError(
            f"User {user_id} is not assigned to work item {work_item.id}",
            details={"member_id": user_id},
        )
    if len(current) == 1:
        raise ValidationError(
            "A work item must keep at least one assignee",
            details={"member_id": user_id},
        )

    work_item.assigned_to = [uid for uid in current if uid != user_id]
    work_item.updated_at = now
