"""Submission and review workflow for work items.

Contributors start work and submit it for review; owners decide the outcome
with ``change-status`` or send completed work back with ``reopen``. Status
rules live in ``work_item_state_machine``; this module applies them and keeps
the submission fields in step.
"""
import logging
from datetime import datetime
from typing import Optional

from .errors import ValidationError
from .models import WorkItem, WorkItemStatus
from .permissions import Actor
from .work_item_state_machine import (
    validate_contributor_transition,
    validate_owner_override,
    validate_reopen,
)

logger = logging.getLogger("delivery-core.submissions")


def start_work(work_item: WorkItem, now: datetime) -> None:
    """pending -> in-progress."""
    validate_contributor_transition(work_item.status, WorkItemStatus.IN_PROGRESS, action="start-work")
    work_item.status = WorkItemStatus.IN_PROGRESS
    work_item.updated_at = now


def validate_submission(work_item: WorkItem, submission_note: Optional[str]) -> str:
    """
    Check a submission before its attachments are stored.

    Returns:
        The stripped submission note

    Raises:
        InvalidTransition: If the item is not in progress
        ValidationError: If the note is missing or blank
    """
    validate_contributor_transition(work_item.status, WorkItemStatus.IN_REVIEW, action="submit-for-review")
    note = (submission_note or "").strip()
    if not note:
        raise ValidationError("Submission note is required", details={"submission_note": "blank"})
    return note


def submit_for_review(
    work_item: WorkItem,
    actor: Actor,
    submission_note: str,
    attachments: list[str],
    now: datetime,
) -> None:
    """
    in-progress -> in-review, recording the submission.

    Replaces the previous cycle's note and attachments. Call
    ``validate_submission`` first.
    """
    work_item.status = WorkItemStatus.IN_REVIEW
    work_item.submission_note = submission_note
    work_item.submission_attachments = list(attachments)
    work_item.submitted_by = actor.user_id
    work_item.submitted_by_name = actor.name
    work_item.submitted_at = now
    work_item.updated_at = now
    logger.info(f"Work item {work_item.id} submitted for review by {actor.user_id}")


def change_status(work_item: WorkItem, new_status: Optional[WorkItemStatus], now: datetime) -> bool:
    """
    Owner override to in-progress, in-review or done.

    Returns:
        True if the status changed, False for a same-status request

    Raises:
        ValidationError: If no target status was given
        InvalidTransition: If the target is undefined or the item is done
    """
    if new_status is None:
        raise ValidationError("New status is required", details={"new_status": "missing"})

    validate_owner_override(work_item.status, new_status)
    if work_item.status == new_status:
        return False

    work_item.status = new_status
    work_item.completed_at = now if new_status == WorkItemStatus.DONE else None
    work_item.updated_at = now
    return True


def reopen(work_item: WorkItem, now: datetime) -> None:
    """
    done -> in-progress.

    The last submission note and attachments stay visible until the next
    submission overwrites them.
    """
    validate_reopen(work_item.status)
    work_item.status = WorkItemStatus.IN_PROGRESS
    work_item.completed_at = None
    work_item.updated_at = now
