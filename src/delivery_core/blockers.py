"""Blocker tracking on work items.

Blockers are independent of the work item status: reporting one never moves
the item, and an item may complete with blockers still open.
"""
import logging
from datetime import datetime
from typing import Optional

from .errors import InvalidTransition, NotFoundError, ValidationError
from .models import Blocker, WorkItem, WorkItemStatus

logger = logging.getLogger("delivery-core.blockers")


def validate_blocker_report(work_item: WorkItem, description: Optional[str]) -> str:
    """
    Check a blocker report before anything is stored.

    Returns:
        The stripped description

    Raises:
        InvalidTransition: If the work item is already done
        ValidationError: If the description is missing or blank
    """
    if work_item.status == WorkItemStatus.DONE:
        raise InvalidTransition(
            message="Cannot report a blocker on a completed work item",
            current_status=work_item.status,
            requested_status=work_item.status,
        )
    text = (description or "").strip()
    if not text:
        raise ValidationError("Blocker description is required", details={"description": "blank"})
    return text


def report_blocker(
    work_item: WorkItem,
    description: str,
    reported_by: str,
    reported_by_name: str,
    now: datetime,
    attachments: Optional[list[str]] = None,
) -> Blocker:
    """Append an unresolved blocker. Call ``validate_blocker_report`` first."""
    blocker = Blocker(
        description=description,
        reported_by=reported_by,
        reported_by_name=reported_by_name,
        reported_at=now,
        is_resolved=False,
        attachments=list(attachments or []),
    )
    work_item.blockers.append(blocker)
    logger.info(f"Blocker reported on work item {work_item.id} by {reported_by}")
    return blocker


def get_blocker(work_item: WorkItem, blocker_index: Optional[int]) -> Blocker:
    """
    Look up a blocker by its position in the work item's blocker list.

    Raises:
        ValidationError: If no index was supplied
        NotFoundError: If the index is out of range
    """
    if blocker_index is None:
        raise ValidationError("Blocker index is required", details={"blocker_index": "missing"})
    if blocker_index < 0 or blocker_index >= len(work_item.blockers):
        raise NotFoundError(resource=f"Blocker on work item {work_item.id} at index", resource_id=blocker_index)
    return work_item.blockers[blocker_index]


def resolve_blocker(
    work_item: WorkItem,
    blocker_index: Optional[int],
    resolved_by: str,
    now: datetime,
) -> bool:
    """
    Mark a blocker resolved.

    Resolving an already-resolved blocker changes nothing; the first
    resolution's ``resolved_at`` and ``resolved_by`` are kept.

    Returns:
        True if the blocker changed, False if it was already resolved

    Raises:
        NotFoundError: If the index is out of range
    """
    blocker = get_blocker(work_item, blocker_index)
    if blocker.is_resolved:
        logger.debug(f"Blocker {blocker_index} on work item {work_item.id} already resolved")
        return False

    blocker.is_resolved = True
    blocker.resolved_by = resolved_by
    blocker.resolved_at = now
    logger.info(f"Blocker {blocker_index} on work item {work_item.id} resolved by {resolved_by}")
    return True
