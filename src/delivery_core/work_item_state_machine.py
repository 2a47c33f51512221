"""State machine validation for work item lifecycle status transitions.

Contributors (assignees) move work forward one step at a time:
    pending -> in-progress        (start-work)
    in-progress -> in-review      (submit-for-review, gated by a submission note)

Owners (container lead or department head) may override:
    change-status: any non-done status -> in-progress | in-review | done
    reopen:        done -> in-progress

Owner overrides skip the forward-path ordering but must land on a defined
state; nothing except ``reopen`` ever leaves ``done``.
"""
import logging
from typing import Optional

from .errors import InvalidTransition
from .models import WorkItemStatus

logger = logging.getLogger("delivery-core.work_item_state_machine")


# Contributor transition matrix
# Maps current status -> list of statuses an assignee may move to
CONTRIBUTOR_TRANSITION_MATRIX: dict[WorkItemStatus, list[WorkItemStatus]] = {
    WorkItemStatus.PENDING: [
        WorkItemStatus.IN_PROGRESS,   # Forward: start-work
    ],
    WorkItemStatus.IN_PROGRESS: [
        WorkItemStatus.IN_REVIEW,     # Forward: submit-for-review
    ],
    WorkItemStatus.IN_REVIEW: [
        # Waiting on the owner's decision
    ],
    WorkItemStatus.DONE: [
        # Terminal for contributors
    ],
}

# Statuses an owner override may land on
OWNER_TARGET_STATUSES: tuple[WorkItemStatus, ...] = (
    WorkItemStatus.IN_PROGRESS,
    WorkItemStatus.IN_REVIEW,
    WorkItemStatus.DONE,
)

# The full edge set a work item may traverse, whoever drives it
LIFECYCLE_EDGES: frozenset[tuple[WorkItemStatus, WorkItemStatus]] = frozenset({
    (WorkItemStatus.PENDING, WorkItemStatus.IN_PROGRESS),
    (WorkItemStatus.IN_PROGRESS, WorkItemStatus.IN_REVIEW),
    (WorkItemStatus.IN_REVIEW, WorkItemStatus.DONE),
    (WorkItemStatus.DONE, WorkItemStatus.IN_PROGRESS),
})


def is_terminal_status(status: WorkItemStatus) -> bool:
    """Check if a status is terminal (only ``reopen`` leaves it)."""
    return status == WorkItemStatus.DONE


def is_contributor_transition_valid(current_status: WorkItemStatus, new_status: WorkItemStatus) -> bool:
    """Check whether an assignee may move an item from ``current_status`` to ``new_status``."""
    return new_status in CONTRIBUTOR_TRANSITION_MATRIX.get(current_status, [])


def validate_contributor_transition(
    current_status: WorkItemStatus,
    new_status: WorkItemStatus,
    action: Optional[str] = None,
) -> None:
    """
    Validate a contributor-driven transition and raise if it is not allowed.

    Unlike owner overrides, a contributor request for the current status is
    an error: ``start-work`` on an item already in progress is a stale click.

    Raises:
        InvalidTransition: If the transition is not on the contributor path
    """
    if is_contributor_transition_valid(current_status, new_status):
        logger.debug(f"Valid contributor transition: {current_status.value} → {new_status.value}")
        return

    allowed = CONTRIBUTOR_TRANSITION_MATRIX.get(current_status, [])
    action_label = f" ({action})" if action else ""
    error_msg = (
        f"Invalid work item status transition{action_label}: {current_status.value} → {new_status.value}."
    )
    if allowed:
        error_msg += f" From {current_status.value}, assignees can only move to: {', '.join(s.value for s in allowed)}."
    elif current_status == WorkItemStatus.IN_REVIEW:
        error_msg += " The item is awaiting review by the container lead."
    elif current_status == WorkItemStatus.DONE:
        error_msg += " Completed items can only be reopened by the container lead."

    if new_status == WorkItemStatus.IN_REVIEW and current_status == WorkItemStatus.PENDING:
        error_msg += " Start work on the item before submitting it for review."

    logger.warning(f"Blocked contributor transition: {error_msg}")
    raise InvalidTransition(
        message=error_msg,
        current_status=current_status,
        requested_status=new_status,
        allowed_transitions=allowed,
    )


def validate_owner_override(current_status: WorkItemStatus, new_status: WorkItemStatus) -> None:
    """
    Validate an owner ``change-status`` override.

    Owners are not held to the forward path, but the target must be one of
    in-progress/in-review/done and a done item must be reopened instead.

    Raises:
        InvalidTransition: If the override targets an undefined state or leaves done
    """
    # No-op transitions are always allowed (setting same status)
    if current_status == new_status:
        logger.debug(f"No-op work item transition: {current_status.value} → {new_status.value}")
        return

    if new_status not in OWNER_TARGET_STATUSES:
        error_msg = (
            f"Invalid status override: {current_status.value} → {new_status.value}. "
            f"Owners can set: {', '.join(s.value for s in OWNER_TARGET_STATUSES)}."
        )
    elif is_terminal_status(current_status):
        error_msg = (
            f"Invalid status override: {current_status.value} → {new_status.value}. "
            "Completed items must be reopened before their status can change."
        )
    else:
        logger.debug(f"Owner override: {current_status.value} → {new_status.value}")
        return

    logger.warning(f"Blocked owner override: {error_msg}")
    raise InvalidTransition(
        message=error_msg,
        current_status=current_status,
        requested_status=new_status,
        allowed_transitions=get_allowed_owner_transitions(current_status),
    )


def validate_reopen(current_status: WorkItemStatus) -> None:
    """
    Validate the owner ``reopen`` action (done -> in-progress).

    Raises:
        InvalidTransition: If the item is not done
    """
    if current_status == WorkItemStatus.DONE:
        return
    error_msg = f"Only completed items can be reopened; item is {current_status.value}."
    logger.warning(f"Blocked reopen: {error_msg}")
    raise InvalidTransition(
        message=error_msg,
        current_status=current_status,
        requested_status=WorkItemStatus.IN_PROGRESS,
        allowed_transitions=get_allowed_owner_transitions(current_status),
    )


def get_allowed_owner_transitions(current_status: WorkItemStatus) -> list[WorkItemStatus]:
    """
    Get list of statuses an owner may move an item to (excluding no-op same status).
    """
    if is_terminal_status(current_status):
        return [WorkItemStatus.IN_PROGRESS]
    return [s for s in OWNER_TARGET_STATUSES if s != current_status]


def get_allowed_contributor_transitions(current_status: WorkItemStatus) -> list[WorkItemStatus]:
    """Get list of statuses an assignee may move an item to."""
    return list(CONTRIBUTOR_TRANSITION_MATRIX.get(current_status, []))

