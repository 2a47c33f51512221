"""Health evaluation for containers.

``evaluate_health`` is a pure function of the container's work items, their
blockers, the container's end date and ``now``: it reads, never writes. The
orchestrator stores its result after every mutation; list views call it
again at read time so badges do not go stale between mutations.

Precedence, first match wins:

1. critical  an item is overdue by more than the grace period, or the
             container has ``critical_blocker_count`` or more unresolved
             blockers
2. delayed   an item is overdue (within the grace period), or the
             container's end/target date has passed with work not done
3. at-risk   an unresolved blocker exists
4. healthy   none of the above
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from .config import Settings
from .models import Container, Health, WorkItem, WorkItemStatus

logger = logging.getLogger("delivery-core.health")


@dataclass(frozen=True)
class HealthPolicy:
    """Thresholds for the health rules."""

    overdue_grace: timedelta = timedelta(days=3)
    critical_blocker_count: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "HealthPolicy":
        return cls(
            overdue_grace=timedelta(days=settings.health_overdue_grace_days),
            critical_blocker_count=settings.health_critical_blocker_count,
        )


DEFAULT_POLICY = HealthPolicy()


def overdue_items(work_items: Iterable[WorkItem], now: datetime) -> list[WorkItem]:
    return [item for item in work_items if item.is_overdue(now)]


def count_unresolved_blockers(work_items: Iterable[WorkItem]) -> int:
    return sum(len(item.unresolved_blockers) for item in work_items)


def is_past_end_date(container: Container, now: datetime) -> bool:
    """True once the end/target date has passed while any work item is not done."""
    if container.end_date is None or container.end_date >= now:
        return False
    return any(item.status != WorkItemStatus.DONE for item in container.work_items)


def evaluate_health(
    container: Container,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> Health:
    """
    Derive a container's health.

    Args:
        container: Container with its work items and blockers loaded
        now: Evaluation time (naive UTC)
        policy: Thresholds

    Returns:
        The container's health
    """
    items = list(container.work_items)
    overdue = overdue_items(items, now)
    unresolved = count_unresolved_blockers(items)

    if any(now - item.due_date > policy.overdue_grace for item in overdue):
        return Health.CRITICAL
    if unresolved >= policy.critical_blocker_count:
        return Health.CRITICAL
    if overdue or is_past_end_date(container, now):
        return Health.DELAYED
    if unresolved:
        return Health.AT_RISK
    return Health.HEALTHY


def evaluate_work_item_health(
    work_item: WorkItem,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> Health:
    """Same rules applied to a single work item (no container end date)."""
    unresolved = len(work_item.unresolved_blockers)
    overdue = work_item.is_overdue(now)

    if overdue and now - work_item.due_date > policy.overdue_grace:
        return Health.CRITICAL
    if unresolved >= policy.critical_blocker_count:
        return Health.CRITICAL
    if overdue:
        return Health.DELAYED
    if unresolved:
        return Health.AT_RISK
    return Health.HEALTHY
