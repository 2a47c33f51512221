"""Query helpers for containers and their history."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from . import models

logger = logging.getLogger("delivery-core.crud")


def _with_children(query):
    """Eager-load everything a full container document or health check reads."""
    return query.options(
        selectinload(models.Container.members),
        selectinload(models.Container.chat),
        selectinload(models.Container.work_items).selectinload(models.WorkItem.blockers),
        selectinload(models.Container.work_items).selectinload(models.WorkItem.comments),
    )


def _parse_container_id(container_id) -> Optional[UUID]:
    if isinstance(container_id, UUID):
        return container_id
    try:
        return UUID(str(container_id))
    except (ValueError, AttributeError):
        return None


def get_container(
    db: Session,
    container_id,
    kind: Optional[models.ContainerKind] = None,
) -> Optional[models.Container]:
    """
    Get a container by UUID or human-readable number (PRJ-0001).

    Args:
        db: Database session
        container_id: UUID, UUID string or container number
        kind: Restrict the lookup to one container kind

    Returns:
        Container instance or None if not found
    """
    query = _with_children(db.query(models.Container))
    if kind is not None:
        query = query.filter(models.Container.kind == kind)

    uuid_id = _parse_container_id(container_id)
    if uuid_id is not None:
        return query.filter(models.Container.id == uuid_id).first()
    return query.filter(models.Container.number == str(container_id).upper()).first()


def get_containers(
    db: Session,
    kind: models.ContainerKind,
    department: Optional[str] = None,
    status_filter: Optional[models.ContainerStatus] = None,
) -> list[models.Container]:
    """
    Get containers of one kind, newest first.

    Health is not filtered here: it is derived at read time from the loaded
    work items, so callers filter after evaluating it.
    """
    query = _with_children(db.query(models.Container)).filter(models.Container.kind == kind)

    if department:
        query = query.filter(models.Container.department == department)

    if status_filter:
        query = query.filter(models.Container.status == status_filter)

    return query.order_by(models.Container.created_at.desc(), models.Container.number.desc()).all()


def get_containers_for_user(
    db: Session,
    kind: models.ContainerKind,
    user_id: str,
) -> list[models.Container]:
    """Get the containers of one kind where ``user_id`` is an active member."""
    query = (
        _with_children(db.query(models.Container))
        .join(models.Member, models.Member.container_id == models.Container.id)
        .filter(
            models.Container.kind == kind,
            models.Member.user_id == user_id,
            models.Member.left_at.is_(None),
        )
        .distinct()
    )
    return query.order_by(models.Container.created_at.desc(), models.Container.number.desc()).all()


def next_container_number(db: Session, kind: models.ContainerKind) -> str:
    """
    Reserve the next human-readable number for a container kind.

    The sequence row is locked for the rest of the transaction on backends
    that support ``SELECT ... FOR UPDATE``.

    Returns:
        Code such as ``PRJ-0042``
    """
    sequence = (
        db.query(models.IDSequence)
        .filter(models.IDSequence.kind == kind.value)
        .with_for_update()
        .first()
    )
    if sequence is None:
        sequence = models.IDSequence(kind=kind.value, next_number=1)
        db.add(sequence)

    number = sequence.next_number
    sequence.next_number = number + 1
    db.flush()
    return f"{models.KIND_NUMBER_PREFIX[kind]}-{number:04d}"


def add_history_entry(
    work_item: models.WorkItem,
    action: str,
    performed_by: str,
    performed_by_name: str,
    timestamp,
    details: Optional[str] = None,
) -> models.WorkItemHistory:
    """Append a history entry to a work item; persisted with the container."""
    entry = models.WorkItemHistory(
        action=action,
        performed_by=performed_by,
        performed_by_name=performed_by_name,
        timestamp=timestamp,
        details=details,
    )
    work_item.history.append(entry)
    return entry


def get_work_item_history(
    db: Session, work_item_id: UUID, limit: int = 50
) -> list[models.WorkItemHistory]:
    """
    Get history for a work item, newest first.

    Args:
        db: Database session
        work_item_id: Work item UUID
        limit: Maximum number of history entries

    Returns:
        List of history entries
    """
    return (
        db.query(models.WorkItemHistory)
        .filter(models.WorkItemHistory.work_item_id == work_item_id)
        .order_by(models.WorkItemHistory.timestamp.desc(), models.WorkItemHistory.id.desc())
        .limit(limit)
        .all()
    )
