"""Read models: containers rendered as API documents with fresh health."""
from datetime import datetime

from . import models, schemas
from .health import DEFAULT_POLICY, HealthPolicy, evaluate_health, evaluate_work_item_health
from .threads import ordered


def work_item_counts(container: models.Container, now: datetime) -> schemas.WorkItemCounts:
    items = container.work_items
    return schemas.WorkItemCounts(
        total=len(items),
        pending=sum(1 for i in items if i.status != models.WorkItemStatus.DONE),
        in_review=sum(1 for i in items if i.status == models.WorkItemStatus.IN_REVIEW),
        done=sum(1 for i in items if i.status == models.WorkItemStatus.DONE),
        overdue=sum(1 for i in items if i.is_overdue(now)),
        unresolved_blockers=sum(len(i.unresolved_blockers) for i in items),
    )


def _summary_fields(container: models.Container, now: datetime, policy: HealthPolicy) -> dict:
    lead = container.lead
    return dict(
        id=container.id,
        kind=container.kind,
        number=container.number,
        title=container.title,
        description=container.description or "",
        department=container.department,
        status=container.status,
        health=evaluate_health(container, now, policy),
        start_date=container.start_date,
        end_date=container.end_date,
        completed_at=container.completed_at,
        project_id=container.project_id,
        project_number=container.project_number,
        lead_id=lead.user_id if lead else None,
        lead_name=lead.name if lead else None,
        member_count=len(container.active_members),
        counts=work_item_counts(container, now),
        created_by=container.created_by,
        created_by_name=container.created_by_name,
        created_at=container.created_at,
        updated_at=container.updated_at,
        version=container.version,
    )


def build_work_item(
    work_item: models.WorkItem,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> schemas.WorkItemResponse:
    # is_overdue and health depend on ``now``, so they are not read off the row
    return schemas.WorkItemResponse(
        id=work_item.id,
        title=work_item.title,
        description=work_item.description or "",
        assigned_to=list(work_item.assigned_to or []),
        status=work_item.status,
        due_date=work_item.due_date,
        is_overdue=work_item.is_overdue(now),
        health=evaluate_work_item_health(work_item, now, policy),
        attachments=list(work_item.attachments or []),
        blockers=[schemas.BlockerResponse.model_validate(b) for b in work_item.blockers],
        comments=[schemas.CommentResponse.model_validate(c) for c in ordered(work_item.comments, "created_at")],
        submission_note=work_item.submission_note,
        submission_attachments=list(work_item.submission_attachments or []),
        submitted_by=work_item.submitted_by,
        submitted_by_name=work_item.submitted_by_name,
        submitted_at=work_item.submitted_at,
        completed_at=work_item.completed_at,
        created_at=work_item.created_at,
        updated_at=work_item.updated_at,
    )


def build_summary(
    container: models.Container,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> schemas.ContainerSummary:
    return schemas.ContainerSummary(**_summary_fields(container, now, policy))


def build_my_summary(
    container: models.Container,
    user_id: str,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> schemas.MyContainerSummary:
    """Summary plus the caller's role and their share of the work."""
    member = container.active_member(user_id)
    mine = [item for item in container.work_items if user_id in (item.assigned_to or [])]
    return schemas.MyContainerSummary(
        **_summary_fields(container, now, policy),
        my_role=member.role if member else models.MemberRole.MEMBER,
        is_lead=member is not None and member.role == models.MemberRole.LEAD,
        my_work_items=len(mine),
        my_pending_work_items=sum(1 for item in mine if item.status != models.WorkItemStatus.DONE),
    )


def build_container(
    container: models.Container,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> schemas.ContainerResponse:
    """Full container document: members, work items and chat."""
    return schemas.ContainerResponse(
        **_summary_fields(container, now, policy),
        item_label=container.item_label,
        members=[schemas.MemberResponse.model_validate(m) for m in container.members],
        work_items=[build_work_item(item, now, policy) for item in container.work_items],
        chat=[schemas.ChatMessageResponse.model_validate(c) for c in ordered(container.chat, "timestamp")],
    )
