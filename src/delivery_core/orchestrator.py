"""
Container orchestrator: the single mutation entry point for projects and sprints.

Every mutation follows the same path:

1. load the container (NotFoundError if missing) and check ``expected_version``
2. check the actor's permission for the action
3. validate the request, then hand attachments to the attachment store
4. dispatch to the component that owns the rule (submissions, blockers,
   membership, threads) and record work item history
5. recompute and store health
6. commit with the optimistic version check and return the fresh document

Anything raised along the way rolls the session back, so a rejected request
leaves the stored container untouched.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from . import blockers, crud, membership, models, schemas, submissions, threads, views
from .attachments import AttachmentStore, store_attachments
from .errors import ConflictError, InvalidTransition, NotFoundError, ValidationError
from .health import DEFAULT_POLICY, HealthPolicy, evaluate_health
from .permissions import (
    Actor,
    require_assignee,
    require_department_head,
    require_member_or_owner,
    require_owner,
)
from .roster import RosterService
from .timeutils import utcnow
from .work_item_state_machine import LIFECYCLE_EDGES

logger = logging.getLogger("delivery-core.orchestrator")

KIND_MODEL: dict[models.ContainerKind, type[models.Container]] = {
    models.ContainerKind.PROJECT: models.Project,
    models.ContainerKind.SPRINT: models.Sprint,
}

# Container status toggles: action -> (kinds it applies to, statuses it may leave, target)
CONTAINER_STATUS_ACTIONS: dict[
    schemas.ContainerActionType,
    tuple[tuple[models.ContainerKind, ...], tuple[models.ContainerStatus, ...], models.ContainerStatus],
] = {
    schemas.ContainerActionType.COMPLETE: (
        (models.ContainerKind.PROJECT, models.ContainerKind.SPRINT),
        (models.ContainerStatus.ACTIVE,),
        models.ContainerStatus.COMPLETED,
    ),
    schemas.ContainerActionType.ARCHIVE: (
        (models.ContainerKind.PROJECT,),
        (models.ContainerStatus.ACTIVE, models.ContainerStatus.COMPLETED),
        models.ContainerStatus.ARCHIVED,
    ),
    schemas.ContainerActionType.CLOSE: (
        (models.ContainerKind.SPRINT,),
        (models.ContainerStatus.ACTIVE, models.ContainerStatus.COMPLETED),
        models.ContainerStatus.CLOSED,
    ),
    schemas.ContainerActionType.REOPEN: (
        (models.ContainerKind.PROJECT, models.ContainerKind.SPRINT),
        (models.ContainerStatus.COMPLETED, models.ContainerStatus.ARCHIVED, models.ContainerStatus.CLOSED),
        models.ContainerStatus.ACTIVE,
    ),
}

DEFAULT_SPRINT_ACTION_TITLE = "Sprint Kickoff"
DEFAULT_SPRINT_ACTION_DESCRIPTION = "Initialize sprint and define goals"


class ContainerOrchestrator:
    """
    Applies actions to containers and their work items.

    Args:
        db: Database session; the orchestrator commits or rolls it back
        attachment_store: Where uploaded files go
        roster: Department roster; membership is not checked against it when None
        policy: Health thresholds
        clock: Source of "now" (naive UTC)
    """

    def __init__(
        self,
        db: Session,
        attachment_store: AttachmentStore,
        roster: Optional[RosterService] = None,
        policy: HealthPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.attachment_store = attachment_store
        self.roster = roster
        self.policy = policy
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, kind: models.ContainerKind, container_id) -> models.Container:
        """
        Raises:
            NotFoundError: If no container of this kind has that id or number
        """
        container = crud.get_container(self.db, container_id, kind=kind)
        if container is None:
            raise NotFoundError(resource=kind.value.title(), resource_id=container_id)
        return container

    def get_container(self, kind: models.ContainerKind, container_id) -> schemas.ContainerResponse:
        return views.build_container(self.load(kind, container_id), self.clock(), self.policy)

    def list_containers(
        self,
        kind: models.ContainerKind,
        department: Optional[str] = None,
        status_filter: Optional[models.ContainerStatus] = None,
        health_filter: Optional[models.Health] = None,
    ) -> schemas.ContainerListResponse:
        now = self.clock()
        summaries = [
            views.build_summary(container, now, self.policy)
            for container in crud.get_containers(self.db, kind, department, status_filter)
        ]
        if health_filter is not None:
            summaries = [s for s in summaries if s.health == health_filter.value]
        return schemas.ContainerListResponse(items=summaries, total=len(summaries))

    def list_my_containers(self, kind: models.ContainerKind, actor: Actor) -> schemas.MyContainerListResponse:
        """Active containers of one kind where the actor is an active member."""
        now = self.clock()
        summaries = [
            views.build_my_summary(container, actor.user_id, now, self.policy)
            for container in crud.get_containers_for_user(self.db, kind, actor.user_id)
            if container.status == models.ContainerStatus.ACTIVE
        ]
        return schemas.MyContainerListResponse(items=summaries, total=len(summaries))

    def get_work_item_history(
        self,
        kind: models.ContainerKind,
        container_id,
        work_item_id,
        limit: int = 50,
    ) -> list[models.WorkItemHistory]:
        container = self.load(kind, container_id)
        work_item = self._find_work_item(container, work_item_id)
        return crud.get_work_item_history(self.db, work_item.id, limit=limit)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_container(
        self,
        kind: models.ContainerKind,
        data: schemas.ContainerCreate,
        actor: Actor,
    ) -> schemas.ContainerResponse:
        """
        Create a project or sprint with its members and initial work items.

        Raises:
            AuthorizationError: If the actor does not head the department
            ValidationError: For bad members, dates, project link or work items
            NotFoundError: If the parent project or a roster user is unknown
            StorageError: If an attachment or roster lookup fails
        """
        now = self.clock()
        with self._transaction():
            require_department_head(data.department, actor, f"create-{kind.value}")
            membership.validate_initial_members(data.members)
            self._validate_dates(kind, data.start_date, data.end_date)
            parent = self._resolve_parent_project(kind, data)

            if self.roster is not None:
                self.roster.require_members(data.department, [m.user_id for m in data.members])

            member_ids = {m.user_id for m in data.members}
            for item in data.initial_work_items:
                unknown = [uid for uid in item.assigned_to if uid not in member_ids]
                if unknown:
                    raise ValidationError(
                        f"Work item '{item.title}' is assigned to non-members: {', '.join(unknown)}",
                        details={"initial_work_items": unknown},
                    )

            number = crud.next_container_number(self.db, kind)
            container = KIND_MODEL[kind](
                number=number,
                title=data.title,
                description=data.description.strip(),
                department=data.department,
                status=models.ContainerStatus.ACTIVE,
                health=models.Health.HEALTHY,
                start_date=data.start_date,
                end_date=data.end_date,
                project_id=parent.id if parent else None,
                project_number=parent.number if parent else None,
                created_by=actor.user_id,
                created_by_name=actor.name,
                created_at=now,
                updated_at=now,
            )
            for member in data.members:
                container.members.append(membership.build_member(member, now))

            work_items = list(data.initial_work_items)
            if not work_items and kind == models.ContainerKind.SPRINT:
                lead = next(m for m in data.members if m.role == models.MemberRole.LEAD)
                work_items.append(schemas.WorkItemCreate(
                    title=DEFAULT_SPRINT_ACTION_TITLE,
                    description=DEFAULT_SPRINT_ACTION_DESCRIPTION,
                    assigned_to=[lead.user_id],
                    due_date=data.end_date,
                ))

            for item in work_items:
                self._add_work_item(container, item, actor, now)

            container.health = evaluate_health(container, now, self.policy)
            self.db.add(container)
            self._commit(container)

        logger.info(f"Created {kind.value} {container.number} in {container.department} by {actor.user_id}")
        return views.build_container(container, now, self.policy)

    def create_work_item(
        self,
        kind: models.ContainerKind,
        container_id,
        data: schemas.WorkItemCreate,
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> schemas.ContainerResponse:
        """
        Add a deliverable or action to an existing container. Owner only.

        Raises:
            AuthorizationError: If the actor is not an owner
            ValidationError: If an assignee is not an active member
        """
        def mutate(container: models.Container, now: datetime) -> bool:
            require_owner(container, actor, "create-work-item")
            work_item = self._add_work_item(container, data, actor, now)
            logger.info(f"Added {container.item_label.lower()} {work_item.title!r} to {container.number}")
            return True

        return self._mutate(kind, container_id, expected_version, mutate)

    # ------------------------------------------------------------------
    # Container actions
    # ------------------------------------------------------------------

    def apply_container_action(
        self,
        kind: models.ContainerKind,
        container_id,
        action: schemas.ContainerAction,
        actor: Actor,
    ) -> schemas.ContainerResponse:
        """
        Apply one container-level action.

        Raises:
            AuthorizationError: If the actor lacks the rights for the action
            ValidationError / NotFoundError / ConflictError: As raised by the
                membership and thread rules
            InvalidTransition: For a status toggle that does not apply
        """
        def mutate(container: models.Container, now: datetime) -> bool:
            return self._dispatch_container_action(container, action, actor, now)

        return self._mutate(kind, container_id, action.expected_version, mutate)

    def _dispatch_container_action(
        self,
        container: models.Container,
        action: schemas.ContainerAction,
        actor: Actor,
        now: datetime,
    ) -> bool:
        code = action.action
        ActionType = schemas.ContainerActionType

        if code == ActionType.ADD_CHAT_MESSAGE:
            require_member_or_owner(container, actor, code.value)
            message = threads.require_message(action.message)
            references = store_attachments(self.attachment_store, f"{container.number}-chat", action.files)
            threads.post_chat_message(container, actor, message, now, attachments=references)
            return True

        require_owner(container, actor, code.value)

        if code == ActionType.ADD_MEMBER:
            if action.member is not None and self.roster is not None:
                self.roster.require_members(container.department, [action.member.user_id])
            membership.add_member(container, action.member, now)
        elif code == ActionType.REMOVE_MEMBER:
            affected = [i for i in container.work_items if action.member_id in (i.assigned_to or [])]
            membership.remove_member(container, action.member_id, now)
            for item in affected:
                crud.add_history_entry(item, "assignee_removed", actor.user_id, actor.name, now, action.member_id)
        elif code == ActionType.CHANGE_LEAD:
            membership.change_lead(container, action.new_lead_id)
        elif code == ActionType.UPDATE_DETAILS:
            self._update_details(container, action)
        else:
            self._change_container_status(container, code, now)
        return True

    def _update_details(self, container: models.Container, action: schemas.ContainerAction) -> None:
        if action.title is not None:
            title = action.title.strip()
            if not title:
                raise ValidationError("Title must not be blank", details={"title": "blank"})
            container.title = title
        if action.description is not None:
            container.description = action.description.strip()

        start_date = action.start_date or container.start_date
        end_date = action.end_date if action.end_date is not None else container.end_date
        self._validate_dates(container.kind, start_date, end_date)
        container.start_date = start_date
        container.end_date = end_date

    def _change_container_status(
        self,
        container: models.Container,
        code: schemas.ContainerActionType,
        now: datetime,
    ) -> None:
        kinds, sources, target = CONTAINER_STATUS_ACTIONS[code]
        if container.kind not in kinds or container.status not in sources:
            allowed = [
                t.value for k, s, t in CONTAINER_STATUS_ACTIONS.values()
                if container.kind in k and container.status in s
            ]
            error_msg = f"Cannot {code.value} a {container.kind.value} that is {container.status.value}"
            logger.warning(f"Blocked container transition on {container.number}: {error_msg}")
            raise InvalidTransition(
                message=error_msg,
                current_status=container.status,
                requested_status=target,
                allowed_transitions=allowed,
            )

        container.status = target
        if target == models.ContainerStatus.COMPLETED:
            container.completed_at = now
        elif target == models.ContainerStatus.ACTIVE:
            container.completed_at = None
        logger.info(f"{container.number} is now {target.value}")

    # ------------------------------------------------------------------
    # Work item actions
    # ------------------------------------------------------------------

    def apply_work_item_action(
        self,
        kind: models.ContainerKind,
        container_id,
        work_item_id,
        action: schemas.WorkItemAction,
        actor: Actor,
    ) -> schemas.ContainerResponse:
        """
        Apply one work-item-level action.

        Raises:
            NotFoundError: If the work item (or blocker) does not exist
            NotAssignedError: If a contributor action comes from a non-assignee
            AuthorizationError: If an owner action comes from a non-owner
            InvalidTransition: If the status change is not allowed
            ValidationError: For missing or blank required fields
            StorageError: If an attachment cannot be stored
        """
        def mutate(container: models.Container, now: datetime) -> bool:
            work_item = self._find_work_item(container, work_item_id)
            return self._dispatch_work_item_action(container, work_item, action, actor, now)

        return self._mutate(kind, container_id, action.expected_version, mutate)

    def _dispatch_work_item_action(
        self,
        container: models.Container,
        work_item: models.WorkItem,
        action: schemas.WorkItemAction,
        actor: Actor,
        now: datetime,
    ) -> bool:
        code = action.action
        ActionType = schemas.WorkItemActionType

        def history(name: str, details: Optional[str] = None) -> None:
            crud.add_history_entry(work_item, name, actor.user_id, actor.name, now, details)

        if code == ActionType.START_WORK:
            require_assignee(container, work_item, actor, code.value)
            submissions.start_work(work_item, now)
            history("work_started", "pending → in-progress")

        elif code == ActionType.SUBMIT_FOR_REVIEW:
            require_assignee(container, work_item, actor, code.value)
            note = submissions.validate_submission(work_item, action.submission_note)
            references = store_attachments(
                self.attachment_store,
                f"{container.number}-{container.item_label.lower()}-submission",
                action.files,
            )
            submissions.submit_for_review(work_item, actor, note, references, now)
            history("submitted_for_review", f"Submitted with {len(references)} attachment(s)")

        elif code == ActionType.REPORT_BLOCKER:
            require_assignee(container, work_item, actor, code.value)
            description = blockers.validate_blocker_report(work_item, action.description)
            references = store_attachments(
                self.attachment_store,
                f"{container.number}-{container.item_label.lower()}-blocker",
                action.files,
            )
            blockers.report_blocker(work_item, description, actor.user_id, actor.name, now, references)
            history("blocker_reported", description)

        elif code == ActionType.RESOLVE_BLOCKER:
            require_owner(container, actor, code.value)
            if not blockers.resolve_blocker(work_item, action.blocker_index, actor.user_id, now):
                return False
            history("blocker_resolved", f"Blocker {action.blocker_index} resolved")

        elif code == ActionType.CHANGE_STATUS:
            require_owner(container, actor, code.value)
            previous = work_item.status
            if not submissions.change_status(work_item, action.new_status, now):
                return False
            details = f"{previous.value} → {work_item.status.value}"
            if (previous, work_item.status) not in LIFECYCLE_EDGES:
                details += " (override)"
            history("status_changed", details)

        elif code == ActionType.REOPEN:
            require_owner(container, actor, code.value)
            submissions.reopen(work_item, now)
            history("reopened", "done → in-progress")

        elif code == ActionType.UPDATE_DEADLINE:
            require_owner(container, actor, code.value)
            if action.new_due_date is None:
                raise ValidationError("New due date is required", details={"new_due_date": "missing"})
            previous_due = work_item.due_date
            work_item.due_date = action.new_due_date
            work_item.updated_at = now
            history(
                "deadline_updated",
                f"{previous_due.isoformat() if previous_due else 'none'} → {action.new_due_date.isoformat()}",
            )

        elif code == ActionType.ADD_COMMENT:
            require_member_or_owner(container, actor, code.value)
            threads.post_comment(work_item, actor, action.message, now)
            history("comment_added")

        elif code == ActionType.ADD_MEMBER:
            require_owner(container, actor, code.value)
            membership.assign(container, work_item, action.member_id, now)
            history("assignee_added", action.member_id)

        elif code == ActionType.REMOVE_MEMBER:
            require_owner(container, actor, code.value)
            membership.unassign(work_item, action.member_id, now)
            history("assignee_removed", action.member_id)

        logger.info(f"{code.value} on {container.number}/{work_item.id} by {actor.user_id}")
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(
        self,
        kind: models.ContainerKind,
        container_id,
        expected_version: Optional[int],
        mutate: Callable[[models.Container, datetime], bool],
    ) -> schemas.ContainerResponse:
        """Load, apply ``mutate``, re-evaluate health and commit under the version check."""
        now = self.clock()
        with self._transaction():
            container = self.load(kind, container_id)
            if expected_version is not None and expected_version != container.version:
                logger.warning(
                    f"Stale write on {container.number}: expected version {expected_version}, "
                    f"stored {container.version}"
                )
                raise ConflictError(
                    f"{container.number} has changed since version {expected_version}; reload and retry",
                    retryable=True,
                )

            if mutate(container, now):
                container.health = evaluate_health(container, now, self.policy)
                container.updated_at = now
                # Child-only changes must still bump the container version
                flag_modified(container, "updated_at")
                self._commit(container)

        return views.build_container(container, now, self.policy)

    @contextmanager
    def _transaction(self):
        try:
            yield
        except Exception:
            self.db.rollback()
            raise

    def _commit(self, container: models.Container) -> None:
        # A failed flush expires the container, so read what the log needs first
        number = container.number
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Concurrent update detected on {number}")
            raise ConflictError(
                f"{number} was modified by another request; reload and retry",
                retryable=True,
            ) from e
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity conflict while saving {number}: {e.orig}")
            raise ConflictError(
                f"{number} conflicts with a concurrent write; reload and retry",
                retryable=True,
            ) from e
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to save {number}", exc_info=True)
            raise

    def _find_work_item(self, container: models.Container, work_item_id) -> models.WorkItem:
        work_item = container.find_work_item(work_item_id)
        if work_item is None:
            raise NotFoundError(resource=container.item_label, resource_id=work_item_id)
        return work_item

    def _add_work_item(
        self,
        container: models.Container,
        data: schemas.WorkItemCreate,
        actor: Actor,
        now: datetime,
    ) -> models.WorkItem:
        assignees = membership.validate_assignees(container, data.assigned_to)
        references = store_attachments(
            self.attachment_store,
            f"{container.number}-{container.item_label.lower()}",
            data.files,
        )
        work_item = models.WorkItem(
            position=len(container.work_items),
            title=data.title,
            description=data.description,
            assigned_to=assignees,
            status=models.WorkItemStatus.PENDING,
            due_date=data.due_date,
            attachments=references,
            submission_attachments=[],
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        container.work_items.append(work_item)
        crud.add_history_entry(work_item, "created", actor.user_id, actor.name, now, f"{container.item_label} created")
        return work_item

    def _validate_dates(
        self,
        kind: models.ContainerKind,
        start_date: datetime,
        end_date: Optional[datetime],
    ) -> None:
        if kind == models.ContainerKind.SPRINT and end_date is None:
            raise ValidationError("Sprint end date is required", details={"end_date": "missing"})
        if end_date is not None and end_date <= start_date:
            raise ValidationError(
                "End date must be after start date",
                details={"end_date": "not after start_date"},
            )

    def _resolve_parent_project(
        self,
        kind: models.ContainerKind,
        data: schemas.ContainerCreate,
    ) -> Optional[models.Container]:
        if data.project_id is None:
            return None
        if kind != models.ContainerKind.SPRINT:
            raise ValidationError("Only sprints can belong to a project", details={"project_id": "not allowed"})
        parent = crud.get_container(self.db, data.project_id, kind=models.ContainerKind.PROJECT)
        if parent is None:
            raise NotFoundError(resource="Project", resource_id=data.project_id)
        if parent.department != data.department:
            raise ValidationError(
                f"Project {parent.number} belongs to department '{parent.department}'",
                details={"project_id": "department mismatch"},
            )
        return parent
