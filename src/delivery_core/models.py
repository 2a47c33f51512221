"""SQLAlchemy database models."""
from datetime import datetime
from typing import Optional
from uuid import uuid4
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

from .timeutils import utcnow

# Base class for all models
Base = declarative_base()

# JSON arrays of user ids / attachment references; JSONB on Postgres
JSONList = JSON().with_variant(JSONB(), "postgresql")


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(enum_cls, values_callable=lambda x: [e.value for e in x])


class ContainerKind(str, enum.Enum):
    """Container variant."""

    PROJECT = "project"
    SPRINT = "sprint"


class ContainerStatus(str, enum.Enum):
    """Container status enum.

    Projects use active/completed/archived; Sprints use active/completed/closed.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CLOSED = "closed"


class Health(str, enum.Enum):
    """Derived risk summary for a container."""

    HEALTHY = "healthy"
    AT_RISK = "at-risk"
    DELAYED = "delayed"
    CRITICAL = "critical"


class MemberRole(str, enum.Enum):
    """Container member role enum."""

    LEAD = "lead"
    MEMBER = "member"


class WorkItemStatus(str, enum.Enum):
    """Work item lifecycle status.

    Forward path: pending -> in-progress -> in-review -> done
    Reopen: done -> in-progress
    """

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    DONE = "done"


KIND_NUMBER_PREFIX: dict[ContainerKind, str] = {
    ContainerKind.PROJECT: "PRJ",
    ContainerKind.SPRINT: "SPR",
}

KIND_ITEM_LABEL: dict[ContainerKind, str] = {
    ContainerKind.PROJECT: "Deliverable",
    ContainerKind.SPRINT: "Action",
}


class Container(Base):
    """
    Aggregate holding members, work items and chat.

    Stored single-table; ``Project`` and ``Sprint`` are the polymorphic
    variants. ``version`` is the optimistic-concurrency token: every UPDATE of
    the row is issued with ``WHERE version = <loaded version>`` and bumps it.
    """

    __tablename__ = "containers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    kind = Column(_enum_column(ContainerKind), nullable=False, index=True)
    number = Column(String(20), nullable=False, unique=True, index=True)  # PRJ-0001, SPR-0001

    # Core fields
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    department = Column(String(100), nullable=False, index=True)
    status = Column(_enum_column(ContainerStatus), nullable=False, default=ContainerStatus.ACTIVE, index=True)
    health = Column(_enum_column(Health), nullable=False, default=Health.HEALTHY)

    # Dates. end_date is the Project target end date or the Sprint timebox end.
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Sprint -> parent Project link
    project_id = Column(Uuid(as_uuid=True), ForeignKey("containers.id", ondelete="SET NULL"), nullable=True, index=True)
    project_number = Column(String(20), nullable=True)

    # Audit fields
    created_by = Column(String(255), nullable=False)
    created_by_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    # Relationships
    members = relationship(
        "Member", back_populates="container", cascade="all, delete-orphan", order_by="Member.id"
    )
    work_items = relationship(
        "WorkItem", back_populates="container", cascade="all, delete-orphan", order_by="WorkItem.position"
    )
    chat = relationship(
        "ChatMessage", back_populates="container", cascade="all, delete-orphan", order_by="ChatMessage.id"
    )

    __mapper_args__ = {
        "polymorphic_on": kind,
        "version_id_col": version,
    }

    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date > start_date", name="chk_container_dates"),
    )

    @property
    def active_members(self) -> list["Member"]:
        return [m for m in self.members if m.is_active]

    @property
    def active_leads(self) -> list["Member"]:
        return [m for m in self.members if m.is_active and m.role == MemberRole.LEAD]

    @property
    def lead(self) -> Optional["Member"]:
        """The single active lead, or None if the container has none."""
        leads = self.active_leads
        return leads[0] if leads else None

    def active_member(self, user_id: str) -> Optional["Member"]:
        for member in self.members:
            if member.user_id == user_id and member.is_active:
                return member
        return None

    def find_work_item(self, work_item_id) -> Optional["WorkItem"]:
        for item in self.work_items:
            if str(item.id) == str(work_item_id):
                return item
        return None

    @property
    def item_label(self) -> str:
        return KIND_ITEM_LABEL[self.kind]

    def __repr__(self) -> str:
        return f"<{self.kind.value.title()} {self.number}: {self.title}>"


class Project(Container):
    """Long-running container; work items are Deliverables."""

    __mapper_args__ = {"polymorphic_identity": ContainerKind.PROJECT}


class Sprint(Container):
    """Hard-timeboxed container; work items are Actions."""

    __mapper_args__ = {"polymorphic_identity": ContainerKind.SPRINT}


class Member(Base):
    """
    Membership record in a container.

    Never hard-deleted: removal sets ``left_at`` so chat and comment
    attribution survives.
    """

    __tablename__ = "container_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    container_id = Column(Uuid(as_uuid=True), ForeignKey("containers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(_enum_column(MemberRole), nullable=False, default=MemberRole.MEMBER)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
    left_at = Column(DateTime, nullable=True)

    container = relationship("Container", back_populates="members")

    @property
    def is_active(self) -> bool:
        return self.left_at is None

    def __repr__(self) -> str:
        return f"<Member {self.user_id} ({self.role.value})>"


class WorkItem(Base):
    """
    Deliverable (Project) or Action (Sprint): the unit of trackable work.

    ``assigned_to`` and the attachment reference lists are JSON arrays and are
    always reassigned, never mutated in place, so the ORM sees the change.
    """

    __tablename__ = "work_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    container_id = Column(Uuid(as_uuid=True), ForeignKey("containers.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    assigned_to = Column(JSONList, nullable=False, default=list)
    status = Column(_enum_column(WorkItemStatus), nullable=False, default=WorkItemStatus.PENDING, index=True)
    due_date = Column(DateTime, nullable=True)
    attachments = Column(JSONList, nullable=False, default=list)

    # Submission cycle
    submission_note = Column(Text, nullable=True)
    submission_attachments = Column(JSONList, nullable=False, default=list)
    submitted_by = Column(String(255), nullable=True)
    submitted_by_name = Column(String(255), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Audit fields
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    container = relationship("Container", back_populates="work_items")
    blockers = relationship(
        "Blocker", back_populates="work_item", cascade="all, delete-orphan", order_by="Blocker.id"
    )
    comments = relationship(
        "Comment", back_populates="work_item", cascade="all, delete-orphan", order_by="Comment.id"
    )
    history = relationship(
        "WorkItemHistory", back_populates="work_item", cascade="all, delete-orphan", order_by="WorkItemHistory.id"
    )

    @property
    def unresolved_blockers(self) -> list["Blocker"]:
        return [b for b in self.blockers if not b.is_resolved]

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date is not None and self.due_date < now and self.status != WorkItemStatus.DONE

    def __repr__(self) -> str:
        return f"<WorkItem {self.id}: {self.status.value} - {self.title[:30]}>"


class Blocker(Base):
    """Reported impediment on a work item; independent of the item's status."""

    __tablename__ = "work_item_blockers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    work_item_id = Column(Uuid(as_uuid=True), ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    reported_by = Column(String(255), nullable=False)
    reported_by_name = Column(String(255), nullable=True)
    reported_at = Column(DateTime, nullable=False, default=utcnow)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_by = Column(String(255), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    attachments = Column(JSONList, nullable=False, default=list)

    work_item = relationship("WorkItem", back_populates="blockers")


class Comment(Base):
    """Append-only comment on a work item."""

    __tablename__ = "work_item_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    work_item_id = Column(Uuid(as_uuid=True), ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    user_name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    work_item = relationship("WorkItem", back_populates="comments")


class ChatMessage(Base):
    """Append-only container chat message."""

    __tablename__ = "container_chat"

    id = Column(Integer, primary_key=True, autoincrement=True)
    container_id = Column(Uuid(as_uuid=True), ForeignKey("containers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    user_name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    attachments = Column(JSONList, nullable=False, default=list)

    container = relationship("Container", back_populates="chat")


class WorkItemHistory(Base):
    """
    Work item change history.

    Best-effort trail of who did what to an item; one entry per mutation.
    """

    __tablename__ = "work_item_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    work_item_id = Column(Uuid(as_uuid=True), ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(50), nullable=False)  # created, status_changed, blocker_reported, ...
    performed_by = Column(String(255), nullable=False)
    performed_by_name = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    details = Column(Text, nullable=True)

    work_item = relationship("WorkItem", back_populates="history")

    def __repr__(self) -> str:
        return f"<WorkItemHistory {self.work_item_id}: {self.action} at {self.timestamp}>"


class IDSequence(Base):
    """
    Tracks next available number for human-readable container codes per kind.

    Used to generate sequential codes like PRJ-0042.
    """

    __tablename__ = "id_sequences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(20), nullable=False)
    next_number = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("kind", name="unique_sequence_kind"),
        CheckConstraint("next_number > 0", name="chk_next_number_positive"),
    )

    def __repr__(self) -> str:
        return f"<IDSequence {self.kind} next={self.next_number}>"
