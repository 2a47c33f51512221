"""Pydantic schemas for request/response validation.

Field names are snake_case in Python and camelCase on the wire
(``submissionNote``, ``blockerIndex``); both spellings are accepted on input.
"""
import enum
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import (
    ContainerKind,
    ContainerStatus,
    Health,
    MemberRole,
    WorkItemStatus,
)
from .timeutils import to_naive_utc


class CamelModel(BaseModel):
    """Base schema: camelCase aliases, population by field name allowed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Attachment Schemas

class AttachmentUpload(CamelModel):
    """Inline upload as sent by the browser: base64 ``data``."""

    name: str = Field(..., min_length=1, max_length=255)
    type: Optional[str] = Field(None, description="MIME type declared by the uploader")
    data: str = Field(..., description="Base64 (or data URL) encoded content")


# Member Schemas

class MemberInput(CamelModel):
    """Member record supplied at creation or by ``add-member``."""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: MemberRole = MemberRole.MEMBER


class MemberResponse(CamelModel):
    user_id: str
    name: str
    role: MemberRole
    joined_at: datetime
    left_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Work Item Schemas

class WorkItemCreate(CamelModel):
    """Schema for creating a Deliverable or Action."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    assigned_to: list[str] = Field(..., min_length=1, description="Active member user ids")
    due_date: Optional[datetime] = None
    files: list[AttachmentUpload] = Field(default_factory=list)

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class WorkItemActionType(str, enum.Enum):
    """Action codes accepted on a work item."""

    START_WORK = "start-work"
    SUBMIT_FOR_REVIEW = "submit-for-review"
    REPORT_BLOCKER = "report-blocker"
    RESOLVE_BLOCKER = "resolve-blocker"
    CHANGE_STATUS = "change-status"
    REOPEN = "reopen"
    UPDATE_DEADLINE = "update-deadline"
    ADD_COMMENT = "add-comment"
    ADD_MEMBER = "add-member"
    REMOVE_MEMBER = "remove-member"


class WorkItemAction(CamelModel):
    """Action-coded mutation of one work item.

    Only the fields the action needs are read; required ones are checked by
    the component handling the action so a blank value is a domain
    ``ValidationError`` rather than a schema error.
    """

    action: WorkItemActionType
    expected_version: Optional[int] = Field(None, description="Container version the client last saw")
    submission_note: Optional[str] = None
    description: Optional[str] = None
    files: list[AttachmentUpload] = Field(default_factory=list)
    blocker_index: Optional[int] = None
    new_status: Optional[WorkItemStatus] = None
    new_due_date: Optional[datetime] = None
    message: Optional[str] = None
    member_id: Optional[str] = None

    @field_validator("new_due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class BlockerResponse(CamelModel):
    description: str
    reported_by: str
    reported_by_name: Optional[str] = None
    reported_at: datetime
    is_resolved: bool
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    attachments: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CommentResponse(CamelModel):
    user_id: str
    user_name: str
    message: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkItemHistoryResponse(CamelModel):
    """Schema for work item history entries."""

    action: str
    performed_by: str
    performed_by_name: str
    timestamp: datetime
    details: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class WorkItemResponse(CamelModel):
    """Schema for a full work item."""

    id: UUID
    title: str
    description: str
    assigned_to: list[str]
    status: WorkItemStatus
    due_date: Optional[datetime] = None
    is_overdue: bool = False
    health: Health = Health.HEALTHY
    attachments: list[str] = Field(default_factory=list)
    blockers: list[BlockerResponse] = Field(default_factory=list)
    comments: list[CommentResponse] = Field(default_factory=list)
    submission_note: Optional[str] = None
    submission_attachments: list[str] = Field(default_factory=list)
    submitted_by: Optional[str] = None
    submitted_by_name: Optional[str] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(use_enum_values=True)


# Chat Schemas

class ChatMessageResponse(CamelModel):
    user_id: str
    user_name: str
    message: str
    timestamp: datetime
    attachments: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# Container Schemas

class ContainerCreate(CamelModel):
    """Schema for creating a Project or Sprint.

    ``end_date`` is the Project's optional target end date (``targetEndDate``)
    or the Sprint's mandatory timebox end (``endDate``).
    """

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    department: str = Field(..., min_length=1, max_length=100)
    members: list[MemberInput] = Field(..., min_length=1)
    start_date: datetime
    end_date: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("endDate", "targetEndDate", "end_date", "target_end_date"),
    )
    project_id: Optional[UUID] = Field(None, description="Parent project (sprints only)")
    initial_work_items: list[WorkItemCreate] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class ContainerActionType(str, enum.Enum):
    """Action codes accepted on a container."""

    ADD_MEMBER = "add-member"
    REMOVE_MEMBER = "remove-member"
    CHANGE_LEAD = "change-lead"
    UPDATE_DETAILS = "update-details"
    ADD_CHAT_MESSAGE = "add-chat-message"
    COMPLETE = "complete"
    ARCHIVE = "archive"
    CLOSE = "close"
    REOPEN = "reopen"


class ContainerAction(CamelModel):
    """Action-coded mutation of a container."""

    action: ContainerActionType
    expected_version: Optional[int] = Field(None, description="Container version the client last saw")
    member: Optional[MemberInput] = None
    member_id: Optional[str] = None
    new_lead_id: Optional[str] = None
    message: Optional[str] = None
    files: list[AttachmentUpload] = Field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("endDate", "targetEndDate", "end_date", "target_end_date"),
    )

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class WorkItemCounts(CamelModel):
    """Aggregates the list views use for badges and filters."""

    total: int = 0
    pending: int = Field(0, description="Work items not yet done")
    in_review: int = 0
    done: int = 0
    overdue: int = 0
    unresolved_blockers: int = 0


class ContainerSummary(CamelModel):
    """Schema for container list items (no nested collections)."""

    id: UUID
    kind: ContainerKind
    number: str
    title: str
    description: str
    department: str
    status: ContainerStatus
    health: Health
    start_date: datetime
    end_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    project_id: Optional[UUID] = None
    project_number: Optional[str] = None
    lead_id: Optional[str] = None
    lead_name: Optional[str] = None
    member_count: int = 0
    counts: WorkItemCounts = Field(default_factory=WorkItemCounts)
    created_by: str
    created_by_name: str
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = ConfigDict(use_enum_values=True)


class MyContainerSummary(ContainerSummary):
    """Container list item as seen by one member."""

    my_role: MemberRole
    is_lead: bool
    my_work_items: int
    my_pending_work_items: int


class ContainerResponse(ContainerSummary):
    """Schema for the full container document."""

    item_label: str = Field(description="'Deliverable' for projects, 'Action' for sprints")
    members: list[MemberResponse] = Field(default_factory=list)
    work_items: list[WorkItemResponse] = Field(default_factory=list)
    chat: list[ChatMessageResponse] = Field(default_factory=list)


class ContainerListResponse(CamelModel):
    items: list[ContainerSummary]
    total: int


class MyContainerListResponse(CamelModel):
    items: list[MyContainerSummary]
    total: int
