"""Builders shared by the test modules."""
import base64
from datetime import datetime, timedelta

from delivery_core import schemas
from delivery_core.models import ContainerKind

DEPARTMENT = "Engineering"
NOW = datetime(2026, 3, 2, 9, 0, 0)


class FixedClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def encode(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def container_payload(**overrides) -> schemas.ContainerCreate:
    data = {
        "title": "Customer Portal",
        "description": "Self-service portal",
        "department": DEPARTMENT,
        "members": [
            {"userId": "u-lead", "name": "Lee Lead", "role": "lead"},
            {"userId": "u-dev", "name": "Dana Dev", "role": "member"},
            {"userId": "u-qa", "name": "Quinn QA", "role": "member"},
        ],
        "startDate": NOW.isoformat(),
        "endDate": (NOW + timedelta(days=30)).isoformat(),
    }
    data.update(overrides)
    return schemas.ContainerCreate.model_validate(data)


def work_item_payload(**overrides) -> schemas.WorkItemCreate:
    data = {
        "title": "Login page",
        "description": "Email and password sign-in",
        "assignedTo": ["u-dev"],
        "dueDate": (NOW + timedelta(days=7)).isoformat(),
    }
    data.update(overrides)
    return schemas.WorkItemCreate.model_validate(data)


def act(orchestrator, container, work_item_id, actor, action, kind=ContainerKind.PROJECT, **fields):
    """Apply a work item action and return the updated container document."""
    payload = schemas.WorkItemAction(action=action, **fields)
    return orchestrator.apply_work_item_action(kind, container.id, work_item_id, payload, actor)


def container_act(orchestrator, container, actor, action, kind=ContainerKind.PROJECT, **fields):
    """Apply a container action and return the updated container document."""
    payload = schemas.ContainerAction(action=action, **fields)
    return orchestrator.apply_container_action(kind, container.id, payload, actor)
