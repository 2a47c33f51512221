"""Shared fixtures: in-memory database, fixed clock, actors and a seeded project."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from delivery_core.attachments import LocalAttachmentStore
from delivery_core.models import Base, ContainerKind
from delivery_core.orchestrator import ContainerOrchestrator
from delivery_core.permissions import Actor, ActorRole

from factories import DEPARTMENT, NOW, FixedClock, container_payload, work_item_payload


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def attachment_store(tmp_path):
    return LocalAttachmentStore(tmp_path / "uploads")


@pytest.fixture
def orchestrator(db, attachment_store, clock):
    return ContainerOrchestrator(db, attachment_store, clock=clock)


@pytest.fixture
def head():
    return Actor(user_id="u-head", name="Hana Head", role=ActorRole.DEPT_HEAD, department=DEPARTMENT)


@pytest.fixture
def lead():
    return Actor(user_id="u-lead", name="Lee Lead", department=DEPARTMENT)


@pytest.fixture
def dev():
    return Actor(user_id="u-dev", name="Dana Dev", department=DEPARTMENT)


@pytest.fixture
def qa():
    return Actor(user_id="u-qa", name="Quinn QA", department=DEPARTMENT)


@pytest.fixture
def outsider():
    return Actor(user_id="u-out", name="Olly Outsider", department="Finance")


@pytest.fixture
def project(orchestrator, head, lead):
    """Project PRJ-0001 with members lead/dev/qa and one deliverable assigned to u-dev."""
    created = orchestrator.create_container(ContainerKind.PROJECT, container_payload(), head)
    return orchestrator.create_work_item(ContainerKind.PROJECT, created.id, work_item_payload(), lead)


@pytest.fixture
def work_item_id(project):
    return project.work_items[0].id
