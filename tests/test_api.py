"""HTTP tests for the project and sprint routers."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from delivery_core.api.dependencies import get_attachment_store, get_roster
from delivery_core.api.main import app
from delivery_core.attachments import LocalAttachmentStore
from delivery_core.auth import issue_session_token
from delivery_core.database import get_db
from delivery_core.permissions import Actor, ActorRole
from delivery_core.timeutils import utcnow

from factories import DEPARTMENT

PROJECTS = "/api/v1/projects"
SPRINTS = "/api/v1/sprints"


def auth(user_id, name, role=ActorRole.EMPLOYEE, department=DEPARTMENT):
    actor = Actor(user_id=user_id, name=name, role=role, department=department)
    return {"Authorization": f"Bearer {issue_session_token(actor)}"}


HEAD = auth("u-head", "Hana Head", role=ActorRole.DEPT_HEAD)
LEAD = auth("u-lead", "Lee Lead")
DEV = auth("u-dev", "Dana Dev")
QA = auth("u-qa", "Quinn QA")


def create_body(**overrides):
    now = utcnow()
    body = {
        "title": "Customer Portal",
        "description": "Self-service portal",
        "department": DEPARTMENT,
        "members": [
            {"userId": "u-lead", "name": "Lee Lead", "role": "lead"},
            {"userId": "u-dev", "name": "Dana Dev"},
            {"userId": "u-qa", "name": "Quinn QA"},
        ],
        "startDate": now.isoformat(),
        "endDate": (now + timedelta(days=30)).isoformat(),
    }
    body.update(overrides)
    return body


def work_item_body(**overrides):
    body = {
        "title": "Login page",
        "description": "Email and password sign-in",
        "assignedTo": ["u-dev"],
        "dueDate": (utcnow() + timedelta(days=7)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest.fixture
def client(engine, tmp_path):
    SessionTesting = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = SessionTesting()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attachment_store] = lambda: LocalAttachmentStore(tmp_path / "uploads")
    app.dependency_overrides[get_roster] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def project(client):
    created = client.post(f"{PROJECTS}/", json=create_body(), headers=HEAD)
    assert created.status_code == 201
    doc = client.post(f"{PROJECTS}/{created.json()['id']}/work-items", json=work_item_body(), headers=LEAD)
    assert doc.status_code == 201
    return doc.json()


def work_item_url(project):
    return f"{PROJECTS}/{project['id']}/work-items/{project['workItems'][0]['id']}"


class TestServiceEndpoints:
    """Test the unauthenticated service routes."""

    def test_health(self, client):
        """Test that the liveness route needs no session."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        """Test that the root route reports the service name."""
        assert client.get("/").json()["name"] == "Delivery Core API"


class TestAuthentication:
    """Test bearer session handling."""

    def test_missing_token(self, client):
        """Test that a request without a bearer token is rejected."""
        response = client.get(f"{PROJECTS}/")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        """Test that an unverifiable token is rejected."""
        response = client.get(f"{PROJECTS}/", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestContainerRoutes:
    """Test container creation, reads and actions over HTTP."""

    def test_create_project(self, client):
        """Test that creation returns the camelCase document with a number."""
        response = client.post(f"{PROJECTS}/", json=create_body(), headers=HEAD)

        assert response.status_code == 201
        body = response.json()
        assert body["number"] == "PRJ-0001"
        assert body["itemLabel"] == "Deliverable"
        assert body["status"] == "active"
        assert body["health"] == "healthy"
        assert body["leadId"] == "u-lead"
        assert {m["userId"] for m in body["members"]} == {"u-lead", "u-dev", "u-qa"}

    def test_project_accepts_target_end_date(self, client):
        """Test that projects accept targetEndDate for the end date."""
        body = create_body()
        body["targetEndDate"] = body.pop("endDate")

        response = client.post(f"{PROJECTS}/", json=body, headers=HEAD)

        assert response.status_code == 201
        assert response.json()["endDate"] is not None

    def test_create_requires_department_head(self, client):
        """Test that a non-head gets 403 with the action name."""
        response = client.post(f"{PROJECTS}/", json=create_body(), headers=LEAD)

        assert response.status_code == 403
        assert response.json()["error"] == "AuthorizationError"
        assert response.json()["action"] == "create-project"

    def test_create_rejects_two_leads(self, client):
        """Test that a domain ValidationError maps to 422."""
        members = [
            {"userId": "u-lead", "name": "Lee Lead", "role": "lead"},
            {"userId": "u-dev", "name": "Dana Dev", "role": "lead"},
        ]
        response = client.post(f"{PROJECTS}/", json=create_body(members=members), headers=HEAD)

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_sprint_gets_kickoff_action(self, client):
        """Test that an empty sprint is seeded with the kickoff action."""
        response = client.post(f"{SPRINTS}/", json=create_body(title="Sprint 1"), headers=HEAD)

        assert response.status_code == 201
        body = response.json()
        assert body["number"] == "SPR-0001"
        assert body["itemLabel"] == "Action"
        assert [i["title"] for i in body["workItems"]] == ["Sprint Kickoff"]
        assert body["workItems"][0]["assignedTo"] == ["u-lead"]

    def test_get_by_number_and_unknown(self, client, project):
        """Test lookup by case-insensitive number and 404 on unknown numbers."""
        assert client.get(f"{PROJECTS}/prj-0001", headers=QA).json()["id"] == project["id"]

        missing = client.get(f"{PROJECTS}/PRJ-9999", headers=QA)
        assert missing.status_code == 404
        assert missing.json()["error"] == "NotFoundError"

    def test_project_is_not_a_sprint(self, client, project):
        """Test that the sprint routes do not serve projects."""
        assert client.get(f"{SPRINTS}/{project['id']}", headers=QA).status_code == 404

    def test_list_and_mine(self, client, project):
        """Test the list counts and the caller-specific mine view."""
        listed = client.get(f"{PROJECTS}/", params={"department": DEPARTMENT}, headers=QA).json()
        assert listed["total"] == 1
        assert listed["items"][0]["counts"]["pending"] == 1

        mine = client.get(f"{PROJECTS}/mine", headers=DEV).json()
        assert mine["total"] == 1
        assert mine["items"][0]["myRole"] == "member"
        assert mine["items"][0]["myPendingWorkItems"] == 1

        assert client.get(f"{PROJECTS}/mine", headers=auth("u-out", "Olly")).json()["total"] == 0

    def test_chat_requires_membership(self, client, project):
        """Test that members can chat and outsiders get 403."""
        url = f"{PROJECTS}/{project['id']}"

        posted = client.patch(url, json={"action": "add-chat-message", "message": "hello"}, headers=DEV)
        assert posted.status_code == 200
        assert posted.json()["chat"][0]["userName"] == "Dana Dev"

        denied = client.patch(url, json={"action": "add-chat-message", "message": "hi"}, headers=auth("u-out", "Olly"))
        assert denied.status_code == 403

    def test_complete_then_reopen(self, client, project):
        """Test the completed toggle and its 409 on repeat."""
        url = f"{PROJECTS}/{project['id']}"

        completed = client.patch(url, json={"action": "complete"}, headers=LEAD).json()
        assert completed["status"] == "completed"
        assert completed["completedAt"] is not None

        again = client.patch(url, json={"action": "complete"}, headers=LEAD)
        assert again.status_code == 409
        assert again.json()["error"] == "InvalidTransition"

        reopened = client.patch(url, json={"action": "reopen"}, headers=LEAD).json()
        assert reopened["status"] == "active"
        assert reopened["completedAt"] is None


class TestWorkItemRoutes:
    """Test work item actions over HTTP."""

    def test_review_cycle(self, client, project):
        """Test start, submit and owner completion over HTTP."""
        url = work_item_url(project)

        started = client.patch(url, json={"action": "start-work"}, headers=DEV)
        assert started.status_code == 200
        assert started.json()["workItems"][0]["status"] == "in-progress"

        submitted = client.patch(
            url, json={"action": "submit-for-review", "submissionNote": "ready"}, headers=DEV
        ).json()
        item = submitted["workItems"][0]
        assert item["status"] == "in-review"
        assert item["submissionNote"] == "ready"
        assert item["submittedBy"] == "u-dev"

        done = client.patch(url, json={"action": "change-status", "newStatus": "done"}, headers=LEAD).json()
        assert done["workItems"][0]["status"] == "done"
        assert done["workItems"][0]["completedAt"] is not None

    def test_blank_submission_note(self, client, project):
        """Test that a blank note is a 422."""
        url = work_item_url(project)
        client.patch(url, json={"action": "start-work"}, headers=DEV)

        response = client.patch(url, json={"action": "submit-for-review", "submissionNote": "  "}, headers=DEV)

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_submit_before_start_is_invalid_transition(self, client, project):
        """Test that the 409 body carries current, requested and allowed statuses."""
        response = client.patch(
            work_item_url(project), json={"action": "submit-for-review", "submissionNote": "ready"}, headers=DEV
        )

        assert response.status_code == 409
        body = response.json()
        assert body["currentStatus"] == "pending"
        assert body["requestedStatus"] == "in-review"
        assert body["allowedTransitions"] == ["in-progress"]

    def test_non_assignee_is_rejected(self, client, project):
        """Test that a non-assignee gets 403 naming the work item."""
        response = client.patch(work_item_url(project), json={"action": "start-work"}, headers=QA)

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "NotAssignedError"
        assert body["workItemId"] == project["workItems"][0]["id"]

    def test_stale_expected_version(self, client, project):
        """Test that a stale expectedVersion is a retryable 409."""
        url = work_item_url(project)
        client.patch(url, json={"action": "start-work"}, headers=DEV)

        response = client.patch(
            url,
            json={"action": "add-comment", "message": "late", "expectedVersion": project["version"]},
            headers=QA,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "ConflictError"
        assert response.json()["retryable"] is True

    def test_blocker_makes_container_at_risk(self, client, project):
        """Test that health follows blocker report and resolution."""
        url = work_item_url(project)

        reported = client.patch(url, json={"action": "report-blocker", "description": "API down"}, headers=DEV).json()
        assert reported["health"] == "at-risk"
        assert reported["workItems"][0]["blockers"][0]["reportedByName"] == "Dana Dev"

        resolved = client.patch(url, json={"action": "resolve-blocker", "blockerIndex": 0}, headers=LEAD).json()
        assert resolved["health"] == "healthy"

    def test_missing_identifiers_are_422(self, client, project):
        """Test that actions missing their blocker index or user id are rejected as invalid input."""
        url = work_item_url(project)
        client.patch(url, json={"action": "report-blocker", "description": "API down"}, headers=DEV)

        no_index = client.patch(url, json={"action": "resolve-blocker"}, headers=LEAD)
        assert no_index.status_code == 422
        assert no_index.json()["details"] == {"blocker_index": "missing"}

        container_url = f"{PROJECTS}/{project['id']}"
        assert client.patch(container_url, json={"action": "remove-member"}, headers=LEAD).status_code == 422
        assert client.patch(container_url, json={"action": "change-lead"}, headers=LEAD).status_code == 422

    def test_history_newest_first(self, client, project):
        """Test that history is returned newest first."""
        url = work_item_url(project)
        client.patch(url, json={"action": "start-work"}, headers=DEV)

        response = client.get(f"{url}/history", headers=QA)

        assert response.status_code == 200
        actions = [entry["action"] for entry in response.json()]
        assert actions == ["work_started", "created"]
        assert response.json()[0]["performedBy"] == "u-dev"

    def test_unknown_work_item(self, client, project):
        """Test that an unknown work item is a 404."""
        response = client.patch(
            f"{PROJECTS}/{project['id']}/work-items/00000000-0000-0000-0000-000000000000",
            json={"action": "start-work"},
            headers=DEV,
        )
        assert response.status_code == 404


class TestLauncher:
    """Test the console script entry point."""

    def test_run_serves_app_on_configured_address(self, monkeypatch):
        """Test that run hands the app to uvicorn with the configured host and port."""
        from delivery_core.api import main

        calls = []
        monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr(main.settings, "host", "0.0.0.0")
        monkeypatch.setattr(main.settings, "port", 9100)

        main.run()

        assert calls == [(app, {"host": "0.0.0.0", "port": 9100, "log_level": main.settings.log_level.lower()})]
