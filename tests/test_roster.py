"""Tests for the department roster collaborator."""
import httpx
import pytest
from delivery_core.errors import NotFoundError, StorageError
from delivery_core.models import ContainerKind
from delivery_core.orchestrator import ContainerOrchestrator
from delivery_core.roster import HttpRosterClient, RosterEntry, StaticRoster
from delivery_core.schemas import MemberInput

from factories import DEPARTMENT, container_act, container_payload


def http_roster(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpRosterClient("http://portal.test/api/", client=client)


def engineering_roster(*user_ids):
    return StaticRoster({DEPARTMENT: [RosterEntry(user_id=uid, name=uid) for uid in user_ids]})


class TestStaticRoster:
    """Test the in-memory roster."""

    def test_lists_department_candidates(self):
        """Test that candidates are scoped by department."""
        roster = engineering_roster("u-lead", "u-dev")
        assert [e.user_id for e in roster.list_candidates(DEPARTMENT)] == ["u-lead", "u-dev"]
        assert roster.list_candidates("Finance") == []

    def test_require_members_passes_for_known_users(self):
        """Test that rostered users pass."""
        engineering_roster("u-lead", "u-dev").require_members(DEPARTMENT, ["u-dev"])

    def test_require_members_names_missing_user(self):
        """Test that the first unknown user is reported."""
        with pytest.raises(NotFoundError) as exc_info:
            engineering_roster("u-lead").require_members(DEPARTMENT, ["u-lead", "u-ghost"])
        assert exc_info.value.resource_id == "u-ghost"


class TestHttpRosterClient:
    """Test the HTTP roster client against a mock transport."""

    def test_bare_list_payload(self):
        """Test the request URL and a bare list response."""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json=[{"_id": "u-1", "name": "Ada"}, {"userId": "u-2", "name": "Bo"}])

        entries = http_roster(handler).list_candidates(DEPARTMENT)

        assert seen["url"] == "http://portal.test/api/org-employees?department=Engineering"
        assert [(e.user_id, e.name) for e in entries] == [("u-1", "Ada"), ("u-2", "Bo")]
        assert all(e.department == DEPARTMENT for e in entries)

    def test_wrapped_payload_skips_rows_without_id(self):
        """Test the employees wrapper and rows without an id."""
        def handler(request):
            return httpx.Response(200, json={"employees": [{"userId": "u-1", "username": "ada"}, {"name": "nobody"}]})

        entries = http_roster(handler).list_candidates(DEPARTMENT)

        assert len(entries) == 1
        assert entries[0].name == "ada"

    def test_malformed_rows_are_skipped(self):
        """Test that rows which are not objects are skipped."""
        def handler(request):
            return httpx.Response(200, json=["u-1", None, 42, {"userId": "u-2", "name": "Bo"}])

        entries = http_roster(handler).list_candidates(DEPARTMENT)

        assert [(e.user_id, e.name) for e in entries] == [("u-2", "Bo")]

    def test_unexpected_payload_is_storage_error(self):
        """Test that a payload without a list of rows is a storage error."""
        def handler(request):
            return httpx.Response(200, json={"employees": "none"})

        with pytest.raises(StorageError) as exc_info:
            http_roster(handler).list_candidates(DEPARTMENT)
        assert exc_info.value.collaborator == "roster"

    def test_http_error_is_storage_error(self):
        """Test that an HTTP error is a retryable storage error."""
        def handler(request):
            return httpx.Response(500, text="boom")

        with pytest.raises(StorageError) as exc_info:
            http_roster(handler).list_candidates(DEPARTMENT)
        assert exc_info.value.collaborator == "roster"
        assert exc_info.value.retryable is True
        assert "500" in str(exc_info.value)

    def test_transport_error_is_storage_error(self):
        """Test that a connection failure is a storage error."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StorageError) as exc_info:
            http_roster(handler).list_candidates(DEPARTMENT)
        assert exc_info.value.collaborator == "roster"

    def test_invalid_json_is_storage_error(self):
        """Test that a non-JSON body is a storage error."""
        def handler(request):
            return httpx.Response(200, text="<html>login</html>")

        with pytest.raises(StorageError):
            http_roster(handler).list_candidates(DEPARTMENT)


class TestOrchestratorWithRoster:
    """Test that membership changes consult the roster."""

    @pytest.fixture
    def roster(self):
        return engineering_roster("u-lead", "u-dev", "u-qa", "u-new")

    @pytest.fixture
    def orchestrator(self, db, attachment_store, clock, roster):
        return ContainerOrchestrator(db, attachment_store, roster=roster, clock=clock)

    def test_create_with_rostered_members(self, orchestrator, head):
        """Test that creation passes when every member is rostered."""
        doc = orchestrator.create_container(ContainerKind.PROJECT, container_payload(), head)
        assert len(doc.members) == 3

    def test_create_rejects_unrostered_member(self, orchestrator, head):
        """Test that creation rejects a member missing from the roster."""
        payload = container_payload(members=[
            {"userId": "u-lead", "name": "Lee Lead", "role": "lead"},
            {"userId": "u-ghost", "name": "Ghost", "role": "member"},
        ])
        with pytest.raises(NotFoundError):
            orchestrator.create_container(ContainerKind.PROJECT, payload, head)

    def test_add_member_checks_roster(self, orchestrator, head, lead):
        """Test that add-member consults the roster."""
        project = orchestrator.create_container(ContainerKind.PROJECT, container_payload(), head)

        doc = container_act(
            orchestrator, project, lead, "add-member",
            member=MemberInput(user_id="u-new", name="Nia New"),
        )
        assert "u-new" in [m.user_id for m in doc.members]

        with pytest.raises(NotFoundError):
            container_act(
                orchestrator, project, lead, "add-member",
                member=MemberInput(user_id="u-ghost", name="Ghost"),
            )

    def test_roster_outage_blocks_creation(self, db, attachment_store, clock, head):
        """Test that a roster outage creates nothing."""
        def handler(request):
            return httpx.Response(503)

        orchestrator = ContainerOrchestrator(db, attachment_store, roster=http_roster(handler), clock=clock)

        with pytest.raises(StorageError):
            orchestrator.create_container(ContainerKind.PROJECT, container_payload(), head)
        assert orchestrator.list_containers(ContainerKind.PROJECT).total == 0
