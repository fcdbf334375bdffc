import pytest
from fastapi.testclient import TestClient

from helpdesk.api.dependencies.auth import get_auth_manager
from helpdesk.api.dependencies.services import get_ticket_service
from helpdesk.main import app
from helpdesk.services.auth import AuthSessionManager, AuthState
from helpdesk.services.tickets import TicketService

from fake_supabase import FakeUser


def _signed_in(manager: AuthSessionManager, fake_supabase, user_id: str) -> AuthSessionManager:
    profile = next(row for row in fake_supabase.tables["profiles"] if row["id"] == user_id)
    manager.user = FakeUser(profile["email"], user_id=user_id)
    manager.profile = dict(profile)
    manager.state = AuthState.AUTHENTICATED
    return manager


@pytest.fixture
def manager(fake_backend, local_store):
    return AuthSessionManager(fake_backend, store=local_store)


@pytest.fixture
def service(fake_backend):
    return TicketService(fake_backend)


@pytest.fixture
def client(manager, service):
    app.dependency_overrides[get_auth_manager] = lambda: manager
    app.dependency_overrides[get_ticket_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_tickets_require_authentication(client):
    response = client.get("/api/tickets/")
    assert response.status_code == 401


def test_list_tickets_with_query_filters(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.get(
        "/api/tickets/",
        params={"status": "open,in_progress", "assigned_to": "unassigned", "page": 1, "page_size": 10},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 1
    assert payload["page"] == 1
    assert [item["id"] for item in payload["items"]] == ["t-open-1"]
    assert payload["items"][0]["reference"] == "TKT-T-OPEN-1"


def test_list_tickets_invalid_sort_is_422(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.get("/api/tickets/", params={"sort_by": "secret"})

    assert response.status_code == 422


def test_list_tickets_backend_failure_is_502(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")
    fake_supabase.fail("tickets", "select")

    response = client.get("/api/tickets/")

    assert response.status_code == 502


def test_create_ticket_uses_session_user(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.post(
        "/api/tickets/",
        json={"title": "Printer broken", "description": "Won't power on"},
    )

    assert response.status_code == 201
    ticket = response.json()
    assert ticket["created_by"] == "u1"
    assert ticket["status"] == "open"
    assert ticket["priority"] == "medium"
    assert ticket["module"] == "support"


def test_create_ticket_validation_error_lists_fields(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.post("/api/tickets/", json={"title": "  ", "description": "x"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["fields"]["title"] == "Title is required"


def test_get_missing_ticket_is_404(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.get("/api/tickets/missing-id")

    assert response.status_code == 404
    assert response.json()["detail"] == "Ticket not found"


def test_internal_comments_hidden_from_regular_users(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    detail = client.get("/api/tickets/t-progress-1").json()
    comments = client.get("/api/tickets/t-progress-1/comments").json()

    assert [comment["id"] for comment in detail["comments"]] == ["m1"]
    assert [comment["id"] for comment in comments] == ["m1"]


def test_agents_see_internal_comments(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u2")

    comments = client.get("/api/tickets/t-progress-1/comments").json()

    assert [comment["id"] for comment in comments] == ["m1", "m2"]


def test_regular_user_cannot_post_internal_comment(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.post(
        "/api/tickets/t-open-1/comments", json={"content": "secret note", "is_internal": True}
    )

    assert response.status_code == 201
    assert response.json()["is_internal"] is False


def test_update_ticket_records_history(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u2")

    response = client.put("/api/tickets/t-open-1", json={"status": "in_progress"})
    history = client.get("/api/tickets/t-open-1/history").json()

    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"
    assert [(entry["field_changed"], entry["old_value"], entry["new_value"]) for entry in history] == [
        ("status", "open", "in_progress")
    ]


def test_delete_requires_agent(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.delete("/api/tickets/t-open-1")

    assert response.status_code == 403
    assert any(row["id"] == "t-open-1" for row in fake_supabase.tables["tickets"])


def test_agent_can_delete(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u2")

    response = client.delete("/api/tickets/t-open-1")

    assert response.status_code == 204
    assert all(row["id"] != "t-open-1" for row in fake_supabase.tables["tickets"])


def test_reference_data_keeps_stale_values_on_failure(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")
    first = client.get("/api/reference/categories").json()
    fake_supabase.fail("categories")

    response = client.get("/api/reference/categories", params={"refresh": "true"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["items"] == first["items"]
    assert "Unable to load categories" in payload["error"]


def test_reference_data_combined(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    payload = client.get("/api/reference/").json()

    assert [category["name"] for category in payload["categories"]] == ["Hardware", "Software"]
    assert len(payload["users"]) == 3
    assert payload["error"] is None


def test_dashboard_user_stats(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.get("/api/dashboard/stats")

    assert response.status_code == 200
    assert response.json()["total_created"] == 2


def test_system_stats_restricted_to_agents(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")
    assert client.get("/api/dashboard/system").status_code == 403

    _signed_in(manager, fake_supabase, "u3")
    response = client.get("/api/dashboard/system")
    assert response.status_code == 200
    assert response.json()["total_tickets"] == 4


def test_login_and_session_snapshot(client, manager, fake_supabase):
    fake_supabase.auth.register("carol@example.com", "secret1", user_id="u3")

    response = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "secret1"})
    session = client.get("/api/auth/session").json()

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert session["state"] == "authenticated"
    assert session["is_admin"] is True
    assert session["is_agent"] is True
    assert session["user_name"] == "Carol Admin"


def test_login_with_bad_password_is_401(client, fake_supabase):
    fake_supabase.auth.register("carol@example.com", "secret1", user_id="u3")

    response = client.post("/api/auth/login", json={"email": "carol@example.com", "password": "nope"})

    assert response.status_code == 401
    payload = response.json()
    assert payload["error_type"] == "invalid_credentials"
    assert payload["session"]["state"] == "anonymous"


def test_register_conflict(client, fake_supabase):
    fake_supabase.auth.register("carol@example.com", "secret1", user_id="u3")

    response = client.post(
        "/api/auth/register",
        json={"email": "carol@example.com", "password": "secret1", "full_name": "Carol"},
    )

    assert response.status_code == 409
    assert response.json()["error_type"] == "already_registered"


def test_logout_clears_session(client, manager, fake_supabase, local_store):
    _signed_in(manager, fake_supabase, "u1")

    response = client.post("/api/auth/logout")

    assert response.status_code == 200
    assert response.json()["session"]["state"] == "anonymous"
    assert fake_supabase.auth.sign_out_calls == 1


def test_profile_update(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.patch("/api/auth/profile", json={"full_name": "Alice Renamed"})

    assert response.status_code == 200
    assert response.json()["full_name"] == "Alice Renamed"


def test_profile_update_rejects_role_changes(client, manager, fake_supabase):
    _signed_in(manager, fake_supabase, "u1")

    response = client.patch("/api/auth/profile", json={"role": "admin"})

    assert response.status_code == 422


def test_theme_preference_round_trip(client):
    assert client.put("/api/preferences/theme", json={"theme": "dark"}).json() == {"theme": "dark"}
    assert client.get("/api/preferences/theme").json() == {"theme": "dark"}
    assert client.put("/api/preferences/theme", json={"theme": "sepia"}).status_code == 422


def test_health_without_backend(client):
    payload = client.get("/api/health").json()
    assert payload["status"] == "ok"
    assert payload["backend"] == "unavailable"
