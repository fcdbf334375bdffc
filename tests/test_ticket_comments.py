import pytest

from helpdesk.core.results import ErrorKind
from helpdesk.services.tickets import TicketService, comment_preview


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def service(fake_backend):
    return TicketService(fake_backend)


def test_comment_preview_truncates_long_content():
    content = "a" * 60
    assert comment_preview(content) == f"Comment added: {'a' * 50}..."
    assert comment_preview("short") == "Comment added: short"


@pytest.mark.anyio
async def test_add_comment_returns_author_and_records_history(service, fake_supabase):
    result = await service.add_comment("t-open-1", "u2", "  Replaced the toner  ")

    assert result.ok
    comment = result.data
    assert comment["content"] == "Replaced the toner"
    assert comment["is_internal"] is False
    assert comment["user"]["full_name"] == "Bob Agent"

    [entry] = [row for row in fake_supabase.tables["ticket_history"] if row["ticket_id"] == "t-open-1"]
    assert entry["field_changed"] == "comment_added"
    assert entry["changed_by"] == "u2"
    assert entry["new_value"] == "Comment added: Replaced the toner"


@pytest.mark.anyio
async def test_add_internal_comment(service, fake_supabase):
    result = await service.add_comment("t-open-1", "u2", "Vendor ticket 42", is_internal=True)

    assert result.ok
    assert result.data["is_internal"] is True


@pytest.mark.anyio
@pytest.mark.parametrize(
    "ticket_id, user_id, content",
    [("", "u1", "hello"), ("t-open-1", None, "hello"), ("t-open-1", "u1", "   ")],
)
async def test_add_comment_requires_all_fields(service, fake_supabase, ticket_id, user_id, content):
    result = await service.add_comment(ticket_id, user_id, content)

    assert not result.ok
    assert result.kind is ErrorKind.VALIDATION
    assert fake_supabase.calls == []


@pytest.mark.anyio
async def test_comment_thread_is_oldest_first(service):
    await service.add_comment("t-progress-1", "u1", "Any update?")

    result = await service.get_comments("t-progress-1")

    assert result.ok
    assert [comment["content"] for comment in result.data] == [
        "Still happening today",
        "Checking the concentrator logs",
        "Any update?",
    ]
    assert all(comment["user"] for comment in result.data)
    assert result.count == 3


@pytest.mark.anyio
async def test_comment_insert_failure(service, fake_supabase):
    fake_supabase.fail("comments", "insert")

    result = await service.add_comment("t-open-1", "u1", "hello")

    assert not result.ok
    assert result.kind is ErrorKind.BACKEND
    assert fake_supabase.tables["ticket_history"] == []


@pytest.mark.anyio
async def test_history_is_newest_first_with_actor(service, fake_supabase):
    fake_supabase.tables["ticket_history"] = [
        {
            "id": "h1",
            "ticket_id": "t-open-1",
            "changed_by": "u2",
            "field_changed": "priority",
            "old_value": "high",
            "new_value": "low",
            "change_date": "2024-01-06T10:00:00+00:00",
        },
        {
            "id": "h2",
            "ticket_id": "t-open-1",
            "changed_by": "u3",
            "field_changed": "status",
            "old_value": "open",
            "new_value": "closed",
            "change_date": "2024-01-07T10:00:00+00:00",
        },
        {
            "id": "h3",
            "ticket_id": "t-progress-1",
            "changed_by": "u2",
            "field_changed": "status",
            "old_value": "open",
            "new_value": "in_progress",
            "change_date": "2024-01-10T13:30:00+00:00",
        },
    ]

    result = await service.get_ticket_history("t-open-1")

    assert result.ok
    assert [entry["id"] for entry in result.data] == ["h2", "h1"]
    assert result.data[0]["actor"]["full_name"] == "Carol Admin"


@pytest.mark.anyio
async def test_comment_insert_without_returned_row_fails(service, fake_supabase):
    fake_supabase.withhold("comments", "insert")

    result = await service.add_comment("t-open-1", "u1", "hello")

    assert not result.ok
    assert result.kind is ErrorKind.BACKEND
    assert fake_supabase.tables["ticket_history"] == []
