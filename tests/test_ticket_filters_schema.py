from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from helpdesk.schemas.tickets import (
    AssigneeFilter,
    AssigneeMatch,
    ErrorDetails,
    ListOptions,
    PurchaseDetails,
    TicketFilters,
    ticket_reference,
)


@pytest.mark.parametrize(
    "value, match, user_id",
    [
        ("unassigned", AssigneeMatch.UNASSIGNED, None),
        ("me", AssigneeMatch.ASSIGNED, None),
        ("Assigned", AssigneeMatch.ASSIGNED, None),
        ("u42", AssigneeMatch.EXACT, "u42"),
    ],
)
def test_assignee_sentinels_parse_into_variants(value, match, user_id):
    parsed = AssigneeFilter.parse(value)
    assert parsed.match is match
    assert parsed.user_id == user_id


def test_blank_assignee_is_no_filter():
    assert AssigneeFilter.parse("  ") is None
    assert TicketFilters(assigned_to="").assigned_to is None


def test_exact_assignee_requires_user():
    with pytest.raises(ValidationError):
        AssigneeFilter(match=AssigneeMatch.EXACT)
    with pytest.raises(ValidationError):
        AssigneeFilter(match=AssigneeMatch.UNASSIGNED, user_id="u1")


def test_filters_accept_lists_and_comma_strings():
    filters = TicketFilters(status="open, closed", priority=["low", "urgent"])
    assert filters.status == ["open", "closed"]
    assert filters.priority == ["low", "urgent"]


def test_filters_reject_unknown_status():
    with pytest.raises(ValidationError):
        TicketFilters(status="pending")


def test_filters_parse_date_bounds():
    filters = TicketFilters(start_date="2024-01-01", end_date="2024-01-31T12:00:00+00:00")
    assert filters.start_date == date(2024, 1, 1)
    assert not isinstance(filters.start_date, datetime)
    assert filters.end_date == datetime(2024, 1, 31, 12, tzinfo=timezone.utc)


def test_list_options_default_order_and_bounds():
    options = ListOptions()
    assert options.order() == ("created_at", False)
    assert options.bounds() is None


def test_list_options_explicit_sort_is_ascending_unless_disabled():
    assert ListOptions(sort_by="priority").order() == ("priority", True)
    assert ListOptions(sort_by="priority", sort_ascending=False).order() == ("priority", False)


def test_list_options_bounds():
    assert ListOptions(page=3, page_size=20).bounds() == (40, 59)
    assert ListOptions(page=2).bounds() is None
    with pytest.raises(ValidationError):
        ListOptions(page=0, page_size=10)


def test_detail_payloads_drop_blank_entries():
    assert PurchaseDetails(items=["Mouse", "", "  "]).items == ["Mouse"]
    details = ErrorDetails(steps=["open app", " "])
    assert details.steps == ["open app"]
    assert details.environment == "development"


def test_ticket_reference():
    assert ticket_reference("1a2b3c4d-5e6f") == "TKT-1A2B3C4D"
    assert ticket_reference(None) == "TKT-XXXX"
