import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["VITE_SUPABASE_URL"] = ""
os.environ["VITE_SUPABASE_ANON_KEY"] = ""
os.environ.setdefault(
    "HELPDESK_STATE_PATH", str(Path(tempfile.mkdtemp(prefix="helpdesk-tests-")) / "state.json")
)

from fake_supabase import FakeBackend, FakeSupabase  # noqa: E402

from helpdesk.core.local_state import LocalStore  # noqa: E402

PROFILES = [
    {"id": "u1", "email": "alice@example.com", "full_name": "Alice Example", "role": "user", "avatar_url": None},
    {"id": "u2", "email": "bob@example.com", "full_name": "Bob Agent", "role": "agent", "avatar_url": None},
    {"id": "u3", "email": "carol@example.com", "full_name": "Carol Admin", "role": "admin", "avatar_url": None},
]

CATEGORIES = [
    {"id": "c2", "name": "Software", "color": "#3366ff", "icon": "code"},
    {"id": "c1", "name": "Hardware", "color": "#ff6633", "icon": "cpu"},
]

TICKETS = [
    {
        "id": "t-open-1",
        "title": "Printer jammed",
        "description": "Second floor printer keeps jamming",
        "status": "open",
        "priority": "high",
        "module": "support",
        "category_id": "c1",
        "created_by": "u1",
        "assigned_to": None,
        "due_date": None,
        "purchase_details": {},
        "error_details": {},
        "created_at": "2024-01-05T09:00:00+00:00",
        "updated_at": "2024-01-05T09:00:00+00:00",
    },
    {
        "id": "t-progress-1",
        "title": "VPN disconnects",
        "description": "Connection drops every ten minutes",
        "status": "in_progress",
        "priority": "medium",
        "module": "errors",
        "category_id": "c2",
        "created_by": "u1",
        "assigned_to": "u2",
        "due_date": "2024-02-01",
        "purchase_details": {},
        "error_details": {"environment": "production", "steps": ["connect"], "expected": "stable", "actual": "drops"},
        "created_at": "2024-01-10T12:30:00+00:00",
        "updated_at": "2024-01-11T08:00:00+00:00",
    },
    {
        "id": "t-resolved-1",
        "title": "New monitor",
        "description": "Request for a 27 inch MONITOR",
        "status": "resolved",
        "priority": "low",
        "module": "purchases",
        "category_id": "c1",
        "created_by": "u3",
        "assigned_to": "u2",
        "due_date": None,
        "purchase_details": {"items": ["Monitor"], "justification": "Eye strain"},
        "error_details": {},
        "created_at": "2024-01-15T16:45:00+00:00",
        "updated_at": "2024-01-20T10:00:00+00:00",
    },
    {
        "id": "t-closed-1",
        "title": "Password reset",
        "description": "Locked out of the CRM (again), needs reset",
        "status": "closed",
        "priority": "urgent",
        "module": "other",
        "category_id": None,
        "created_by": "u2",
        "assigned_to": "u1",
        "due_date": None,
        "purchase_details": None,
        "error_details": None,
        "created_at": "2024-01-20T07:15:00+00:00",
        "updated_at": "2024-01-20T07:20:00+00:00",
    },
]

COMMENTS = [
    {
        "id": "m1",
        "ticket_id": "t-progress-1",
        "user_id": "u1",
        "content": "Still happening today",
        "is_internal": False,
        "created_at": "2024-01-10T13:00:00+00:00",
    },
    {
        "id": "m2",
        "ticket_id": "t-progress-1",
        "user_id": "u2",
        "content": "Checking the concentrator logs",
        "is_internal": True,
        "created_at": "2024-01-10T14:00:00+00:00",
    },
]


def seed_tables() -> dict:
    return {
        "profiles": [dict(row) for row in PROFILES],
        "categories": [dict(row) for row in CATEGORIES],
        "tickets": [dict(row) for row in TICKETS],
        "comments": [dict(row) for row in COMMENTS],
        "ticket_history": [],
    }


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase(seed_tables())


@pytest.fixture
def fake_backend(fake_supabase) -> FakeBackend:
    return FakeBackend(fake_supabase)


@pytest.fixture
def local_store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "local_state.json")
