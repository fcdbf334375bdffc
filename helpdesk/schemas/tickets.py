from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketModule(str, Enum):
    SUPPORT = "support"
    PURCHASES = "purchases"
    ERRORS = "errors"
    OTHER = "other"


class UserRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


STATUS_LABELS: dict[str, str] = {
    "open": "Open",
    "in_progress": "In progress",
    "resolved": "Resolved",
    "closed": "Closed",
}

PRIORITY_LABELS: dict[str, str] = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "urgent": "Urgent",
}

TITLE_MAX_LENGTH = 200

# Columns a ticket list may be ordered by.
SORTABLE_FIELDS: frozenset[str] = frozenset(
    {"created_at", "updated_at", "due_date", "priority", "status", "title", "module"}
)


def ticket_reference(ticket_id: str | None) -> str:
    """Return the short human-facing reference for a ticket id."""

    if not ticket_id:
        return "TKT-XXXX"
    return f"TKT-{str(ticket_id)[:8].upper()}"


class AssigneeMatch(str, Enum):
    EXACT = "exact"
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"


class AssigneeFilter(BaseModel):
    """Explicit assignee constraint: a specific user, nobody, or anybody."""

    model_config = ConfigDict(frozen=True)

    match: AssigneeMatch
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_user_for_exact(self) -> "AssigneeFilter":
        if self.match is AssigneeMatch.EXACT and not self.user_id:
            raise ValueError("An exact assignee filter needs a user id")
        if self.match is not AssigneeMatch.EXACT and self.user_id:
            raise ValueError("Only exact assignee filters carry a user id")
        return self

    @classmethod
    def exact(cls, user_id: str) -> "AssigneeFilter":
        return cls(match=AssigneeMatch.EXACT, user_id=user_id)

    @classmethod
    def unassigned(cls) -> "AssigneeFilter":
        return cls(match=AssigneeMatch.UNASSIGNED)

    @classmethod
    def assigned(cls) -> "AssigneeFilter":
        return cls(match=AssigneeMatch.ASSIGNED)

    @classmethod
    def parse(cls, value: Any) -> "AssigneeFilter | None":
        """Translate the front end's ``"unassigned"``/``"me"`` strings."""

        if value is None or isinstance(value, AssigneeFilter):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        text = str(value).strip()
        if not text:
            return None
        lowered = text.lower()
        if lowered == "unassigned":
            return cls.unassigned()
        if lowered in {"me", "assigned"}:
            return cls.assigned()
        return cls.exact(text)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, (list, tuple, set)) and not value:
        return None
    return value


class TicketFilters(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: Optional[Union[TicketStatus, list[TicketStatus]]] = None
    priority: Optional[Union[TicketPriority, list[TicketPriority]]] = None
    created_by: Optional[str] = None
    assigned_to: Optional[AssigneeFilter] = None
    category_id: Optional[str] = None
    module: Optional[TicketModule] = None
    search: Optional[str] = None
    start_date: Optional[Union[datetime, date]] = None
    end_date: Optional[Union[datetime, date]] = None

    @field_validator("*", mode="before")
    @classmethod
    def _omit_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("status", "priority", mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        if isinstance(value, str) and "," in value:
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return parts or None
        if isinstance(value, (tuple, set)):
            return list(value)
        return value

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _parse_assignee(cls, value: Any) -> Any:
        return AssigneeFilter.parse(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_date_bound(cls, value: Any) -> Any:
        # A bare YYYY-MM-DD stays a date so the end bound can cover the whole day.
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text)
        return value

    @field_validator("search", "created_by", "category_id", mode="after")
    @classmethod
    def _strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip()
        return text or None


class ListOptions(BaseModel):
    sort_by: Optional[str] = None
    sort_ascending: Optional[bool] = None
    page: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1, le=500)

    @field_validator("sort_by")
    @classmethod
    def _known_sort_field(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip()
        if not text:
            return None
        if text not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort tickets by '{text}'")
        return text

    def order(self) -> tuple[str, bool]:
        """Return ``(column, ascending)`` for the query."""

        if not self.sort_by:
            return "created_at", False
        return self.sort_by, self.sort_ascending is not False

    def bounds(self) -> tuple[int, int] | None:
        if not self.page or not self.page_size:
            return None
        start = (self.page - 1) * self.page_size
        return start, start + self.page_size - 1


class PurchaseDetails(BaseModel):
    items: list[str] = Field(default_factory=list)
    justification: str = ""

    @field_validator("items")
    @classmethod
    def _drop_blank_items(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]


class ErrorDetails(BaseModel):
    environment: str = "development"
    steps: list[str] = Field(default_factory=list)
    expected: str = ""
    actual: str = ""

    @field_validator("steps")
    @classmethod
    def _drop_blank_steps(cls, value: list[str]) -> list[str]:
        return [step.strip() for step in value if step and step.strip()]


class TicketCreate(BaseModel):
    title: str = Field(..., max_length=TITLE_MAX_LENGTH)
    description: str
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    module: Optional[TicketModule] = None
    category_id: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None
    purchase_details: Optional[PurchaseDetails] = None
    error_details: Optional[ErrorDetails] = None


class TicketUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    module: Optional[TicketModule] = None
    category_id: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None
    purchase_details: Optional[PurchaseDetails] = None
    error_details: Optional[ErrorDetails] = None


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    is_internal: bool = False


class TicketListResponse(BaseModel):
    items: list[dict[str, Any]]
    total: int
    page: Optional[int] = None
    page_size: Optional[int] = None


class ReferenceListResponse(BaseModel):
    items: list[dict[str, Any]]
    error: Optional[str] = None


class ReferenceDataResponse(BaseModel):
    categories: list[dict[str, Any]]
    users: list[dict[str, Any]]
    error: Optional[str] = None


class UserTicketStats(BaseModel):
    total_created: int = 0
    total_assigned: int = 0
    open_tickets: int = 0
    in_progress_tickets: int = 0
    resolved_tickets: int = 0


class SystemTicketStats(BaseModel):
    total_users: int = 0
    total_tickets: int = 0
    tickets_by_status: dict[str, int] = Field(default_factory=dict)
    tickets_by_priority: dict[str, int] = Field(default_factory=dict)
