from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from helpdesk.core.backend import BACKEND_ERRORS, Backend, backend as default_backend
from helpdesk.core.backend import NOT_FOUND_CODE, describe_error, is_not_found
from helpdesk.core.config import get_settings
from helpdesk.core.logging import log_audit_event, log_debug, log_error, log_info, log_warning
from helpdesk.core.results import ErrorKind, ServiceResult
from helpdesk.repositories import categories as categories_repo
from helpdesk.repositories import comments as comments_repo
from helpdesk.repositories import profiles as profiles_repo
from helpdesk.repositories import ticket_history as history_repo
from helpdesk.repositories import tickets as tickets_repo
from helpdesk.repositories.tickets import TicketRecord
from helpdesk.schemas.tickets import (
    TITLE_MAX_LENGTH,
    ErrorDetails,
    ListOptions,
    PurchaseDetails,
    TicketFilters,
    TicketModule,
    TicketPriority,
    TicketStatus,
)
from helpdesk.services.reference_cache import ReferenceCache

TRACKED_FIELDS: tuple[str, ...] = (
    "status",
    "priority",
    "assigned_to",
    "category_id",
    "due_date",
    "title",
    "description",
)

UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {*TRACKED_FIELDS, "module", "purchase_details", "error_details"}
)

_NULLABLE_FIELDS: tuple[str, ...] = ("assigned_to", "category_id", "due_date")

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "status": TicketStatus,
    "priority": TicketPriority,
    "module": TicketModule,
}

_DETAIL_MODELS: dict[str, type[BaseModel]] = {
    "purchase_details": PurchaseDetails,
    "error_details": ErrorDetails,
}

COMMENT_PREVIEW_LENGTH = 50

CATEGORIES_KEY = "categories"
USERS_KEY = "users"


class TicketValidationError(ValueError):
    """Raised before any backend call when ticket input is incomplete or malformed."""

    def __init__(self, field_errors: Mapping[str, str]) -> None:
        self.field_errors = dict(field_errors)
        super().__init__("; ".join(self.field_errors.values()))


@dataclass(slots=True)
class AuditFailure:
    ticket_id: str
    field: str
    error: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _payload_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def _stringify(value: Any) -> str | None:
    """Render a history value; absent or empty values become ``None``."""

    value = _payload_value(value)
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def _comparable(value: Any) -> str | None:
    value = _payload_value(value)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return json.dumps(value, sort_keys=True, default=str)


def _as_mapping(fields: Any, *, exclude_unset: bool = False) -> dict[str, Any]:
    if isinstance(fields, BaseModel):
        return fields.model_dump(exclude_unset=exclude_unset)
    if isinstance(fields, Mapping):
        return dict(fields)
    raise TicketValidationError({"ticket": "Ticket data is required"})


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(_payload_value(value)).strip()


def _validate_enum(field: str, value: Any, errors: dict[str, str]) -> str | None:
    enum_type = _ENUM_FIELDS[field]
    raw = _payload_value(value)
    try:
        return enum_type(raw).value
    except ValueError:
        errors[field] = f"Invalid {field} '{raw}'"
        return None


def _validate_details(field: str, value: Any, errors: dict[str, str]) -> dict[str, Any]:
    if not value:
        return {}
    model = _DETAIL_MODELS[field]
    try:
        if isinstance(value, model):
            return value.model_dump(mode="json")
        return model.model_validate(value).model_dump(mode="json")
    except ValidationError:
        errors[field] = f"Invalid {field.replace('_', ' ')}"
        return {}


def _validate_title(value: Any, errors: dict[str, str]) -> str:
    title = _clean_text(value)
    if not title:
        errors["title"] = "Title is required"
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = f"Title must be {TITLE_MAX_LENGTH} characters or fewer"
    return title


def build_create_payload(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Validate and normalise the fields of a new ticket."""

    errors: dict[str, str] = {}
    title = _validate_title(fields.get("title"), errors)
    description = _clean_text(fields.get("description"))
    if not description:
        errors["description"] = "Description is required"
    created_by = _clean_text(fields.get("created_by"))
    if not created_by:
        errors["created_by"] = "Creator id is required"

    defaults = {"status": "open", "priority": "medium", "module": "support"}
    payload: dict[str, Any] = {
        "title": title,
        "description": description,
        "created_by": created_by,
    }
    for field, default in defaults.items():
        value = fields.get(field)
        payload[field] = _validate_enum(field, value, errors) if value else default

    for field in _NULLABLE_FIELDS:
        payload[field] = _payload_value(fields.get(field)) or None

    for field in _DETAIL_MODELS:
        payload[field] = _validate_details(field, fields.get(field), errors)

    if errors:
        raise TicketValidationError(errors)
    return payload


def build_update_payload(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Normalise a partial update; only keys present in *fields* are touched."""

    errors: dict[str, str] = {}
    payload: dict[str, Any] = {}
    for field, value in fields.items():
        if field not in UPDATABLE_FIELDS:
            log_debug("Ignoring non-updatable ticket field", field=field)
            continue
        if field == "title":
            payload[field] = _validate_title(value, errors)
        elif field == "description":
            payload[field] = _clean_text(value)
            if not payload[field]:
                errors[field] = "Description is required"
        elif field in _ENUM_FIELDS:
            payload[field] = _validate_enum(field, value, errors) if value else None
            if not value:
                errors[field] = f"{field.capitalize()} cannot be empty"
        elif field in _NULLABLE_FIELDS:
            payload[field] = _payload_value(value) or None
        else:
            payload[field] = _validate_details(field, value, errors)
    if errors:
        raise TicketValidationError(errors)
    return payload


def _validation_failure(
    exc: TicketValidationError | ValidationError,
    *,
    data: Any = None,
    count: int | None = None,
) -> ServiceResult[Any]:
    if isinstance(exc, ValidationError):
        field_errors = {
            ".".join(str(part) for part in error["loc"]) or "input": error["msg"]
            for error in exc.errors()
        }
        message = "; ".join(field_errors.values()) or "Invalid input"
    else:
        field_errors = exc.field_errors
        message = str(exc)
    log_warning("Ticket input rejected", fields=",".join(sorted(field_errors)))
    return ServiceResult.failure(
        message,
        kind=ErrorKind.VALIDATION,
        data=data,
        count=count,
        field_errors=field_errors,
    )


def comment_preview(content: str) -> str:
    if len(content) <= COMMENT_PREVIEW_LENGTH:
        return f"Comment added: {content}"
    return f"Comment added: {content[:COMMENT_PREVIEW_LENGTH]}..."


class TicketService:
    """Ticket data access with audit history and cached reference data.

    Every public coroutine returns a :class:`ServiceResult`; backend errors
    are logged and reported through the result instead of being raised.
    """

    def __init__(
        self,
        backend: Backend | None = None,
        *,
        cache: ReferenceCache | None = None,
        on_audit_failure: Callable[[AuditFailure], None] | None = None,
    ) -> None:
        self._backend = default_backend if backend is None else backend
        self.cache = cache if cache is not None else ReferenceCache(
            get_settings().reference_cache_ttl
        )
        self.audit_failures = 0
        self._on_audit_failure = on_audit_failure

    def _client(self) -> Any:
        return self._backend.client

    def _backend_failure(
        self,
        action: str,
        exc: BaseException,
        *,
        data: Any = None,
        count: int | None = None,
        **meta: Any,
    ) -> ServiceResult[Any]:
        message = describe_error(exc)
        log_error(f"{action} failed", error=message, **meta)
        return ServiceResult.failure(
            f"{action}: {message}",
            kind=ErrorKind.BACKEND,
            data=data,
            count=count,
            code=getattr(exc, "code", None),
        )

    async def _record_history(
        self,
        ticket_id: str,
        actor_id: str,
        field: str,
        old_value: str | None,
        new_value: str | None,
    ) -> bool:
        try:
            await history_repo.insert_entry(
                self._client(),
                ticket_id=ticket_id,
                changed_by=actor_id,
                field_changed=field,
                old_value=old_value,
                new_value=new_value,
            )
        except BACKEND_ERRORS as exc:
            error = describe_error(exc)
            self.audit_failures += 1
            log_warning(
                "Ticket history entry not recorded",
                ticket_id=ticket_id,
                field=field,
                error=error,
            )
            if self._on_audit_failure is not None:
                self._on_audit_failure(AuditFailure(ticket_id=ticket_id, field=field, error=error))
            return False
        log_debug("Ticket history recorded", ticket_id=ticket_id, field=field)
        return True

    async def _track_changes(
        self,
        ticket_id: str,
        actor_id: str,
        previous: Mapping[str, Any],
        updates: Mapping[str, Any],
    ) -> int:
        changes: list[tuple[str, str | None, str | None]] = []
        for field in TRACKED_FIELDS:
            if field not in updates:
                continue
            old_value = previous.get(field)
            new_value = updates.get(field)
            if _comparable(old_value) == _comparable(new_value):
                continue
            changes.append((field, _stringify(old_value), _stringify(new_value)))
        for field, old_value, new_value in changes:
            await self._record_history(ticket_id, actor_id, field, old_value, new_value)
        return len(changes)

    async def list_tickets(
        self,
        filters: TicketFilters | Mapping[str, Any] | None = None,
        options: ListOptions | Mapping[str, Any] | None = None,
    ) -> ServiceResult[list[TicketRecord]]:
        try:
            parsed_filters = (
                filters
                if isinstance(filters, TicketFilters)
                else TicketFilters.model_validate(filters or {})
            )
            parsed_options = (
                options
                if isinstance(options, ListOptions)
                else ListOptions.model_validate(options or {})
            )
        except ValidationError as exc:
            return _validation_failure(exc, data=[], count=0)

        try:
            items, total = await tickets_repo.list_tickets(
                self._client(), parsed_filters, parsed_options
            )
        except BACKEND_ERRORS as exc:
            return self._backend_failure("Unable to load tickets", exc, data=[], count=0)
        log_info("Tickets loaded", returned=len(items), total=total)
        return ServiceResult.success(items, count=total)

    async def get_ticket(self, ticket_id: str | None) -> ServiceResult[TicketRecord]:
        if not ticket_id:
            return _validation_failure(TicketValidationError({"id": "Ticket id is required"}))
        try:
            ticket = await tickets_repo.get_ticket(self._client(), ticket_id)
        except BACKEND_ERRORS as exc:
            if is_not_found(exc):
                log_info("Ticket not found", ticket_id=ticket_id)
                return ServiceResult.failure(
                    "Ticket not found", kind=ErrorKind.NOT_FOUND, code=NOT_FOUND_CODE
                )
            return self._backend_failure("Unable to load ticket", exc, ticket_id=ticket_id)
        return ServiceResult.success(ticket)

    async def create_ticket(
        self, fields: BaseModel | Mapping[str, Any]
    ) -> ServiceResult[TicketRecord]:
        try:
            payload = build_create_payload(_as_mapping(fields))
        except TicketValidationError as exc:
            return _validation_failure(exc)

        try:
            ticket = await tickets_repo.insert_ticket(self._client(), payload)
        except BACKEND_ERRORS as exc:
            return self._backend_failure("Unable to create ticket", exc)

        ticket_id = ticket.get("id")
        if ticket_id:
            await self._record_history(
                ticket_id, payload["created_by"], "ticket_created", None, "New ticket created"
            )
        log_audit_event(
            "TICKET",
            "create",
            user_id=payload["created_by"],
            entity_type="ticket",
            entity_id=ticket_id,
        )
        return ServiceResult.success(ticket)

    async def update_ticket(
        self,
        ticket_id: str | None,
        fields: BaseModel | Mapping[str, Any],
        actor_id: str | None,
    ) -> ServiceResult[TicketRecord]:
        if not ticket_id or not actor_id:
            return _validation_failure(
                TicketValidationError({"id": "Ticket id and user id are required"})
            )
        try:
            updates = build_update_payload(_as_mapping(fields, exclude_unset=True))
        except TicketValidationError as exc:
            return _validation_failure(exc)

        existing = await self.get_ticket(ticket_id)
        if not existing.ok:
            return existing
        previous = existing.data or {}

        updates["updated_at"] = _now_iso()
        try:
            ticket = await tickets_repo.update_ticket(self._client(), ticket_id, updates)
        except BACKEND_ERRORS as exc:
            if is_not_found(exc):
                log_warning("Ticket update matched no row", ticket_id=ticket_id)
                return ServiceResult.failure(
                    "Ticket not found", kind=ErrorKind.NOT_FOUND, code=NOT_FOUND_CODE
                )
            return self._backend_failure("Unable to update ticket", exc, ticket_id=ticket_id)

        changed = await self._track_changes(ticket_id, actor_id, previous, updates)
        log_audit_event(
            "TICKET",
            "update",
            user_id=actor_id,
            entity_type="ticket",
            entity_id=ticket_id,
            changes=changed,
        )
        return ServiceResult.success(ticket)

    async def delete_ticket(
        self, ticket_id: str | None, actor_id: str | None
    ) -> ServiceResult[bool]:
        if not ticket_id or not actor_id:
            return _validation_failure(
                TicketValidationError({"id": "Ticket id and user id are required"}),
                data=False,
            )
        existing = await self.get_ticket(ticket_id)
        if not existing.ok:
            return ServiceResult.failure(
                existing.error or "Ticket not found",
                kind=existing.kind or ErrorKind.BACKEND,
                data=False,
                code=existing.code,
            )
        try:
            await tickets_repo.delete_ticket(self._client(), ticket_id)
        except BACKEND_ERRORS as exc:
            return self._backend_failure(
                "Unable to delete ticket", exc, data=False, ticket_id=ticket_id
            )

        await self._record_history(
            ticket_id, actor_id, "ticket_deleted", "Ticket active", "Ticket deleted"
        )
        log_audit_event(
            "TICKET", "delete", user_id=actor_id, entity_type="ticket", entity_id=ticket_id
        )
        return ServiceResult.success(True)

    async def _cached_collection(
        self,
        key: str,
        loader: Callable[[Any], Awaitable[list[dict[str, Any]]]],
        *,
        force_refresh: bool,
        action: str,
    ) -> ServiceResult[list[dict[str, Any]]]:
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                log_debug("Using cached reference data", collection=key)
                return ServiceResult.success(cached, count=len(cached))

        try:
            rows = await loader(self._client())
        except BACKEND_ERRORS as exc:
            fallback = list(self.cache.peek(key) or [])
            return self._backend_failure(action, exc, data=fallback, count=len(fallback))

        collection = self.cache.store(key, rows)
        log_debug("Reference data refreshed", collection=key, count=len(collection))
        return ServiceResult.success(collection, count=len(collection))

    async def get_categories(
        self, force_refresh: bool = False
    ) -> ServiceResult[list[dict[str, Any]]]:
        return await self._cached_collection(
            CATEGORIES_KEY,
            categories_repo.list_categories,
            force_refresh=force_refresh,
            action="Unable to load categories",
        )

    async def get_users(
        self, force_refresh: bool = False
    ) -> ServiceResult[list[dict[str, Any]]]:
        return await self._cached_collection(
            USERS_KEY,
            profiles_repo.list_profiles,
            force_refresh=force_refresh,
            action="Unable to load users",
        )

    async def load_reference_data(
        self, force_refresh: bool = False
    ) -> ServiceResult[dict[str, list[dict[str, Any]]]]:
        """Fetch categories and users together, as ticket forms need both."""

        categories, users = await asyncio.gather(
            self.get_categories(force_refresh), self.get_users(force_refresh)
        )
        data = {"categories": categories.data or [], "users": users.data or []}
        for result in (categories, users):
            if not result.ok:
                return ServiceResult.failure(
                    result.error or "Unable to load reference data", data=data
                )
        return ServiceResult.success(data)

    async def add_comment(
        self,
        ticket_id: str | None,
        user_id: str | None,
        content: str | None,
        *,
        is_internal: bool = False,
    ) -> ServiceResult[TicketRecord]:
        text = (content or "").strip()
        if not ticket_id or not user_id or not text:
            return _validation_failure(
                TicketValidationError({"comment": "Comment data is incomplete"})
            )
        payload = {
            "ticket_id": ticket_id,
            "user_id": user_id,
            "content": text,
            "is_internal": bool(is_internal),
        }
        try:
            comment = await comments_repo.insert_comment(self._client(), payload)
        except BACKEND_ERRORS as exc:
            return self._backend_failure("Unable to add comment", exc, ticket_id=ticket_id)

        await self._record_history(
            ticket_id, user_id, "comment_added", None, comment_preview(text)
        )
        log_info("Comment added", ticket_id=ticket_id, comment_id=comment.get("id"))
        return ServiceResult.success(comment)

    async def get_comments(self, ticket_id: str | None) -> ServiceResult[list[TicketRecord]]:
        if not ticket_id:
            return _validation_failure(
                TicketValidationError({"ticket_id": "Ticket id is required"}), data=[]
            )
        try:
            comments = await comments_repo.list_comments(self._client(), ticket_id)
        except BACKEND_ERRORS as exc:
            return self._backend_failure(
                "Unable to load comments", exc, data=[], ticket_id=ticket_id
            )
        return ServiceResult.success(comments, count=len(comments))

    async def get_ticket_history(
        self, ticket_id: str | None
    ) -> ServiceResult[list[dict[str, Any]]]:
        if not ticket_id:
            return _validation_failure(
                TicketValidationError({"ticket_id": "Ticket id is required"}), data=[]
            )
        try:
            entries = await history_repo.list_entries(self._client(), ticket_id)
        except BACKEND_ERRORS as exc:
            return self._backend_failure(
                "Unable to load ticket history", exc, data=[], ticket_id=ticket_id
            )
        return ServiceResult.success(entries, count=len(entries))

    async def get_ticket_stats(self, user_id: str | None) -> ServiceResult[dict[str, int]]:
        if not user_id:
            return _validation_failure(
                TicketValidationError({"user_id": "User id is required"})
            )
        try:
            client = self._client()
            created, assigned, open_count, in_progress, resolved = await asyncio.gather(
                tickets_repo.count_tickets(client, equals={"created_by": user_id}),
                tickets_repo.count_tickets(client, equals={"assigned_to": user_id}),
                tickets_repo.count_tickets(
                    client, equals={"status": "open"}, involving_user=user_id
                ),
                tickets_repo.count_tickets(
                    client, equals={"status": "in_progress"}, involving_user=user_id
                ),
                tickets_repo.count_tickets(
                    client, equals={"status": "resolved"}, involving_user=user_id
                ),
            )
        except BACKEND_ERRORS as exc:
            return self._backend_failure("Unable to load ticket statistics", exc, user_id=user_id)
        return ServiceResult.success(
            {
                "total_created": created,
                "total_assigned": assigned,
                "open_tickets": open_count,
                "in_progress_tickets": in_progress,
                "resolved_tickets": resolved,
            }
        )

    async def get_system_stats(self) -> ServiceResult[dict[str, Any]]:
        statuses = [status.value for status in TicketStatus]
        priorities = [priority.value for priority in TicketPriority]
        try:
            client = self._client()
            counts = await asyncio.gather(
                profiles_repo.count_profiles(client),
                tickets_repo.count_tickets(client),
                *(
                    tickets_repo.count_tickets(client, equals={"status": status})
                    for status in statuses
                ),
                *(
                    tickets_repo.count_tickets(client, equals={"priority": priority})
                    for priority in priorities
                ),
            )
        except BACKEND_ERRORS as exc:
            return self._backend_failure("Unable to load system statistics", exc)

        status_counts = counts[2 : 2 + len(statuses)]
        priority_counts = counts[2 + len(statuses) :]
        return ServiceResult.success(
            {
                "total_users": counts[0],
                "total_tickets": counts[1],
                "tickets_by_status": dict(zip(statuses, status_counts)),
                "tickets_by_priority": dict(zip(priorities, priority_counts)),
            }
        )


ticket_service = TicketService()
