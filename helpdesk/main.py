from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from helpdesk.api.routes import auth, dashboard, preferences, reference, tickets
from helpdesk.core.backend import backend
from helpdesk.core.config import get_settings
from helpdesk.core.logging import configure_logging, log_info
from helpdesk.services.auth import auth_manager

configure_logging()
settings = get_settings()

tags_metadata = [
    {"name": "Auth", "description": "Registration, sign-in, sign-out and the current profile."},
    {"name": "Tickets", "description": "Ticket CRUD, comments and change history."},
    {"name": "Reference data", "description": "Cached categories and users for forms and filters."},
    {"name": "Dashboard", "description": "Per-user and system-wide ticket statistics."},
    {"name": "Preferences", "description": "Locally persisted interface preferences."},
]

app = FastAPI(
    title=settings.app_name,
    description="Help desk API exposing tickets, comments, history and dashboard statistics.",
    openapi_tags=tags_metadata,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.allowed_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    await backend.connect()
    if backend.is_connected():
        await auth_manager.restore()
    log_info(
        "Application startup",
        environment=settings.environment,
        backend="connected" if backend.is_connected() else "unconfigured",
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await auth_manager.close()
    await backend.disconnect()
    log_info("Application shutdown")


@app.get("/api/health")
async def health_check():
    payload = {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
    if not backend.is_connected():
        payload["backend"] = "unavailable"
        return payload
    result = await backend.test_connection()
    payload["backend"] = "ok" if result.ok else "error"
    if not result.ok:
        payload["error"] = result.error
    return payload


app.include_router(auth.router)
app.include_router(tickets.router)
app.include_router(reference.router)
app.include_router(dashboard.router)
app.include_router(preferences.router)
