"""Loguru setup and the ``message | key=value`` helpers used across the package."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message}\n{exception}"


def _file_sink_ready(path: Path) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning(f"File logging off: cannot create {path.parent} ({exc})")
        return False
    return True


def configure_logging() -> None:
    """Replace loguru's default handler with a stdout sink and, if set, a file sink."""

    from helpdesk.core.config import get_settings

    logger.remove()
    logger.add(sink=lambda msg: print(msg, end=""), format=LOG_FORMAT)

    log_path = get_settings().log_path
    if not log_path:
        return
    log_path = log_path.expanduser()
    if not _file_sink_ready(log_path):
        return
    try:
        logger.add(
            str(log_path),
            format=LOG_FORMAT,
            level="INFO",
            encoding="utf-8",
            enqueue=True,
        )
    except OSError as exc:  # pragma: no cover - depends on filesystem
        logger.warning(f"File logging off: cannot open {log_path} ({exc})")


def render(message: str, meta: dict[str, Any]) -> str:
    if not meta:
        return message
    pairs = " ".join(f"{key}={meta[key]}" for key in sorted(meta))
    return f"{message} | {pairs}"


def _emit(level: str, message: str, meta: dict[str, Any]) -> None:
    # metadata is bound for structured sinks and rendered for plain ones
    logger.bind(**meta).log(level, render(message, meta))


def log_debug(message: str, **meta: Any) -> None:
    _emit("DEBUG", message, meta)


def log_info(message: str, **meta: Any) -> None:
    _emit("INFO", message, meta)


def log_warning(message: str, **meta: Any) -> None:
    _emit("WARNING", message, meta)


def log_error(message: str, **meta: Any) -> None:
    _emit("ERROR", message, meta)


def log_audit_event(
    event_type: str,
    action: str,
    *,
    user_id: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    **extra: Any,
) -> None:
    """Record a ticket or auth mutation as ``TICKET update | entity_id=... user_id=...``.

    Empty identity fields are left out.
    """

    identity = {"user_id": user_id, "entity_type": entity_type, "entity_id": entity_id}
    meta = {key: value for key, value in identity.items() if value}
    meta.update(extra)
    _emit("INFO", f"{event_type} {action}", meta)
