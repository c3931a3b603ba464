"""
teamgate/features/notifications/service.py

Fire-and-forget owner notifications for role and membership changes.

Events are always logged and buffered in memory; when NOTIFY_WEBHOOK_URL is
set they are also POSTed there. Delivery problems are logged and never
propagate to the caller: the mutation that triggered the event has already
committed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from teamgate.core.config import settings
from teamgate.core.logging import log_event, get_request_id
from teamgate.models.team import Team


logger = logging.getLogger(__name__)

_memory_events: List[Dict[str, Any]] = []  # Recent events, newest last
_MAX_BUFFERED = 1000


def notify_owner(
    team: Team,
    event_type: str,
    payload: Optional[Dict[str, Any]] = None,
    *,
    actor_id: Optional[str] = None,
) -> None:
    """Tell the team owner that something changed in their team."""
    record = {
        "event_type": event_type,
        "team_id": team.id,
        "owner_user_id": team.owner_user_id,
        "actor_id": actor_id,
        "request_id": get_request_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": dict(payload or {}),
    }

    log_event(
        "info",
        "team.notification",
        user_id=team.owner_user_id,
        team_id=team.id,
        event_type=event_type,
        extra={"data": record["data"], "actor_id": actor_id},
    )

    _memory_events.append(record)
    if len(_memory_events) > _MAX_BUFFERED:
        del _memory_events[: len(_memory_events) - _MAX_BUFFERED]

    if settings.NOTIFY_WEBHOOK_URL:
        _deliver(settings.NOTIFY_WEBHOOK_URL, record)


def _deliver(url: str, record: Dict[str, Any]) -> bool:
    headers = {
        "Content-Type": "application/json",
        "X-Teamgate-Event-Type": record["event_type"],
    }
    try:
        with httpx.Client(timeout=settings.NOTIFY_TIMEOUT_SECONDS) as client:
            response = client.post(url, json=record, headers=headers)
            response.raise_for_status()
        return True
    except httpx.HTTPError as exc:
        logger.warning(
            "[notifications] delivery failed",
            extra={"event_type": record["event_type"], "team_id": record["team_id"], "error": str(exc)},
        )
        return False


def get_buffered_notifications() -> List[Dict[str, Any]]:
    return list(_memory_events)


def clear_notifications() -> None:
    """Clear buffered events (for testing)"""
    _memory_events.clear()
