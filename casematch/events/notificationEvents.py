"""
Notification & Case Search Event Stubs
======================================

Event emitters for everything the engine does that a delivery transport
(push, socket, e-mail) may want to act on. The engine never talks to a
transport directly: it persists the notification ledger row and emits an
event here. Each emitter logs the event and returns the payload dict.

Events emitted:
  - notification.created
  - case.search_status_changed
  - case.auto_assigned
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    *,
    case_id: uuid.UUID | None = None,
    data: dict[str, Any] | None = None,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "case_id": str(case_id) if case_id else None,
        "actor_id": str(actor_id) if actor_id else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_notification_created(
    notification_id: uuid.UUID,
    user_id: uuid.UUID,
    notification_type: str,
    *,
    case_id: uuid.UUID | None = None,
    deliver_push: bool = True,
) -> dict[str, Any]:
    """Emit event when a notification row is written to the ledger."""
    event = _build_event(
        "notification.created",
        case_id=case_id,
        data={
            "notification_id": str(notification_id),
            "user_id": str(user_id),
            "notification_type": notification_type,
            "deliver_push": deliver_push,
        },
    )
    logger.debug(
        "Event emitted: %s %s for user %s",
        event["event_type"],
        notification_type,
        user_id,
    )
    return event


def emit_search_status_changed(
    case_id: uuid.UUID,
    old_status: str,
    new_status: str,
    *,
    notified_count: int = 0,
) -> dict[str, Any]:
    """Emit event when a case advances through the location search states."""
    event = _build_event(
        "case.search_status_changed",
        case_id=case_id,
        data={
            "old_status": old_status,
            "new_status": new_status,
            "notified_count": notified_count,
        },
    )
    logger.info(
        "Event emitted: %s for case %s (%s -> %s)",
        event["event_type"],
        case_id,
        old_status,
        new_status,
    )
    return event


def emit_case_auto_assigned(
    case_id: uuid.UUID,
    provider_id: uuid.UUID,
    score: float,
) -> dict[str, Any]:
    """Emit event when the matching engine auto-assigns a case."""
    event = _build_event(
        "case.auto_assigned",
        case_id=case_id,
        data={
            "provider_id": str(provider_id),
            "score": score,
        },
    )
    logger.info(
        "Event emitted: %s for case %s (provider=%s, score=%.2f)",
        event["event_type"],
        case_id,
        provider_id,
        score,
    )
    return event
