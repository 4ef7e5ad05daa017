"""
Notification Service
====================

The dispatch contract of the engine: ``notify(db, user_id, type, title,
message, payload)``. Each call:

  1. Derives the ledger columns (``case_id`` from ``payload["caseId"]``,
     optional ``dedup_key``).
  2. Writes the ``Notification`` row. Keyed rows use insert-or-ignore on the
     unique ``(user_id, dedup_key)`` index, so a concurrent or repeated
     sweep cannot create a second alert for the same case. PostgreSQL and
     SQLite get ``ON CONFLICT DO NOTHING``; other backends look the key up
     before a plain insert and rely on the unique index for the race.
  3. Checks the user's push preferences and stamps ``sent_at`` when the row
     is eligible for push delivery.
  4. Emits ``notification.created`` for whichever transport is listening.

The typed helpers below (new case, case assigned, bid reminder, low points)
build titles, messages and payloads and then call ``notify``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from casematch.core.clock import utcnow
from casematch.events.notificationEvents import emit_notification_created
from casematch.models.case import ServiceCase
from casematch.models.notification import (
    Notification,
    NotificationPreference,
    NotificationType,
)
from casematch.schemas.notification import (
    BidSelectionReminderPayload,
    CaseAssignedPayload,
    NewCasePayload,
    PointsLowPayload,
)
from casematch.services.dedupGuard import case_alert_dedup_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _get_notification_preferences(
    user_id: uuid.UUID,
    db: AsyncSession,
) -> NotificationPreference | None:
    """Load push preferences for a user.

    Returns None if the user has not configured preferences (meaning
    all defaults apply -- i.e. all enabled).
    """
    result = await db.execute(
        select(NotificationPreference).where(
            NotificationPreference.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


def _should_push(
    prefs: NotificationPreference | None,
    notification_type: NotificationType,
) -> bool:
    """Decide whether a stored notification should also be pushed."""
    if prefs is None:
        return True
    if not prefs.push_enabled:
        return False

    if notification_type in (
        NotificationType.NEW_CASE_AVAILABLE,
        NotificationType.JOB_INCOMING,
        NotificationType.CASE_ASSIGNED,
    ):
        return prefs.push_new_cases
    if notification_type == NotificationType.BID_SELECTION_REMINDER:
        return prefs.push_new_bids
    if notification_type == NotificationType.POINTS_LOW_WARNING:
        return prefs.push_points_subscription

    return True


def _case_id_from_payload(payload: dict[str, Any] | None) -> uuid.UUID | None:
    if not payload or payload.get("caseId") is None:
        return None
    value = payload["caseId"]
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _insert_ignoring_duplicates(db: AsyncSession):
    """Dialect-specific ``INSERT ... ON CONFLICT DO NOTHING`` for the ledger.

    Returns None on backends without an ``ON CONFLICT`` clause.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(Notification).on_conflict_do_nothing(
            index_elements=["user_id", "dedup_key"]
        )
    if dialect == "sqlite":
        return sqlite.insert(Notification).on_conflict_do_nothing(
            index_elements=["user_id", "dedup_key"]
        )
    return None


async def _insert_unless_keyed(db: AsyncSession, values: dict[str, Any]) -> uuid.UUID | None:
    """Plain insert guarded by a ``(user_id, dedup_key)`` lookup."""
    existing = await db.execute(
        select(Notification.id).where(
            Notification.user_id == values["user_id"],
            Notification.dedup_key == values["dedup_key"],
        )
    )
    if existing.scalar_one_or_none() is not None:
        return None
    await db.execute(insert(Notification).values(**values))
    return values["id"]


# ---------------------------------------------------------------------------
# Dispatch contract
# ---------------------------------------------------------------------------

async def notify(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    payload: dict[str, Any] | None = None,
    *,
    dedup_key: str | None = None,
    now: datetime | None = None,
) -> uuid.UUID | None:
    """Persist and dispatch a single notification.

    Args:
        db: Async database session. The caller owns the transaction.
        user_id: Recipient user UUID.
        notification_type: Classification of this notification.
        title: Notification title.
        message: Notification body text.
        payload: JSON payload; must contain ``caseId`` for case-scoped types.
        dedup_key: Optional ledger key. A second call with the same
            (user_id, dedup_key) writes nothing.
        now: Timestamp override (tests).

    Returns:
        The new notification id, or None if the ledger already held a row
        with the same ``dedup_key``.
    """
    now = now or utcnow()
    prefs = await _get_notification_preferences(user_id, db)
    push = _should_push(prefs, notification_type)

    values = {
        "id": uuid.uuid4(),
        "user_id": user_id,
        "notification_type": notification_type,
        "title": title,
        "message": message,
        "data_json": payload,
        "case_id": _case_id_from_payload(payload),
        "dedup_key": dedup_key,
        "read": False,
        "sent_at": now if push else None,
        "created_at": now,
        "updated_at": now,
    }

    if dedup_key is None:
        await db.execute(insert(Notification).values(**values))
        notification_id = values["id"]
    else:
        stmt = _insert_ignoring_duplicates(db)
        if stmt is None:
            notification_id = await _insert_unless_keyed(db, values)
        else:
            stmt = stmt.values(**values).returning(Notification.id)
            notification_id = (await db.execute(stmt)).scalar_one_or_none()
        if notification_id is None:
            logger.info(
                "Notification skipped, ledger already holds %s for user %s",
                dedup_key,
                user_id,
            )
            return None

    if not push:
        logger.info(
            "Push suppressed by user preferences: user=%s, type=%s",
            user_id,
            notification_type.value,
        )

    emit_notification_created(
        notification_id,
        user_id,
        notification_type.value,
        case_id=values["case_id"],
        deliver_push=push,
    )
    return notification_id


# ---------------------------------------------------------------------------
# Public API -- case alerts
# ---------------------------------------------------------------------------

async def notify_new_case_available(
    db: AsyncSession,
    case: ServiceCase,
    provider_user_ids: Iterable[uuid.UUID],
    *,
    now: datetime | None = None,
) -> list[uuid.UUID]:
    """Alert providers that a new case is available.

    Each recipient is written inside its own SAVEPOINT. A failing recipient
    rolls back only its own row, is logged, and the remaining providers are
    still notified in the caller's transaction.

    Returns:
        The user ids that received a new ledger row.
    """
    category = case.service_type or case.category
    location = case.location_label
    title = "New request in your area"
    message = f"New {category} request in {location}. Check whether you can take it."
    payload = NewCasePayload(
        case_id=case.id,
        category=category,
        location=location,
        budget=float(case.budget) if case.budget is not None else None,
        priority=case.priority.value if case.priority is not None else None,
    ).to_data()
    dedup_key = case_alert_dedup_key(case.id)

    notified: list[uuid.UUID] = []
    for user_id in provider_user_ids:
        try:
            async with db.begin_nested():
                created = await notify(
                    db,
                    user_id,
                    NotificationType.NEW_CASE_AVAILABLE,
                    title,
                    message,
                    payload,
                    dedup_key=dedup_key,
                    now=now,
                )
        except Exception:
            logger.exception(
                "Failed to notify provider %s about case %s", user_id, case.id
            )
            continue
        if created is not None:
            notified.append(user_id)
    return notified


async def notify_case_assigned(
    db: AsyncSession,
    case: ServiceCase,
    provider_user_id: uuid.UUID,
    *,
    score: float | None = None,
) -> uuid.UUID | None:
    """Tell a provider that a case was auto-assigned to them."""
    category = case.service_type or case.category
    return await notify(
        db,
        provider_user_id,
        NotificationType.CASE_ASSIGNED,
        "A case was assigned to you",
        f"You have been matched to a {category} request in {case.location_label}.",
        CaseAssignedPayload(
            case_id=case.id,
            provider_id=provider_user_id,
            score=score,
        ).to_data(),
    )


# ---------------------------------------------------------------------------
# Public API -- reminders
# ---------------------------------------------------------------------------

async def notify_bid_selection_reminder(
    db: AsyncSession,
    case_id: uuid.UUID,
    customer_id: uuid.UUID,
    bid_count: int,
    *,
    now: datetime | None = None,
) -> uuid.UUID | None:
    """Remind a customer to pick a winner among the bids on their case."""
    return await notify(
        db,
        customer_id,
        NotificationType.BID_SELECTION_REMINDER,
        "Choose a provider for your request",
        f"Your request has {bid_count} offers waiting. Pick a provider to get started.",
        BidSelectionReminderPayload(case_id=case_id, bid_count=bid_count).to_data(),
        now=now,
    )


async def notify_points_low_warning(
    db: AsyncSession,
    user_id: uuid.UUID,
    points_balance: int,
    threshold: int,
    *,
    now: datetime | None = None,
) -> uuid.UUID | None:
    """Warn a provider that their points balance is running low."""
    return await notify(
        db,
        user_id,
        NotificationType.POINTS_LOW_WARNING,
        "Your points balance is low",
        f"You have {points_balance} points left. Top up to keep bidding on new requests.",
        PointsLowPayload(points_balance=points_balance, threshold=threshold).to_data(),
        now=now,
    )
