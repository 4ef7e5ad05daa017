"""
Notification Dedup Guard
========================

Existence checks against the notification ledger. Before a sweep notifies
user U about event type T, it asks the ledger whether U already holds a
matching row:

* one-shot case alerts -- unconditional existence for (U, case, alert family)
* recurring reminders  -- existence within a rolling window (24 h)

The checks come in two shapes: Python helpers that run one query for a
whole batch of candidates, and correlated ``NOT EXISTS`` clauses that the
sweep queries embed directly.

The read and the later insert are not atomic. One-shot alerts therefore
also carry ``case_alert_dedup_key`` which the unique
``(user_id, dedup_key)`` index enforces at insert time; see
``notificationService.notify``.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import ColumnElement, and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from casematch.models.notification import (
    CASE_ALERT_TYPES,
    Notification,
    NotificationType,
)


def case_alert_dedup_key(case_id: uuid.UUID) -> str:
    """Ledger key shared by every case-alert subtype for one case."""
    return f"case_alert:{case_id}"


# ---------------------------------------------------------------------------
# Batch helpers
# ---------------------------------------------------------------------------

async def already_notified_for_case(
    db: AsyncSession,
    case_id: uuid.UUID,
    user_ids: Iterable[uuid.UUID],
    types: Iterable[NotificationType] = CASE_ALERT_TYPES,
) -> set[uuid.UUID]:
    """Return the subset of ``user_ids`` already holding a row of ``types``
    for ``case_id``."""
    candidates = list(user_ids)
    if not candidates:
        return set()

    stmt = select(Notification.user_id).where(
        Notification.case_id == case_id,
        Notification.notification_type.in_(list(types)),
        Notification.user_id.in_(candidates),
    )
    result = await db.execute(stmt)
    return {row[0] for row in result.all()}


# ---------------------------------------------------------------------------
# Correlated clauses for sweep queries
# ---------------------------------------------------------------------------

def case_alert_exists(
    user_id_col: ColumnElement,
    case_id_col: ColumnElement | uuid.UUID,
) -> ColumnElement[bool]:
    """``EXISTS`` a case alert for (user_id_col, case_id_col).

    Either side may be a correlated column or a literal id.
    """
    return exists().where(
        Notification.user_id == user_id_col,
        Notification.case_id == case_id_col,
        Notification.notification_type.in_(list(CASE_ALERT_TYPES)),
    )


def recent_notification_exists(
    user_match: ColumnElement[bool],
    notification_type: NotificationType,
    since: datetime,
    *,
    case_id: uuid.UUID | ColumnElement | None = None,
) -> ColumnElement[bool]:
    """``EXISTS`` a ``notification_type`` row created at or after ``since``.

    ``user_match`` is the predicate tying ``Notification.user_id`` to the
    recipient, either a literal id or a correlated column.
    """
    criteria = [
        user_match,
        Notification.notification_type == notification_type,
        Notification.created_at >= since,
    ]
    if case_id is not None:
        criteria.append(Notification.case_id == case_id)
    return exists().where(and_(*criteria))
