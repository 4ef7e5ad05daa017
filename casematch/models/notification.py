"""
SQLAlchemy models for notifications and notification_preferences.

The ``notifications`` table is both the user's in-app history and the
ledger the sweep jobs consult to decide whether an event was already
delivered. One-shot case alerts carry a ``dedup_key``; the unique
``(user_id, dedup_key)`` index makes a second insert for the same alert a
no-op. Recurring reminders leave ``dedup_key`` NULL and are windowed by
``created_at`` instead.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, false, true
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class NotificationType(str, enum.Enum):
    """Classification of notification events."""
    NEW_CASE_AVAILABLE = "new_case_available"
    JOB_INCOMING = "job_incoming"
    CASE_ASSIGNED = "case_assigned"
    BID_SELECTION_REMINDER = "bid_selection_reminder"
    POINTS_LOW_WARNING = "points_low_warning"
    SYSTEM = "system"


# Types that announce a case to a provider. A provider holding any of them
# for a case has been alerted about that case.
CASE_ALERT_TYPES: frozenset[NotificationType] = frozenset({
    NotificationType.NEW_CASE_AVAILABLE,
    NotificationType.JOB_INCOMING,
})


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------

class Notification(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Persistent notification record and dedup ledger entry."""
    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        enum_type(NotificationType, "notification_type"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data_json: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)

    # Copy of data_json["caseId"] for indexed ledger lookups
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("service_cases.id", ondelete="CASCADE"),
        nullable=True,
    )
    dedup_key: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_case_type", "case_id", "notification_type"),
        Index("ix_notifications_type_created", "notification_type", "created_at"),
        Index("uq_notifications_user_dedup", "user_id", "dedup_key", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, user_id={self.user_id}, "
            f"type={self.notification_type}, case_id={self.case_id})>"
        )


# ---------------------------------------------------------------------------
# NotificationPreference
# ---------------------------------------------------------------------------

class NotificationPreference(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Per-user push preference toggles.

    Each user has at most one row. A missing row means every push is
    enabled. Preferences never suppress the ledger row itself.
    """
    __tablename__ = "notification_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    push_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    push_new_cases: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    push_new_bids: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    push_points_subscription: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", backref="notification_preference")

    def __repr__(self) -> str:
        return (
            f"<NotificationPreference(user_id={self.user_id}, "
            f"push={self.push_enabled}, cases={self.push_new_cases})>"
        )
