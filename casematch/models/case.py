"""
SQLAlchemy models for service_cases and case_bids.

A case carries two independent status columns:

* ``status`` -- the customer-facing lifecycle (pending, wip, completed, ...),
  mutated by acceptance/completion flows and by auto-assignment.
* ``search_status`` -- the geographic notification sweep state, mutated only
  by the location search job through ``searchStateMachine``.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class CaseStatus(str, enum.Enum):
    PENDING = "pending"
    WIP = "wip"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class CasePriority(str, enum.Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class SearchStatus(str, enum.Enum):
    ACTIVE = "active"
    ACTIVE_WAITING = "active_waiting"
    EXPANDED = "expanded"
    COMPLETED = "completed"


class BidStatus(str, enum.Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


class ServiceCase(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "service_cases"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # What is requested
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    service_type: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    budget: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    priority: Mapped[CasePriority] = mapped_column(
        enum_type(CasePriority, "case_priority"),
        nullable=False,
        default=CasePriority.NORMAL,
    )

    # Where
    latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    neighborhood: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Lifecycle
    status: Mapped[CaseStatus] = mapped_column(
        enum_type(CaseStatus, "case_status"),
        nullable=False,
        default=CaseStatus.PENDING,
    )
    bidding_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    bidding_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Geographic notification sweep
    search_status: Mapped[SearchStatus] = mapped_column(
        enum_type(SearchStatus, "case_search_status"),
        nullable=False,
        default=SearchStatus.ACTIVE,
    )
    search_radius_km: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False, default=Decimal("5"), server_default="5"
    )
    search_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Assignment
    provider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    auto_assigned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    bids: Mapped[list["CaseBid"]] = relationship(
        "CaseBid", back_populates="case", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_service_cases_search_status", "search_status"),
        Index("ix_service_cases_status_created", "status", "created_at"),
        Index("ix_service_cases_provider_created", "provider_id", "created_at"),
    )

    @property
    def location_label(self) -> str:
        """Human-readable location used in notification texts."""
        return self.address or self.city or ""

    def __repr__(self) -> str:
        return (
            f"<ServiceCase(id={self.id}, category={self.category}, "
            f"status={self.status}, search={self.search_status})>"
        )


class CaseBid(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "case_bids"

    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("service_cases.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    proposed_budget_min: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    proposed_budget_max: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    status: Mapped[BidStatus] = mapped_column(
        enum_type(BidStatus, "bid_status"),
        nullable=False,
        default=BidStatus.PENDING,
    )

    # Relationships
    case: Mapped["ServiceCase"] = relationship("ServiceCase", back_populates="bids")

    __table_args__ = (
        Index("ix_case_bids_case_id", "case_id"),
        Index("uq_case_bids_case_provider", "case_id", "provider_id", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<CaseBid(id={self.id}, case_id={self.case_id}, "
            f"provider_id={self.provider_id}, status={self.status})>"
        )
