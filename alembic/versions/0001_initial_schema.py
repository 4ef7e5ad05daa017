"""Initial schema: users, provider profiles, cases, bids, notifications.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "provider_profiles",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("business_name", sa.String(200), nullable=True),
        sa.Column("service_category", sa.String(100), nullable=False),
        sa.Column("latitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("longitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("neighborhood", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("years_experience", sa.Integer(), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("rating", sa.Numeric(3, 2), nullable=False, server_default="0"),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_provider_profiles_category_active", "provider_profiles",
        ["service_category", "is_active"],
    )
    op.create_index(
        "ix_provider_profiles_city_neighborhood", "provider_profiles",
        ["city", "neighborhood"],
    )

    op.create_table(
        "service_cases",
        _uuid("id", primary_key=True),
        _uuid("customer_id", sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("service_type", sa.String(200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("budget", sa.Numeric(12, 2), nullable=True),
        sa.Column("priority", sa.String(32), nullable=False, server_default="normal"),
        sa.Column("latitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("longitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("neighborhood", sa.String(100), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("bidding_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("bidding_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("search_status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("search_radius_km", sa.Numeric(6, 2), nullable=False, server_default="5"),
        sa.Column("search_started_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("provider_id", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("auto_assigned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_service_cases_search_status", "service_cases", ["search_status"])
    op.create_index("ix_service_cases_status_created", "service_cases", ["status", "created_at"])
    op.create_index("ix_service_cases_provider_created", "service_cases", ["provider_id", "created_at"])

    op.create_table(
        "case_bids",
        _uuid("id", primary_key=True),
        _uuid("case_id", sa.ForeignKey("service_cases.id", ondelete="CASCADE"), nullable=False),
        _uuid("provider_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("proposed_budget_min", sa.Numeric(12, 2), nullable=True),
        sa.Column("proposed_budget_max", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_case_bids_case_id", "case_bids", ["case_id"])
    op.create_index(
        "uq_case_bids_case_provider", "case_bids", ["case_id", "provider_id"], unique=True,
    )

    op.create_table(
        "notifications",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notification_type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data_json", postgresql.JSONB(), nullable=True),
        _uuid("case_id", sa.ForeignKey("service_cases.id", ondelete="CASCADE"), nullable=True),
        sa.Column("dedup_key", sa.String(120), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_case_type", "notifications", ["case_id", "notification_type"])
    op.create_index(
        "ix_notifications_type_created", "notifications", ["notification_type", "created_at"],
    )
    op.create_index(
        "uq_notifications_user_dedup", "notifications", ["user_id", "dedup_key"], unique=True,
    )

    op.create_table(
        "notification_preferences",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("push_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("push_new_cases", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("push_new_bids", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("push_points_subscription", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("notification_preferences")
    op.drop_index("uq_notifications_user_dedup", table_name="notifications")
    op.drop_index("ix_notifications_type_created", table_name="notifications")
    op.drop_index("ix_notifications_case_type", table_name="notifications")
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_case_bids_case_provider", table_name="case_bids")
    op.drop_index("ix_case_bids_case_id", table_name="case_bids")
    op.drop_table("case_bids")
    op.drop_index("ix_service_cases_provider_created", table_name="service_cases")
    op.drop_index("ix_service_cases_status_created", table_name="service_cases")
    op.drop_index("ix_service_cases_search_status", table_name="service_cases")
    op.drop_table("service_cases")
    op.drop_index("ix_provider_profiles_city_neighborhood", table_name="provider_profiles")
    op.drop_index("ix_provider_profiles_category_active", table_name="provider_profiles")
    op.drop_table("provider_profiles")
    op.drop_table("users")
