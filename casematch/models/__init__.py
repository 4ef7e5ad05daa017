"""
casematch SQLAlchemy Models
===========================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from casematch.models import Base, ServiceCase, ProviderProfile
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Users --
from .user import User, UserStatus

# -- Providers --
from .provider import ProviderProfile

# -- Cases & Bids --
from .case import (
    BidStatus,
    CaseBid,
    CasePriority,
    CaseStatus,
    SearchStatus,
    ServiceCase,
)

# -- Notifications --
from .notification import (
    CASE_ALERT_TYPES,
    Notification,
    NotificationPreference,
    NotificationType,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Users
    "User",
    "UserStatus",
    # Providers
    "ProviderProfile",
    # Cases
    "ServiceCase",
    "CaseStatus",
    "CasePriority",
    "SearchStatus",
    "CaseBid",
    "BidStatus",
    # Notifications
    "CASE_ALERT_TYPES",
    "Notification",
    "NotificationType",
    "NotificationPreference",
]
