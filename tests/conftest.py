"""
Shared pytest fixtures for casematch unit tests.

Provides a mock database session and sample domain objects that mirror the
production ORM models without requiring a live database connection.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from casematch.models.case import CasePriority, CaseStatus, SearchStatus, ServiceCase
from casematch.models.provider import ProviderProfile
from casematch.models.user import User, UserStatus

REFERENCE_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Supports ``db.execute()``, ``db.add()``, ``db.flush()``, ``db.commit()``,
    ``db.refresh()`` and ``async with db.begin_nested()`` out of the box.
    Individual tests configure ``mock_db.execute.return_value`` or
    ``side_effect`` to control results.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock()
    session.begin_nested.return_value.__aenter__ = AsyncMock(return_value=None)
    session.begin_nested.return_value.__aexit__ = AsyncMock(return_value=False)
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    return session


def make_result(*, rows=None, scalars=None, scalar=None, rowcount=None) -> MagicMock:
    """Build a mock ``Result`` for ``db.execute`` to return."""
    result = MagicMock()
    result.all.return_value = rows or []
    result.scalars.return_value.all.return_value = scalars or []
    result.scalar_one_or_none.return_value = scalar
    result.scalar.return_value = scalar
    if rowcount is not None:
        result.rowcount = rowcount
    return result


# ---------------------------------------------------------------------------
# User fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_customer() -> User:
    user = MagicMock(spec=User)
    user.id = uuid.uuid4()
    user.email = "customer@example.com"
    user.first_name = "Jane"
    user.last_name = "Doe"
    user.status = UserStatus.ACTIVE
    user.points_balance = 0
    return user


@pytest.fixture
def sample_provider_user() -> User:
    user = MagicMock(spec=User)
    user.id = uuid.uuid4()
    user.email = "provider@example.com"
    user.first_name = "John"
    user.last_name = "Smith"
    user.status = UserStatus.ACTIVE
    user.points_balance = 120
    return user


# ---------------------------------------------------------------------------
# Provider profile fixtures
# ---------------------------------------------------------------------------


def build_provider(**overrides) -> ProviderProfile:
    """A MagicMock provider profile with sensible defaults."""
    profile = MagicMock(spec=ProviderProfile)
    profile.id = overrides.pop("id", uuid.uuid4())
    profile.user_id = overrides.pop("user_id", uuid.uuid4())
    profile.business_name = "Smith Plumbing"
    profile.service_category = "plumber"
    profile.latitude = Decimal("45.5017000")
    profile.longitude = Decimal("-73.5673000")
    profile.city = "Montreal"
    profile.neighborhood = "Plateau"
    profile.is_active = True
    profile.years_experience = 6
    profile.hourly_rate = Decimal("45.00")
    profile.rating = Decimal("4.50")
    profile.review_count = 3
    profile.last_active_at = REFERENCE_NOW - timedelta(hours=2)
    for key, value in overrides.items():
        setattr(profile, key, value)
    return profile


@pytest.fixture
def sample_provider(sample_provider_user: User) -> ProviderProfile:
    """An active plumber in the same neighbourhood as ``sample_case``."""
    return build_provider(user_id=sample_provider_user.id)


# ---------------------------------------------------------------------------
# Case fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_case(sample_customer: User) -> ServiceCase:
    """A pending plumbing case at the start of its location search."""
    case = MagicMock(spec=ServiceCase)
    case.id = uuid.uuid4()
    case.customer_id = sample_customer.id
    case.category = "cat_plumber"
    case.service_type = "Leaking faucet"
    case.budget = Decimal("150.00")
    case.priority = CasePriority.NORMAL
    case.latitude = Decimal("45.5017000")
    case.longitude = Decimal("-73.5673000")
    case.address = "123 Rue Saint-Denis"
    case.city = "Montreal"
    case.neighborhood = "Plateau"
    case.status = CaseStatus.PENDING
    case.bidding_enabled = True
    case.bidding_closed = False
    case.search_status = SearchStatus.ACTIVE
    case.search_radius_km = Decimal("5")
    case.search_started_at = None
    case.provider_id = None
    case.auto_assigned = False
    case.location_label = "123 Rue Saint-Denis"
    case.created_at = REFERENCE_NOW - timedelta(minutes=5)
    return case


@pytest.fixture
def provider_factory():
    return build_provider


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def reference_now() -> datetime:
    return REFERENCE_NOW
