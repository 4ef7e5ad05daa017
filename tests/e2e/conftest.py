"""
E2E test fixtures for casematch.

Provides:
- An async SQLite database (file-backed, one per test) with the full schema
- An ``async_sessionmaker`` for the jobs, which open one session per case
- A ``seed`` helper for inserting users, providers, cases, bids and
  notifications, plus a few read-back helpers

All timestamps are pinned to ``T0`` so that the time-gated jobs can be
driven with explicit ``now`` overrides.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from casematch.models import (
    Base,
    CaseBid,
    CasePriority,
    CaseStatus,
    Notification,
    NotificationType,
    ProviderProfile,
    SearchStatus,
    ServiceCase,
    User,
    UserStatus,
)
from casematch.services.geoService import EARTH_RADIUS_KM

# Fixed reference time for every e2e scenario
T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

# Case location used by the geographic scenarios
ORIGIN_LAT = 45.5
ORIGIN_LON = -73.6

_KM_PER_DEGREE_LAT = EARTH_RADIUS_KM * math.pi / 180


def north_of_origin(km: float) -> tuple[float, float]:
    """Coordinates ``km`` kilometres due north of the origin."""
    return round(ORIGIN_LAT + km / _KM_PER_DEGREE_LAT, 7), ORIGIN_LON


# ---------------------------------------------------------------------------
# Async engine + session factory (file-backed SQLite)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh database per test; jobs need several concurrent connections."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'casematch.db'}", echo=False,
    )

    # SQLite does not enforce foreign keys by default
    @event.listens_for(test_engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


class Seeder:
    """Inserts domain rows, each in its own committed session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _add(self, *objects: Any) -> None:
        async with self._session_factory() as db:
            db.add_all(objects)
            await db.commit()

    async def user(
        self,
        *,
        points_balance: int = 0,
        status: UserStatus = UserStatus.ACTIVE,
        first_name: str = "Test",
    ) -> User:
        user_id = uuid.uuid4()
        user = User(
            id=user_id,
            email=f"{user_id.hex[:12]}@example.com",
            first_name=first_name,
            last_name="User",
            status=status,
            points_balance=points_balance,
            created_at=T0,
            updated_at=T0,
        )
        await self._add(user)
        return user

    async def provider(
        self,
        *,
        category: str = "plumber",
        location: Optional[tuple[float, float]] = None,
        city: Optional[str] = "Montreal",
        neighborhood: Optional[str] = "Plateau",
        is_active: bool = True,
        rating: str = "4.50",
        review_count: int = 3,
        years_experience: Optional[int] = 5,
        hourly_rate: Optional[str] = "45.00",
        last_active_at: Optional[datetime] = T0,
        points_balance: int = 100,
        user: Optional[User] = None,
    ) -> ProviderProfile:
        owner = user or await self.user(points_balance=points_balance, first_name="Provider")
        profile = ProviderProfile(
            id=uuid.uuid4(),
            user_id=owner.id,
            business_name=f"{category.title()} Co",
            service_category=category,
            latitude=Decimal(str(location[0])) if location else None,
            longitude=Decimal(str(location[1])) if location else None,
            city=city,
            neighborhood=neighborhood,
            is_active=is_active,
            years_experience=years_experience,
            hourly_rate=Decimal(hourly_rate) if hourly_rate is not None else None,
            rating=Decimal(rating),
            review_count=review_count,
            last_active_at=last_active_at,
            created_at=T0,
            updated_at=T0,
        )
        await self._add(profile)
        return profile

    async def case(
        self,
        *,
        customer: Optional[User] = None,
        category: str = "cat_plumber",
        location: Optional[tuple[float, float]] = (ORIGIN_LAT, ORIGIN_LON),
        city: Optional[str] = "Montreal",
        neighborhood: Optional[str] = "Plateau",
        created_at: datetime = T0,
        status: CaseStatus = CaseStatus.PENDING,
        search_status: SearchStatus = SearchStatus.ACTIVE,
        search_started_at: Optional[datetime] = None,
        bidding_enabled: bool = True,
        bidding_closed: bool = False,
        provider_id: Optional[uuid.UUID] = None,
        accepted_at: Optional[datetime] = None,
    ) -> ServiceCase:
        owner = customer or await self.user(first_name="Customer")
        case = ServiceCase(
            id=uuid.uuid4(),
            customer_id=owner.id,
            category=category,
            service_type="Leaking pipe",
            budget=Decimal("200.00"),
            priority=CasePriority.HIGH,
            latitude=Decimal(str(location[0])) if location else None,
            longitude=Decimal(str(location[1])) if location else None,
            address="123 Rue Saint-Denis",
            city=city,
            neighborhood=neighborhood,
            status=status,
            bidding_enabled=bidding_enabled,
            bidding_closed=bidding_closed,
            search_status=search_status,
            search_radius_km=Decimal("5"),
            search_started_at=search_started_at,
            provider_id=provider_id,
            accepted_at=accepted_at,
            created_at=created_at,
            updated_at=created_at,
        )
        await self._add(case)
        return case

    async def bid(self, case: ServiceCase, provider: ProviderProfile) -> CaseBid:
        bid = CaseBid(
            id=uuid.uuid4(),
            case_id=case.id,
            provider_id=provider.user_id,
            proposed_budget_min=Decimal("150.00"),
            proposed_budget_max=Decimal("220.00"),
            created_at=T0,
            updated_at=T0,
        )
        await self._add(bid)
        return bid

    async def notification(
        self,
        user_id: uuid.UUID,
        notification_type: NotificationType,
        *,
        case_id: Optional[uuid.UUID] = None,
        created_at: datetime = T0,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4(),
            user_id=user_id,
            notification_type=notification_type,
            title="Earlier notification",
            message="Sent by an earlier run",
            data_json={"caseId": str(case_id)} if case_id else None,
            case_id=case_id,
            created_at=created_at,
            updated_at=created_at,
        )
        await self._add(notification)
        return notification

    # -- Read-back helpers --

    async def notifications(
        self,
        *,
        user_id: Optional[uuid.UUID] = None,
        notification_type: Optional[NotificationType] = None,
        case_id: Optional[uuid.UUID] = None,
    ) -> list[Notification]:
        stmt = select(Notification).order_by(Notification.created_at)
        if user_id is not None:
            stmt = stmt.where(Notification.user_id == user_id)
        if notification_type is not None:
            stmt = stmt.where(Notification.notification_type == notification_type)
        if case_id is not None:
            stmt = stmt.where(Notification.case_id == case_id)
        async with self._session_factory() as db:
            return list((await db.execute(stmt)).scalars().all())

    async def recipients(self, case_id: uuid.UUID) -> set[uuid.UUID]:
        return {n.user_id for n in await self.notifications(case_id=case_id)}

    async def reload_case(self, case_id: uuid.UUID) -> ServiceCase:
        async with self._session_factory() as db:
            return await db.get(ServiceCase, case_id)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def north_of():
    return north_of_origin
