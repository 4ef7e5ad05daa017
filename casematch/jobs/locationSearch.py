"""
Location Search -- Periodic Radius Expansion Job.

Notifies providers about new cases in widening geographic rings. Each tick
runs three independent passes:

1. **Initial pass** -- cases in ``active`` with coordinates: alert active
   in-category providers within 5 km, then move to ``active_waiting``.
2. **Expansion pass** -- cases that have waited 10 minutes in
   ``active_waiting``: widen ``search_radius_km`` to 10 and move to
   ``expanded``. Nobody is notified.
3. **Expanded pass** -- cases in ``expanded``: alert providers in the
   5-10 km band, then move to ``completed``.

Every status change goes through ``searchStateMachine.apply_transition``.
Each case is handled in its own session and committed on its own, so a
failing case is logged and counted and the sweep moves on. Providers who
already hold a case alert are skipped, which makes a repeated tick a no-op.

Usage with a simple cron runner::

    python -m casematch.jobs.locationSearch
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casematch.core.clock import utcnow
from casematch.core.config import settings
from casematch.events.notificationEvents import emit_search_status_changed
from casematch.models import CaseStatus, ProviderProfile, SearchStatus, ServiceCase
from casematch.services.dedupGuard import already_notified_for_case
from casematch.services.geoService import ProviderDistance, filter_by_radius
from casematch.services.notificationService import notify_new_case_available
from casematch.services.scoringEngine import category_variants, normalize_category
from casematch.services.searchStateMachine import apply_transition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class LocationSearchResult:
    """Counters for one location search tick."""
    initial_cases: int = 0
    expanded_cases: int = 0
    completed_cases: int = 0
    notifications_sent: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _in_category_providers(
    db: AsyncSession,
    case: ServiceCase,
) -> list[ProviderProfile]:
    """Active providers of the case category that have coordinates."""
    category = normalize_category(case.category)
    stmt = select(ProviderProfile).where(
        ProviderProfile.is_active.is_(True),
        func.lower(ProviderProfile.service_category).in_(category_variants([category])),
        ProviderProfile.user_id != case.customer_id,
        ProviderProfile.latitude.isnot(None),
        ProviderProfile.longitude.isnot(None),
    )
    return list((await db.execute(stmt)).scalars().all())


async def _alert_providers(
    db: AsyncSession,
    case: ServiceCase,
    nearby: list[ProviderDistance],
    now: datetime,
) -> list[uuid.UUID]:
    """Alert every provider in ``nearby`` that has not been alerted yet."""
    candidate_ids = [pd.provider.user_id for pd in nearby]
    already = await already_notified_for_case(db, case.id, candidate_ids)
    fresh = [user_id for user_id in candidate_ids if user_id not in already]
    if not fresh:
        return []
    return await notify_new_case_available(db, case, fresh, now=now)


async def _load_case(
    db: AsyncSession,
    case_id: uuid.UUID,
    search_status: SearchStatus,
) -> ServiceCase | None:
    """Reload a case, or None if another tick already moved it on."""
    stmt = select(ServiceCase).where(
        ServiceCase.id == case_id,
        ServiceCase.status == CaseStatus.PENDING,
        ServiceCase.search_status == search_status,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _for_each_case(
    session_factory: async_sessionmaker[AsyncSession],
    case_ids: list[uuid.UUID],
    handler: Callable[[AsyncSession, uuid.UUID], Awaitable[int]],
    result: LocationSearchResult,
    label: str,
) -> int:
    """Run ``handler`` for each case in its own committed session.

    Returns the number of cases the handler processed.
    """
    processed = 0
    for case_id in case_ids:
        async with session_factory() as db:
            try:
                sent = await handler(db, case_id)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Location search %s pass failed for case %s", label, case_id)
                result.errors += 1
                continue
        if sent < 0:
            continue
        processed += 1
        result.notifications_sent += sent
    return processed


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

async def _initial_pass(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    result: LocationSearchResult,
) -> None:
    radius = settings.initial_search_radius_km

    async with session_factory() as db:
        stmt = select(ServiceCase.id).where(
            ServiceCase.status == CaseStatus.PENDING,
            ServiceCase.search_status == SearchStatus.ACTIVE,
            ServiceCase.latitude.isnot(None),
            ServiceCase.longitude.isnot(None),
        ).order_by(ServiceCase.created_at)
        case_ids = list((await db.execute(stmt)).scalars().all())

    async def handle(db: AsyncSession, case_id: uuid.UUID) -> int:
        case = await _load_case(db, case_id, SearchStatus.ACTIVE)
        if case is None:
            return -1

        providers = await _in_category_providers(db, case)
        nearby = filter_by_radius(
            providers, float(case.latitude), float(case.longitude), radius,
        )
        notified = await _alert_providers(db, case, nearby, now)

        previous = apply_transition(case, SearchStatus.ACTIVE_WAITING)
        case.search_started_at = now
        case.updated_at = now

        logger.info(
            "Case %s: %d providers within %.1f km, %d notified",
            case.id,
            len(nearby),
            radius,
            len(notified),
        )
        emit_search_status_changed(
            case.id, previous.value, case.search_status.value,
            notified_count=len(notified),
        )
        return len(notified)

    result.initial_cases += await _for_each_case(
        session_factory, case_ids, handle, result, "initial",
    )


async def _expansion_pass(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    result: LocationSearchResult,
) -> None:
    expanded_radius = Decimal(str(settings.expanded_search_radius_km))
    gate = now - timedelta(minutes=settings.radius_expansion_delay_minutes)

    async with session_factory() as db:
        stmt = select(ServiceCase.id).where(
            ServiceCase.status == CaseStatus.PENDING,
            ServiceCase.search_status == SearchStatus.ACTIVE_WAITING,
            ServiceCase.search_started_at.isnot(None),
            ServiceCase.search_started_at <= gate,
        ).order_by(ServiceCase.search_started_at)
        case_ids = list((await db.execute(stmt)).scalars().all())

    async def handle(db: AsyncSession, case_id: uuid.UUID) -> int:
        case = await _load_case(db, case_id, SearchStatus.ACTIVE_WAITING)
        if case is None:
            return -1

        previous = apply_transition(case, SearchStatus.EXPANDED)
        case.search_radius_km = expanded_radius
        case.updated_at = now

        logger.info("Case %s: search radius expanded to %s km", case.id, expanded_radius)
        emit_search_status_changed(case.id, previous.value, case.search_status.value)
        return 0

    result.expanded_cases += await _for_each_case(
        session_factory, case_ids, handle, result, "expansion",
    )


async def _expanded_pass(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    result: LocationSearchResult,
) -> None:
    inner = settings.initial_search_radius_km

    async with session_factory() as db:
        stmt = select(ServiceCase.id).where(
            ServiceCase.status == CaseStatus.PENDING,
            ServiceCase.search_status == SearchStatus.EXPANDED,
        ).order_by(ServiceCase.created_at)
        case_ids = list((await db.execute(stmt)).scalars().all())

    async def handle(db: AsyncSession, case_id: uuid.UUID) -> int:
        case = await _load_case(db, case_id, SearchStatus.EXPANDED)
        if case is None:
            return -1

        notified: list[uuid.UUID] = []
        if case.latitude is not None and case.longitude is not None:
            outer = float(case.search_radius_km or settings.expanded_search_radius_km)
            providers = await _in_category_providers(db, case)
            band = filter_by_radius(
                providers,
                float(case.latitude),
                float(case.longitude),
                outer,
                min_distance_km=inner,
            )
            notified = await _alert_providers(db, case, band, now)
            logger.info(
                "Case %s: %d providers in %.1f-%.1f km band, %d notified",
                case.id,
                len(band),
                inner,
                outer,
                len(notified),
            )

        previous = apply_transition(case, SearchStatus.COMPLETED)
        case.updated_at = now

        emit_search_status_changed(
            case.id, previous.value, case.search_status.value,
            notified_count=len(notified),
        )
        return len(notified)

    result.completed_cases += await _for_each_case(
        session_factory, case_ids, handle, result, "expanded",
    )


# ---------------------------------------------------------------------------
# Main job
# ---------------------------------------------------------------------------

async def run_location_search(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    now: Optional[datetime] = None,
) -> LocationSearchResult:
    """Execute one tick of the location search.

    Args:
        session_factory: Session factory to open per-case sessions from.
            Defaults to the application factory.
        now: Reference time override (for testing).

    Returns:
        LocationSearchResult with per-pass counters.
    """
    if session_factory is None:
        from casematch.api.deps import get_session_factory
        session_factory = get_session_factory()
    now = now or utcnow()
    result = LocationSearchResult()

    for label, run_pass in (
        ("initial", _initial_pass),
        ("expansion", _expansion_pass),
        ("expanded", _expanded_pass),
    ):
        try:
            await run_pass(session_factory, now, result)
        except Exception:
            logger.exception("Location search %s pass aborted", label)
            result.errors += 1

    logger.info(
        "Location search completed. Initial: %d, expanded: %d, completed: %d, "
        "notifications: %d, errors: %d.",
        result.initial_cases,
        result.expanded_cases,
        result.completed_cases,
        result.notifications_sent,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    result = await run_location_search()
    print(f"Location search completed: {result}")  # noqa: T201


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    asyncio.run(_cli_main())
