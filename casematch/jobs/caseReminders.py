"""
Case Reminders -- Periodic Reminder & New-Case Sweeps.

Four operations share this module:

1. ``run_bid_selection_reminders`` -- customers whose pending case has had
   at least two bids for 24 hours get nudged to pick one, at most once per
   24 hours per case.
2. ``run_points_low_warnings`` -- providers with 1-50 points left are
   warned, at most once per 24 hours.
3. ``run_new_case_notifications`` -- cases opened in the last 6 hours are
   announced to providers with the exact same category, city and
   neighbourhood. This reaches cases without coordinates, which the
   location search never sees.
4. ``notify_matching_providers_for_case`` -- the same exact-match alert for
   one case, triggered by an event (for example a bid being withdrawn),
   minus an explicit list of providers to leave out.

Recurring reminders are deduplicated through a rolling window on the
notification ledger; case alerts share the one-shot ledger key used by the
location search, so a provider is never alerted twice about one case.

Usage with a simple cron runner::

    python -m casematch.jobs.caseReminders
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casematch.core.clock import utcnow
from casematch.core.config import settings
from casematch.models import (
    CaseBid,
    CaseStatus,
    Notification,
    NotificationType,
    ProviderProfile,
    ServiceCase,
    User,
    UserStatus,
)
from casematch.services.dedupGuard import case_alert_exists, recent_notification_exists
from casematch.services.notificationService import (
    notify_bid_selection_reminder,
    notify_new_case_available,
    notify_points_low_warning,
)
from casematch.services.scoringEngine import category_variants, normalize_category

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class SweepResult:
    """Counters for one reminder sweep."""
    examined: int = 0
    notified: int = 0
    errors: int = 0


def _resolve_factory(
    session_factory: Optional[async_sessionmaker[AsyncSession]],
) -> async_sessionmaker[AsyncSession]:
    if session_factory is not None:
        return session_factory
    from casematch.api.deps import get_session_factory
    return get_session_factory()


# ---------------------------------------------------------------------------
# Exact-match provider lookup
# ---------------------------------------------------------------------------

async def _exact_match_provider_ids(
    db: AsyncSession,
    case: ServiceCase,
    excluded_provider_ids: Iterable[uuid.UUID] = (),
) -> list[uuid.UUID]:
    """Provider user ids sharing the case's category, city and neighbourhood
    that have not been alerted about the case yet."""
    if not case.city or not case.neighborhood:
        return []

    category = normalize_category(case.category)
    stmt = (
        select(ProviderProfile.user_id)
        .where(
            ProviderProfile.is_active.is_(True),
            func.lower(ProviderProfile.service_category).in_(category_variants([category])),
            ProviderProfile.city == case.city,
            ProviderProfile.neighborhood.isnot(None),
            ProviderProfile.neighborhood == case.neighborhood,
            ProviderProfile.user_id != case.customer_id,
            ~case_alert_exists(ProviderProfile.user_id, case.id),
        )
        .order_by(ProviderProfile.user_id)
    )
    excluded = set(excluded_provider_ids)
    if excluded:
        stmt = stmt.where(ProviderProfile.user_id.notin_(excluded))

    return list(dict.fromkeys((await db.execute(stmt)).scalars().all()))


# ---------------------------------------------------------------------------
# Bid selection reminders
# ---------------------------------------------------------------------------

async def run_bid_selection_reminders(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    now: Optional[datetime] = None,
) -> SweepResult:
    """Remind customers to choose among the bids on their pending cases."""
    factory = _resolve_factory(session_factory)
    now = now or utcnow()
    since = now - timedelta(hours=settings.reminder_window_hours)
    created_before = now - timedelta(hours=settings.bid_reminder_case_age_hours)
    result = SweepResult()

    bid_count = (
        select(func.count(CaseBid.id))
        .where(CaseBid.case_id == ServiceCase.id)
        .correlate(ServiceCase)
        .scalar_subquery()
    )

    try:
        async with factory() as db:
            stmt = select(
                ServiceCase.id,
                ServiceCase.customer_id,
                bid_count.label("bid_count"),
            ).where(
                ServiceCase.status == CaseStatus.PENDING,
                ServiceCase.bidding_closed.is_(False),
                ServiceCase.created_at <= created_before,
                bid_count >= settings.bid_reminder_min_bids,
                ~recent_notification_exists(
                    Notification.user_id == ServiceCase.customer_id,
                    NotificationType.BID_SELECTION_REMINDER,
                    since,
                    case_id=ServiceCase.id,
                ),
            )
            rows = (await db.execute(stmt)).all()
    except Exception:
        logger.exception("Bid selection reminder query failed")
        result.errors += 1
        return result

    for case_id, customer_id, count in rows:
        result.examined += 1
        async with factory() as db:
            try:
                await notify_bid_selection_reminder(db, case_id, customer_id, count, now=now)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Failed to send bid selection reminder for case %s", case_id)
                result.errors += 1
                continue
        result.notified += 1
        logger.info(
            "Sent bid selection reminder for case %s to customer %s (%d bids)",
            case_id,
            customer_id,
            count,
        )

    logger.info(
        "Bid selection reminders completed. Sent: %d, errors: %d.",
        result.notified,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# Low points warnings
# ---------------------------------------------------------------------------

async def run_points_low_warnings(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    now: Optional[datetime] = None,
) -> SweepResult:
    """Warn providers whose points balance is positive but at or below the
    threshold."""
    factory = _resolve_factory(session_factory)
    now = now or utcnow()
    since = now - timedelta(hours=settings.reminder_window_hours)
    threshold = settings.points_low_threshold
    result = SweepResult()

    try:
        async with factory() as db:
            stmt = (
                select(User.id, User.points_balance)
                .join(ProviderProfile, ProviderProfile.user_id == User.id)
                .where(
                    User.status == UserStatus.ACTIVE,
                    User.points_balance > 0,
                    User.points_balance <= threshold,
                    ~recent_notification_exists(
                        Notification.user_id == User.id,
                        NotificationType.POINTS_LOW_WARNING,
                        since,
                    ),
                )
            )
            rows = (await db.execute(stmt)).all()
    except Exception:
        logger.exception("Low points warning query failed")
        result.errors += 1
        return result

    for user_id, balance in rows:
        result.examined += 1
        async with factory() as db:
            try:
                await notify_points_low_warning(db, user_id, balance, threshold, now=now)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Failed to send points warning to user %s", user_id)
                result.errors += 1
                continue
        result.notified += 1
        logger.info("Sent points low warning to user %s with %d points", user_id, balance)

    logger.info(
        "Low points warnings completed. Sent: %d, errors: %d.",
        result.notified,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# New case sweep
# ---------------------------------------------------------------------------

async def run_new_case_notifications(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    now: Optional[datetime] = None,
) -> SweepResult:
    """Announce recently opened cases to exact-match providers."""
    factory = _resolve_factory(session_factory)
    now = now or utcnow()
    created_after = now - timedelta(hours=settings.new_case_lookback_hours)
    result = SweepResult()

    try:
        async with factory() as db:
            stmt = select(ServiceCase.id).where(
                ServiceCase.status == CaseStatus.PENDING,
                ServiceCase.bidding_enabled.is_(True),
                ServiceCase.bidding_closed.is_(False),
                ServiceCase.created_at >= created_after,
                ServiceCase.neighborhood.isnot(None),
            ).order_by(ServiceCase.created_at)
            case_ids = list((await db.execute(stmt)).scalars().all())
    except Exception:
        logger.exception("New case sweep query failed")
        result.errors += 1
        return result

    for case_id in case_ids:
        result.examined += 1
        async with factory() as db:
            try:
                case = await db.get(ServiceCase, case_id)
                if case is None:
                    continue
                provider_ids = await _exact_match_provider_ids(db, case)
                notified = await notify_new_case_available(db, case, provider_ids, now=now)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("New case sweep failed for case %s", case_id)
                result.errors += 1
                continue
        if notified:
            logger.info("Case %s: notified %d matching providers", case_id, len(notified))
        result.notified += len(notified)

    logger.info(
        "New case sweep completed. Cases: %d, notified: %d, errors: %d.",
        result.examined,
        result.notified,
        result.errors,
    )
    return result


async def notify_matching_providers_for_case(
    session_factory: Optional[async_sessionmaker[AsyncSession]],
    case_id: uuid.UUID,
    excluded_provider_ids: Iterable[uuid.UUID] = (),
    *,
    now: Optional[datetime] = None,
) -> list[uuid.UUID]:
    """Alert exact-match providers about one case.

    Args:
        session_factory: Session factory, or None for the application one.
        case_id: The case to announce.
        excluded_provider_ids: Provider user ids that must not be alerted.
        now: Reference time override (for testing).

    Returns:
        The user ids that were notified. Empty when the case is missing,
        no longer open for bidding, or has no unalerted match.
    """
    factory = _resolve_factory(session_factory)
    excluded = list(excluded_provider_ids)
    logger.info(
        "Finding matching providers for case %s (excluding %d providers)",
        case_id,
        len(excluded),
    )

    async with factory() as db:
        try:
            stmt = select(ServiceCase).where(
                ServiceCase.id == case_id,
                ServiceCase.status == CaseStatus.PENDING,
                ServiceCase.bidding_enabled.is_(True),
                ServiceCase.bidding_closed.is_(False),
            )
            case = (await db.execute(stmt)).scalar_one_or_none()
            if case is None:
                logger.info("Case %s is not open for bidding, nobody notified", case_id)
                return []

            provider_ids = await _exact_match_provider_ids(db, case, excluded)
            notified = await notify_new_case_available(db, case, provider_ids, now=now)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Failed to notify matching providers for case %s", case_id)
            return []

    logger.info("Case %s: notified %d matching providers", case_id, len(notified))
    return notified


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    for job in (
        run_new_case_notifications,
        run_bid_selection_reminders,
        run_points_low_warnings,
    ):
        result = await job()
        print(f"{job.__name__}: {result}")  # noqa: T201


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    asyncio.run(_cli_main())
