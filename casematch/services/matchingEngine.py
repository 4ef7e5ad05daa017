"""
Provider Matching Engine
========================

On-demand matching for a single case. Finds every provider eligible for
the case's category, scores them with the seven-factor model and ranks
them best-first.

ELIGIBILITY (must pass ALL):
  - Provider profile ``is_active``
  - Provider category equals the case category or is adjacent to it,
    ignoring the ``cat_`` namespace prefix on either side
  - Provider is not the customer who opened the case

Key functions:
  - find_best_providers -- query -> batch response stats -> score -> rank
  - auto_assign_case    -- assign the top-ranked provider to a pending case
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from casematch.algorithms.providerRanking import rank_providers
from casematch.core.clock import utcnow
from casematch.events.notificationEvents import emit_case_auto_assigned
from casematch.models.case import CaseStatus, ServiceCase
from casematch.models.provider import ProviderProfile
from casematch.services.notificationService import notify_case_assigned
from casematch.services.scoringEngine import (
    ProviderScore,
    category_variants,
    fetch_response_time_stats,
    normalize_category,
    related_categories,
    score_provider,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CaseNotFoundError(Exception):
    def __init__(self, case_id: uuid.UUID) -> None:
        self.case_id = case_id
        super().__init__(f"Case with id '{case_id}' not found.")


class AssignmentError(Exception):
    def __init__(self, case_id: uuid.UUID, message: str) -> None:
        self.case_id = case_id
        super().__init__(message)


# ---------------------------------------------------------------------------
# Candidate query
# ---------------------------------------------------------------------------

async def _eligible_providers(
    db: AsyncSession,
    case: ServiceCase,
) -> list[ProviderProfile]:
    """Active providers in the case category or an adjacent one."""
    category = normalize_category(case.category)
    if not category:
        return []

    variants = category_variants({category} | related_categories(category))
    stmt = select(ProviderProfile).where(
        ProviderProfile.is_active.is_(True),
        func.lower(ProviderProfile.service_category).in_(variants),
        ProviderProfile.user_id != case.customer_id,
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def find_best_providers(
    db: AsyncSession,
    case: ServiceCase,
    limit: int = 10,
    *,
    now: Optional[datetime] = None,
) -> list[ProviderScore]:
    """Rank the providers eligible for ``case``.

    Args:
        db: Async database session.
        case: The case to match providers against.
        limit: Maximum number of providers to return.
        now: Reference time for the availability and response windows.

    Returns:
        Up to ``limit`` ProviderScore objects, best first. An empty list
        when no provider is eligible.

    Raises:
        ValueError: If ``limit`` is smaller than 1.
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    now = now or utcnow()
    providers = await _eligible_providers(db, case)
    if not providers:
        logger.info("Matching for case %s: no eligible providers", case.id)
        return []

    try:
        response_stats = await fetch_response_time_stats(
            db, [p.user_id for p in providers], now=now,
        )
    except Exception:
        logger.warning(
            "Response time lookup failed for case %s, scoring without it",
            case.id,
            exc_info=True,
        )
        response_stats = {}

    scored = [
        score_provider(
            provider,
            case,
            response_minutes=response_stats.get(provider.user_id),
            now=now,
        )
        for provider in providers
    ]
    ranked = rank_providers(scored, limit)

    logger.info(
        "Matching for case %s (category=%s): evaluated=%d, returned=%d, top=%.2f",
        case.id,
        case.category,
        len(scored),
        len(ranked),
        ranked[0].score,
    )
    return ranked


async def auto_assign_case(
    db: AsyncSession,
    case_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
) -> uuid.UUID | None:
    """Assign the best-scoring provider to a pending case.

    The case moves to ``wip`` with ``provider_id`` set and ``auto_assigned``
    flagged. The update only applies while the case is still pending and
    unassigned, so two concurrent calls cannot both assign it.

    Returns:
        The assigned provider's user id, or None if no provider qualifies.

    Raises:
        CaseNotFoundError: If the case does not exist.
        AssignmentError: If the case is no longer pending or already has a
            provider.
    """
    now = now or utcnow()
    case = (
        await db.execute(select(ServiceCase).where(ServiceCase.id == case_id))
    ).scalar_one_or_none()
    if case is None:
        raise CaseNotFoundError(case_id)

    top = await find_best_providers(db, case, 1, now=now)
    if not top:
        logger.warning("No suitable providers found for auto-assignment of case %s", case_id)
        return None

    best = top[0]
    provider_user_id = best.provider.user_id

    stmt = (
        update(ServiceCase)
        .where(
            ServiceCase.id == case_id,
            ServiceCase.status == CaseStatus.PENDING,
            ServiceCase.provider_id.is_(None),
        )
        .values(
            status=CaseStatus.WIP,
            provider_id=provider_user_id,
            auto_assigned=True,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise AssignmentError(
            case_id,
            f"Case '{case_id}' is no longer pending or already has a provider.",
        )

    await db.refresh(case)
    await notify_case_assigned(db, case, provider_user_id, score=best.score)
    emit_case_auto_assigned(case_id, provider_user_id, best.score)

    logger.info(
        "Case %s auto-assigned to provider %s (score=%.2f)",
        case_id,
        provider_user_id,
        best.score,
    )
    return provider_user_id
