"""
Provider Scoring Engine
=======================

Scores one provider against one case with a seven-factor weighted model.
Every factor is normalised to 0-100; the composite is the weighted sum,
rounded to two decimals, and therefore also lies in 0-100.

FACTORS (weight):
  categoryMatch      0.25  exact category 100, adjacent category 60, else 0
  locationMatch      0.20  same city+neighbourhood 100, same city 80, else 30
  ratingScore        0.20  star rating plus a review-volume boost
  availabilityScore  0.15  active in the last 24 h 100, else 60
  experienceScore    0.10  step function on years of experience
  priceScore         0.05  step function on hourly rate
  responseTimeScore  0.05  step function on average minutes to accept

A factor that raises degrades to ``NEUTRAL_SCORE`` and is logged; scoring
never aborts for a single bad field.

Response times are not looked up here. ``fetch_response_time_stats`` loads
them for a whole candidate batch in one query and the caller passes each
provider's average into ``score_provider``.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casematch.core.clock import as_utc, utcnow
from casematch.core.config import settings
from casematch.models.case import ServiceCase
from casematch.models.provider import ProviderProfile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringWeights:
    """Immutable factor weights. Must sum to 1.0."""
    category_match: float = 0.25
    location_match: float = 0.20
    rating_score: float = 0.20
    availability_score: float = 0.15
    experience_score: float = 0.10
    price_score: float = 0.05
    response_time_score: float = 0.05

    def __post_init__(self) -> None:
        total = sum(getattr(self, f.name) for f in fields(self))
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.4f}")

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


DEFAULT_WEIGHTS = ScoringWeights()

# Score used when a factor has no data or fails to compute
NEUTRAL_SCORE: float = 50.0


# ---------------------------------------------------------------------------
# Category taxonomy
# ---------------------------------------------------------------------------

CATEGORY_PREFIX = "cat_"

RELATED_CATEGORIES: dict[str, frozenset[str]] = {
    "electrician": frozenset({"handyman"}),
    "plumber": frozenset({"handyman"}),
    "hvac": frozenset({"handyman"}),
    "handyman": frozenset({"electrician", "plumber", "hvac", "carpenter", "painter"}),
}


def normalize_category(category: str | None) -> str:
    """Strip the ``cat_`` namespace prefix and normalise case/whitespace."""
    if not category:
        return ""
    value = category.strip().lower()
    if value.startswith(CATEGORY_PREFIX):
        value = value[len(CATEGORY_PREFIX):]
    return value


def related_categories(category: str | None) -> frozenset[str]:
    return RELATED_CATEGORIES.get(normalize_category(category), frozenset())


def category_variants(categories: Iterable[str]) -> list[str]:
    """Stored spellings (bare and namespaced) for normalised categories."""
    variants: list[str] = []
    for category in categories:
        variants.extend((category, f"{CATEGORY_PREFIX}{category}"))
    return variants


# ---------------------------------------------------------------------------
# Result DTOs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreFactors:
    """The seven factor values for one provider/case pair, each 0-100."""
    category_match: float
    location_match: float
    rating_score: float
    availability_score: float
    experience_score: float
    price_score: float
    response_time_score: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)

    def weighted_total(self, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
        w = weights.as_dict()
        return round(sum(value * w[name] for name, value in self.as_dict().items()), 2)


@dataclass
class ProviderScore:
    """A provider together with its composite score and factor breakdown."""
    provider: Any
    score: float
    factors: ScoreFactors


# ---------------------------------------------------------------------------
# Factor functions
# ---------------------------------------------------------------------------

def calculate_category_match(provider_category: str | None, case_category: str | None) -> float:
    provider_cat = normalize_category(provider_category)
    case_cat = normalize_category(case_category)
    if provider_cat and provider_cat == case_cat:
        return 100.0
    if provider_cat in RELATED_CATEGORIES.get(case_cat, frozenset()):
        return 60.0
    return 0.0


def calculate_location_match(provider: Any, case: Any) -> float:
    if not case.city or not provider.city:
        return 50.0
    if provider.city == case.city and provider.neighborhood == case.neighborhood:
        return 100.0
    if provider.city == case.city:
        return 80.0
    return 30.0


def calculate_rating_score(rating: float | Decimal | None, review_count: int | None) -> float:
    """New providers (no reviews) get a neutral 50 rather than a penalty."""
    if not review_count:
        return 50.0
    base = (float(rating or 0) / 5) * 100
    review_boost = min(review_count * 2, 20)
    return float(min(base + review_boost, 100.0))


def calculate_availability_score(
    last_active_at: datetime | None,
    now: datetime,
    window: timedelta | None = None,
) -> float:
    window = window or timedelta(hours=settings.availability_window_hours)
    last_active = as_utc(last_active_at)
    if last_active is not None and now - last_active <= window:
        return 100.0
    return 60.0


def calculate_experience_score(years: int | None) -> float:
    years = years or 0
    if years >= 10:
        return 100.0
    if years >= 5:
        return 80.0
    if years >= 2:
        return 60.0
    if years >= 1:
        return 40.0
    return 20.0


def calculate_price_score(hourly_rate: float | Decimal | None) -> float:
    rate = float(hourly_rate or 0)
    if rate == 0:
        return 50.0
    if rate <= 30:
        return 100.0
    if rate <= 50:
        return 80.0
    if rate <= 80:
        return 60.0
    return 40.0


def calculate_response_time_score(avg_minutes: float | None) -> float:
    if avg_minutes is None:
        return NEUTRAL_SCORE
    if avg_minutes <= 30:
        return 100.0
    if avg_minutes <= 120:
        return 80.0
    if avg_minutes <= 480:
        return 60.0
    if avg_minutes <= 1440:
        return 40.0
    return 20.0


def _safe_factor(name: str, fn: Callable[..., float], *args: Any) -> float:
    try:
        return fn(*args)
    except Exception:
        logger.warning("Scoring factor %s failed, using neutral score", name, exc_info=True)
        return NEUTRAL_SCORE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def score_provider(
    provider: ProviderProfile,
    case: ServiceCase,
    *,
    response_minutes: Optional[float] = None,
    now: Optional[datetime] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ProviderScore:
    """Score ``provider`` for ``case``.

    Args:
        provider: Provider profile (ORM instance or any object with the
            same attributes).
        case: The case being matched.
        response_minutes: The provider's average minutes-to-accept over the
            response window, or None when there is no history.
        now: Reference time for the availability window.
        weights: Factor weights.

    Returns:
        ProviderScore with the composite score and all seven factors.
    """
    now = now or utcnow()
    factors = ScoreFactors(
        category_match=_safe_factor(
            "category_match", calculate_category_match,
            provider.service_category, case.category,
        ),
        location_match=_safe_factor(
            "location_match", calculate_location_match, provider, case,
        ),
        rating_score=_safe_factor(
            "rating_score", calculate_rating_score,
            provider.rating, provider.review_count,
        ),
        availability_score=_safe_factor(
            "availability_score", calculate_availability_score,
            provider.last_active_at, now,
        ),
        experience_score=_safe_factor(
            "experience_score", calculate_experience_score, provider.years_experience,
        ),
        price_score=_safe_factor(
            "price_score", calculate_price_score, provider.hourly_rate,
        ),
        response_time_score=_safe_factor(
            "response_time_score", calculate_response_time_score, response_minutes,
        ),
    )
    return ProviderScore(
        provider=provider,
        score=factors.weighted_total(weights),
        factors=factors,
    )


async def fetch_response_time_stats(
    db: AsyncSession,
    provider_user_ids: Iterable[uuid.UUID],
    *,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
) -> dict[uuid.UUID, float]:
    """Average minutes from case creation to acceptance, per provider.

    Only cases created within the response window count. Providers with no
    accepted case in the window are absent from the result.
    """
    ids = list(provider_user_ids)
    if not ids:
        return {}

    now = now or utcnow()
    since = now - timedelta(days=window_days or settings.response_time_window_days)

    stmt = select(
        ServiceCase.provider_id,
        ServiceCase.created_at,
        ServiceCase.accepted_at,
    ).where(
        ServiceCase.provider_id.in_(ids),
        ServiceCase.accepted_at.isnot(None),
        ServiceCase.created_at > since,
    )
    rows = (await db.execute(stmt)).all()

    samples: dict[uuid.UUID, list[float]] = defaultdict(list)
    for provider_id, created_at, accepted_at in rows:
        minutes = (as_utc(accepted_at) - as_utc(created_at)).total_seconds() / 60
        samples[provider_id].append(minutes)

    return {pid: sum(values) / len(values) for pid, values in samples.items()}
