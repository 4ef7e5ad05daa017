"""
Pydantic v2 schemas for provider match results.

``ProviderMatchOut.from_score`` turns a ``ProviderScore`` from the scoring
engine into a serialisable object for callers that expose the ranking.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from casematch.services.scoringEngine import ProviderScore


class FactorBreakdown(BaseModel):
    """The seven scoring factors, each on a 0-100 scale."""

    model_config = ConfigDict(from_attributes=True)

    category_match: float = Field(ge=0, le=100)
    location_match: float = Field(ge=0, le=100)
    rating_score: float = Field(ge=0, le=100)
    availability_score: float = Field(ge=0, le=100)
    experience_score: float = Field(ge=0, le=100)
    price_score: float = Field(ge=0, le=100)
    response_time_score: float = Field(ge=0, le=100)


class ProviderMatchOut(BaseModel):
    """A single ranked provider with its composite score."""

    model_config = ConfigDict(from_attributes=True)

    provider_id: uuid.UUID
    user_id: uuid.UUID
    business_name: Optional[str] = None
    service_category: str
    rating: Decimal
    review_count: int
    score: float = Field(ge=0, le=100, description="Composite match score (0-100)")
    factors: FactorBreakdown

    @classmethod
    def from_score(cls, scored: ProviderScore) -> "ProviderMatchOut":
        provider = scored.provider
        return cls(
            provider_id=provider.id,
            user_id=provider.user_id,
            business_name=provider.business_name,
            service_category=provider.service_category,
            rating=provider.rating,
            review_count=provider.review_count,
            score=scored.score,
            factors=FactorBreakdown.model_validate(scored.factors),
        )
