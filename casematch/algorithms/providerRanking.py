"""
Provider Ranking Algorithm
==========================

Orders scored provider candidates for a case and cuts the list to the
requested size. Scoring itself lives in ``services.scoringEngine``; this
module only decides the order.

The ordering is deterministic: given the same inputs it always produces
the same ranking. Ties on the composite score are broken by

  1. cached rating, descending
  2. review count, descending
  3. provider id, ascending
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence

from casematch.services.scoringEngine import ProviderScore


def _tie_break_key(scored: ProviderScore) -> tuple[float, float, int, str]:
    provider: Any = scored.provider
    rating = provider.rating if provider.rating is not None else Decimal("0")
    return (
        -scored.score,
        -float(rating),
        -(provider.review_count or 0),
        str(provider.id),
    )


def rank_providers(
    scored: Sequence[ProviderScore],
    limit: int | None = None,
) -> list[ProviderScore]:
    """Sort scored candidates best-first and keep at most ``limit``.

    Args:
        scored: Output of ``score_provider`` for each eligible provider.
        limit: Maximum number of results, or None for all of them.

    Returns:
        A new list; ``scored`` is left untouched.

    Raises:
        ValueError: If ``limit`` is given and smaller than 1.
    """
    if limit is not None and limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    ranked = sorted(scored, key=_tie_break_key)
    if limit is not None:
        ranked = ranked[:limit]
    return ranked
