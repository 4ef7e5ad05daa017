"""
Case Search State Manager
=========================

Finite state machine governing the geographic notification sweep of a
case. Every ``search_status`` change MUST go through ``apply_transition``
before being persisted.

State machine overview::

    active --> active_waiting --> expanded --> completed

Each edge is owned by one pass of the location search job:

    active         -> active_waiting   initial 5 km notification pass
    active_waiting -> expanded         expansion gate (10 minutes elapsed)
    expanded       -> completed        5-10 km notification pass

``completed`` is terminal. No edge moves backwards.
"""

from __future__ import annotations

from dataclasses import dataclass

from casematch.models.case import SearchStatus


class InvalidSearchTransition(Exception):
    def __init__(self, current: SearchStatus, target: SearchStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid search status transition: "
            f"'{current.value}' -> '{target.value}'."
        )


# ---------------------------------------------------------------------------
# Transition result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

# Every status is a key so the table is exhaustive.
VALID_TRANSITIONS: dict[SearchStatus, frozenset[SearchStatus]] = {
    SearchStatus.ACTIVE: frozenset({SearchStatus.ACTIVE_WAITING}),
    SearchStatus.ACTIVE_WAITING: frozenset({SearchStatus.EXPANDED}),
    SearchStatus.EXPANDED: frozenset({SearchStatus.COMPLETED}),
    SearchStatus.COMPLETED: frozenset(),
}

TERMINAL_STATES: frozenset[SearchStatus] = frozenset({SearchStatus.COMPLETED})


def validate_transition(
    current: SearchStatus,
    target: SearchStatus,
) -> TransitionResult:
    """Check whether ``current -> target`` is a legal sweep transition."""
    if current in TERMINAL_STATES:
        return TransitionResult(
            allowed=False,
            reason=f"'{current.value}' is terminal.",
        )
    if target not in VALID_TRANSITIONS[current]:
        return TransitionResult(
            allowed=False,
            reason=(
                f"'{current.value}' can only advance to "
                f"{sorted(s.value for s in VALID_TRANSITIONS[current])}."
            ),
        )
    return TransitionResult(allowed=True)


def apply_transition(case, target: SearchStatus) -> SearchStatus:
    """Move ``case.search_status`` to ``target`` or raise.

    Returns the previous status so callers can emit a change event.

    Raises:
        InvalidSearchTransition: If the edge is not in ``VALID_TRANSITIONS``.
    """
    current = SearchStatus(case.search_status)
    result = validate_transition(current, target)
    if not result.allowed:
        raise InvalidSearchTransition(current, target)
    case.search_status = target
    return current
