"""
Status transition tables for rides and ride requests.

Ride changes go through `is_valid_transition` on the loaded row. Request
changes are bulk conditional UPDATEs, so their WHERE clause comes from
`request_guard`, which only admits source statuses the table allows.
"""
from typing import Iterable

from ridematch.models.ride_request import RideRequest

RIDE_TRANSITIONS: dict[str, set[str]] = {
    "SCHEDULED": {"ONGOING", "CANCELLED"},
    "ONGOING": {"COMPLETED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}

REQUEST_TRANSITIONS: dict[str, set[str]] = {
    "PENDING": {"MATCHING", "ACCEPTED", "CANCELLED"},
    "MATCHING": {"PENDING", "ACCEPTED", "CANCELLED"},
    # back to PENDING when the driver cancels the ride
    "ACCEPTED": {"PENDING", "CANCELLED"},
    "CANCELLED": set(),
}


def is_valid_transition(table: dict[str, set[str]], current: str, next_state: str) -> bool:
    return next_state in table.get(current, set())


def request_sources(target: str) -> tuple[str, ...]:
    """Request statuses that may move to `target`, in table order."""
    return tuple(source for source, targets in REQUEST_TRANSITIONS.items() if target in targets)


def request_guard(target: str, only: Iterable[str] | None = None):
    """
    WHERE clause for an UPDATE moving requests to `target`.

    `only` narrows the allowed sources for a particular workflow; naming a
    source the table forbids is a programming error and raises ValueError.
    """
    sources = request_sources(target)
    if only is not None:
        wanted = tuple(only)
        illegal = [status for status in wanted if status not in sources]
        if illegal:
            raise ValueError(f"Request cannot go from {', '.join(illegal)} to {target}")
        sources = wanted
    return RideRequest.status.in_(sources)
