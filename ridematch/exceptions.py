"""Domain errors raised by the matching engine."""


class MatchingError(Exception):
    """Base class; `status_code` is what the HTTP layer answers with."""
    status_code = 400
    default_detail = "Matching error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class RequestUnavailable(MatchingError):
    """Raised when a ride request is missing or no longer pending."""
    status_code = 409
    default_detail = "Request not available"


class NoValidRequests(MatchingError):
    """Raised when none of the grouped request ids can still be accepted."""
    status_code = 422
    default_detail = "No valid requests to accept"


class HeterogeneousGroup(MatchingError):
    """Raised when grouped requests do not share one junction pair or pool a chartered booking."""
    status_code = 422
    default_detail = "Grouped requests must share the same route"


class ScheduleNotFound(MatchingError):
    status_code = 404
    default_detail = "Schedule not found"


class ScheduleNotAllowed(MatchingError):
    """Raised when a driver may not post a schedule (non-KEKE, unknown, blocked)."""
    status_code = 403
    default_detail = "Only KEKE drivers can create schedules"


class CapacityExceeded(MatchingError):
    """Raised when a seat allocation would overflow a ride or schedule."""
    status_code = 409
    default_detail = "Not enough seats available"


class AlreadyBooked(MatchingError):
    status_code = 409
    default_detail = "Passenger already booked on this ride"


class RideNotFound(MatchingError):
    status_code = 404
    default_detail = "Ride not found"


class InvalidRideState(MatchingError):
    status_code = 409
    default_detail = "Ride is not in a valid state for this operation"


class InvalidShortCode(MatchingError):
    status_code = 403
    default_detail = "Invalid code"


class PersistenceFailure(MatchingError):
    """Raised when a transaction could not commit. Safe to retry."""
    status_code = 503
    default_detail = "Storage unavailable"
