"""
Unit tests for ride and request status transitions.
"""
import pytest

from ridematch.services.transitions import (
    REQUEST_TRANSITIONS, RIDE_TRANSITIONS, is_valid_transition, request_guard, request_sources,
)


class TestRideStateMachine:
    def test_scheduled_to_ongoing(self):
        assert is_valid_transition(RIDE_TRANSITIONS, "SCHEDULED", "ONGOING")

    def test_scheduled_to_cancelled(self):
        assert is_valid_transition(RIDE_TRANSITIONS, "SCHEDULED", "CANCELLED")

    def test_ongoing_to_completed(self):
        assert is_valid_transition(RIDE_TRANSITIONS, "ONGOING", "COMPLETED")

    def test_cannot_cancel_ongoing(self):
        assert not is_valid_transition(RIDE_TRANSITIONS, "ONGOING", "CANCELLED")

    def test_cannot_skip_to_completed(self):
        assert not is_valid_transition(RIDE_TRANSITIONS, "SCHEDULED", "COMPLETED")

    def test_terminal_states(self):
        for state in ("COMPLETED", "CANCELLED"):
            assert RIDE_TRANSITIONS[state] == set()

    def test_unknown_state(self):
        assert not is_valid_transition(RIDE_TRANSITIONS, "FLYING", "ONGOING")


class TestRequestStateMachine:
    def test_pending_to_matching(self):
        assert is_valid_transition(REQUEST_TRANSITIONS, "PENDING", "MATCHING")

    def test_matching_released_back_to_pending(self):
        assert is_valid_transition(REQUEST_TRANSITIONS, "MATCHING", "PENDING")

    def test_matching_to_accepted(self):
        assert is_valid_transition(REQUEST_TRANSITIONS, "MATCHING", "ACCEPTED")

    def test_accepted_back_to_pending_on_driver_cancel(self):
        assert is_valid_transition(REQUEST_TRANSITIONS, "ACCEPTED", "PENDING")

    def test_cancelled_is_terminal(self):
        assert not is_valid_transition(REQUEST_TRANSITIONS, "CANCELLED", "PENDING")

    def test_accepted_cannot_be_rebroadcast(self):
        assert not is_valid_transition(REQUEST_TRANSITIONS, "ACCEPTED", "MATCHING")


def _sql(clause) -> str:
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


class TestRequestGuards:
    def test_sources_follow_the_table(self):
        assert request_sources("MATCHING") == ("PENDING",)
        assert request_sources("PENDING") == ("MATCHING", "ACCEPTED")
        assert request_sources("ACCEPTED") == ("PENDING", "MATCHING")
        assert request_sources("CANCELLED") == ("PENDING", "MATCHING", "ACCEPTED")

    def test_guard_narrows_to_workflow_sources(self):
        assert _sql(request_guard("PENDING", only=("MATCHING",))) == "ride_requests.status IN ('MATCHING')"

    def test_guard_defaults_to_every_allowed_source(self):
        assert _sql(request_guard("MATCHING")) == "ride_requests.status IN ('PENDING')"

    def test_guard_rejects_forbidden_source(self):
        with pytest.raises(ValueError):
            request_guard("MATCHING", only=("ACCEPTED",))
        with pytest.raises(ValueError):
            request_guard("PENDING", only=("CANCELLED",))
