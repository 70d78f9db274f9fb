"""Tests for the arbitration engine: shared access, lease lifecycle, queueing and promotion"""

import threading

import pytest

from conflict_arbiter.arbitration.engine import ArbitrationEngine
from conflict_arbiter.arbitration.models import FailureReason, LeaseState
from conflict_arbiter.core.config import ArbiterConfig, PriorityStrategy
from conflict_arbiter.core.constants import QUEUED_NOTICE, READ_TOKEN_PREFIX, TOKEN_ALPHABET, TOKEN_LENGTH
from conflict_arbiter.core.exceptions import ConfigurationError


class TestInvalidArguments:
    """Requests missing required parameters are rejected"""

    @pytest.mark.parametrize(
        "object_id, action, operator_id",
        [
            (None, "edit", "userA"),
            ("obj1", None, "userA"),
            ("obj1", "edit", None),
            ("", "edit", "userA"),
            ("obj1", "", "userA"),
            ("obj1", "edit", ""),
        ],
    )
    def test_missing_parameter_is_invalid_argument(self, engine, object_id, action, operator_id):
        result = engine.operate(object_id, action, None, operator_id)

        assert result.allowed is False
        assert result.error is FailureReason.INVALID_ARGUMENT
        assert result.reason == "parameters must not be empty"
        assert result.token is None
        assert result.wait_position is None

    def test_invalid_request_does_not_create_object(self, engine):
        engine.operate("obj1", None, None, "userA")
        assert engine.inspect("obj1") is None


class TestExclusiveAccess:
    """Acquire, refresh and queue behavior of the exclusive path"""

    def test_first_request_acquires_lease(self, engine):
        result = engine.operate("obj1", "edit", None, "userA")

        assert result.allowed is True
        assert result.token is not None
        assert len(result.token) == TOKEN_LENGTH
        assert all(char in TOKEN_ALPHABET for char in result.token)
        assert result.reason is None
        assert result.wait_position is None

        snapshot = engine.inspect("obj1")
        assert snapshot.lease_state is LeaseState.HELD
        assert snapshot.owner_id == "userA"
        assert snapshot.action == "edit"

    def test_refresh_with_token_keeps_token(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token

        result = engine.operate("obj1", "save", token, "userA")

        assert result.allowed is True
        assert result.token == token
        assert engine.inspect("obj1").action == "save"

    def test_refresh_resets_hold_time(self, engine, clock):
        token = engine.operate("obj1", "edit", None, "userA").token
        clock.advance(20)
        assert engine.operate("obj1", "edit", token, "userA").allowed is True
        clock.advance(20)

        # 40s since acquisition, 20s since the refresh: still held.
        result = engine.operate("obj1", "edit", token, "userA")
        assert result.allowed is True
        assert result.token == token

    def test_refresh_by_other_operator_with_correct_token(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token

        result = engine.operate("obj1", "edit", token, "userB")

        assert result.allowed is True
        assert result.token == token

    def test_second_operator_is_queued(self, engine):
        engine.operate("obj1", "edit", None, "userA")

        result = engine.operate("obj1", "edit", None, "userB")

        assert result.allowed is False
        assert result.token is None
        assert result.reason == QUEUED_NOTICE
        assert result.wait_position == 1
        assert result.error is None
        assert result.queued is True

    def test_wrong_token_is_queued(self, engine):
        engine.operate("obj1", "edit", None, "userA")

        result = engine.operate("obj1", "edit", "INVALID_TOKEN", "userB")

        assert result.allowed is False
        assert result.wait_position == 1

    def test_holder_without_token_is_queued(self, engine):
        engine.operate("obj1", "edit", None, "userA")

        result = engine.operate("obj1", "edit", None, "userA")

        assert result.allowed is False
        assert result.wait_position == 1

    def test_stale_token_on_free_object_is_queued(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "exit", token, "userA")

        result = engine.operate("obj1", "edit", token, "userA")

        assert result.allowed is False
        assert result.wait_position == 1

    def test_action_matching_is_case_insensitive(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token

        assert engine.operate("obj1", "READ", None, "userB").token.startswith(READ_TOKEN_PREFIX)
        assert engine.operate("obj1", "Exit", token, "userA").allowed is True
        assert engine.inspect("obj1").lease_state is LeaseState.FREE

    def test_different_objects_are_independent(self, engine):
        first = engine.operate("obj1", "edit", None, "userA")
        second = engine.operate("obj2", "edit", None, "userB")

        assert first.allowed is True
        assert second.allowed is True
        assert sorted(engine.object_ids()) == ["obj1", "obj2"]


class TestRelease:
    """Exit handling for exclusive leases"""

    def test_exit_releases_lease(self, engine):
        token = engine.operate("obj1", "edit", None, "user1").token

        result = engine.operate("obj1", "exit", token, "user1")

        assert result.allowed is True
        assert result.token is None
        assert engine.inspect("obj1").lease_state is LeaseState.FREE

        next_result = engine.operate("obj1", "edit", None, "user2")
        assert next_result.allowed is True
        assert next_result.token != token

    def test_exit_unknown_object_is_not_found(self, engine):
        result = engine.operate("never-seen", "exit", "ABCDEFGHIJ", "user1")

        assert result.allowed is False
        assert result.error is FailureReason.NOT_FOUND
        assert result.reason == "object does not exist"
        assert engine.inspect("never-seen") is None

    def test_exit_without_lease_is_not_locked(self, engine):
        token = engine.operate("obj1", "edit", None, "user1").token
        engine.operate("obj1", "exit", token, "user1")

        result = engine.operate("obj1", "exit", token, "user1")

        assert result.allowed is False
        assert result.error is FailureReason.NOT_LOCKED
        assert result.reason == "object is not locked"

    def test_exit_with_wrong_token_keeps_lease(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token

        result = engine.operate("obj1", "exit", "WRONGTOKEN", "userA")

        assert result.allowed is False
        assert result.error is FailureReason.TOKEN_MISMATCH
        assert result.reason == "token does not match"
        assert engine.inspect("obj1").lease_state is LeaseState.HELD
        assert engine.operate("obj1", "edit", token, "userA").token == token

    def test_exit_without_token_is_token_mismatch(self, engine):
        engine.operate("obj1", "edit", None, "userA")

        result = engine.operate("obj1", "exit", None, "userA")

        assert result.error is FailureReason.TOKEN_MISMATCH
        assert engine.inspect("obj1").lease_state is LeaseState.HELD


class TestSharedAccess:
    """Read requests never block and never get blocked"""

    def test_reads_are_always_granted(self, engine):
        results = [engine.operate("obj1", "read", None, f"user{i}") for i in range(3)]

        assert all(result.allowed for result in results)
        assert all(result.token.startswith(READ_TOKEN_PREFIX) for result in results)
        assert engine.inspect("obj1").read_count == 3

    def test_read_ignores_supplied_token(self, engine):
        result = engine.operate("obj1", "read", "WHATEVER", "user1")

        assert result.allowed is True
        assert result.token.startswith(READ_TOKEN_PREFIX)

    def test_read_while_lease_held_and_write_while_reading(self, engine):
        write = engine.operate("obj1", "edit", None, "user1")
        read = engine.operate("obj1", "read", None, "user2")
        other_write = engine.operate("obj1", "edit", None, "user3")

        assert write.allowed is True
        assert read.allowed is True
        assert other_write.allowed is False

        engine2_read = engine.operate("obj2", "read", None, "user2")
        engine2_write = engine.operate("obj2", "edit", None, "user3")
        assert engine2_read.allowed is True
        assert engine2_write.allowed is True

    def test_exit_with_read_token_decrements_count(self, engine):
        first = engine.operate("obj1", "read", None, "user1").token
        engine.operate("obj1", "read", None, "user2")

        result = engine.operate("obj1", "exit", first, "user1")

        assert result.allowed is True
        assert result.token is None
        assert engine.inspect("obj1").read_count == 1

    def test_read_exit_never_goes_negative(self, engine):
        token = engine.operate("obj1", "read", None, "user1").token
        engine.operate("obj1", "exit", token, "user1")

        result = engine.operate("obj1", "exit", token, "user1")

        assert result.allowed is True
        assert engine.inspect("obj1").read_count == 0

    def test_read_exit_leaves_lease_alone(self, engine):
        lease_token = engine.operate("obj1", "edit", None, "userA").token
        read_token = engine.operate("obj1", "read", None, "userB").token

        engine.operate("obj1", "exit", read_token, "userB")

        assert engine.inspect("obj1").lease_state is LeaseState.HELD
        assert engine.operate("obj1", "edit", lease_token, "userA").allowed is True


class TestWaitingQueue:
    """Queue bounds and purging of timed-out entries"""

    def test_queue_bound_rejects_overflow(self, make_engine):
        engine = make_engine(max_queue_size=2)
        engine.operate("obj1", "edit", None, "userA")

        assert engine.operate("obj1", "edit", None, "userB").wait_position == 1
        assert engine.operate("obj1", "edit", None, "userC").wait_position == 2
        result = engine.operate("obj1", "edit", None, "userD")

        assert result.allowed is False
        assert result.error is FailureReason.QUEUE_FULL
        assert result.reason == "waiting queue is full"
        assert result.wait_position is None
        assert engine.inspect("obj1").waiting_operators == ("userB", "userC")

    def test_default_queue_holds_five(self, engine):
        engine.operate("obj1", "edit", None, "holder")
        positions = [engine.operate("obj1", "edit", None, f"user{i}").wait_position for i in range(5)]

        assert positions == [1, 2, 3, 4, 5]
        assert engine.operate("obj1", "edit", None, "user5").error is FailureReason.QUEUE_FULL

    def test_timed_out_entries_are_purged_before_admission(self, make_engine, clock):
        engine = make_engine(max_queue_size=1, lease_max_hold_seconds=1000, max_queue_wait_seconds=10)
        engine.operate("obj1", "edit", None, "userA")
        assert engine.operate("obj1", "edit", None, "userB").wait_position == 1

        clock.advance(11)
        result = engine.operate("obj1", "edit", None, "userC")

        assert result.wait_position == 1
        assert engine.inspect("obj1").waiting_operators == ("userC",)

    def test_timed_out_entries_are_not_promoted(self, make_engine, clock):
        engine = make_engine(lease_max_hold_seconds=1000, max_queue_wait_seconds=10)
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")

        clock.advance(11)
        engine.operate("obj1", "exit", token, "userA")

        snapshot = engine.inspect("obj1")
        assert snapshot.lease_state is LeaseState.FREE
        assert snapshot.waiting_operators == ()
        assert engine.operate("obj1", "edit", None, "userB").allowed is True


class TestPromotionAndClaim:
    """Pending-claim handoff after release or expiry"""

    def test_release_promotes_queue_head_to_pending_claim(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")

        engine.operate("obj1", "exit", token, "userA")

        snapshot = engine.inspect("obj1")
        assert snapshot.lease_state is LeaseState.PENDING_CLAIM
        assert snapshot.owner_id == "userB"
        assert snapshot.waiting_operators == ()

    def test_promoted_operator_claims_without_token(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")
        engine.operate("obj1", "exit", token, "userA")

        claim = engine.operate("obj1", "edit", None, "userB")

        assert claim.allowed is True
        assert claim.token is not None
        assert claim.token != token
        assert engine.inspect("obj1").lease_state is LeaseState.HELD
        assert engine.operate("obj1", "save", claim.token, "userB").token == claim.token

    def test_other_operator_cannot_claim(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")
        engine.operate("obj1", "exit", token, "userA")

        result = engine.operate("obj1", "edit", None, "userC")

        assert result.allowed is False
        assert result.wait_position == 1
        assert engine.inspect("obj1").lease_state is LeaseState.PENDING_CLAIM

    def test_claim_requires_absent_token(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")
        engine.operate("obj1", "exit", token, "userA")

        result = engine.operate("obj1", "edit", "SOMETOKEN1", "userB")

        assert result.allowed is False
        assert result.wait_position == 1

    def test_second_claim_attempt_after_confirmation_is_queued(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")
        engine.operate("obj1", "exit", token, "userA")
        engine.operate("obj1", "edit", None, "userB")

        result = engine.operate("obj1", "edit", None, "userB")

        assert result.allowed is False
        assert result.wait_position == 1

    def test_fifo_promotes_in_arrival_order(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "view", None, "userB")
        engine.operate("obj1", "edit", None, "userC")

        engine.operate("obj1", "exit", token, "userA")

        snapshot = engine.inspect("obj1")
        assert snapshot.owner_id == "userB"
        assert snapshot.action == "view"
        assert snapshot.waiting_operators == ("userC",)

    def test_same_action_first_bypasses_queue_order(self, engine):
        engine.set_priority_strategy(PriorityStrategy.SAME_ACTION_FIRST)
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "view", None, "userB")
        engine.operate("obj1", "edit", None, "userC")

        engine.operate("obj1", "exit", token, "userA")

        snapshot = engine.inspect("obj1")
        assert snapshot.owner_id == "userC"
        assert snapshot.waiting_operators == ("userB",)

    def test_same_action_first_uses_last_refreshed_action(self, engine):
        engine.set_priority_strategy("same_action_first")
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")
        engine.operate("obj1", "save", None, "userC")
        engine.operate("obj1", "save", token, "userA")

        engine.operate("obj1", "exit", token, "userA")

        assert engine.inspect("obj1").owner_id == "userC"

    def test_same_action_first_falls_back_to_head(self, engine):
        engine.set_priority_strategy(PriorityStrategy.SAME_ACTION_FIRST)
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "view", None, "userB")
        engine.operate("obj1", "print", None, "userC")

        engine.operate("obj1", "exit", token, "userA")

        assert engine.inspect("obj1").owner_id == "userB"

    def test_strategy_swap_applies_to_next_promotion(self, engine):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "view", None, "userB")
        engine.operate("obj1", "edit", None, "userC")

        engine.set_priority_strategy(PriorityStrategy.SAME_ACTION_FIRST)
        assert engine.config.priority_strategy is PriorityStrategy.SAME_ACTION_FIRST
        engine.operate("obj1", "exit", token, "userA")

        assert engine.inspect("obj1").owner_id == "userC"

    def test_unknown_strategy_is_rejected(self, engine):
        with pytest.raises(ConfigurationError):
            engine.set_priority_strategy("random")
        assert engine.config.priority_strategy is PriorityStrategy.FIFO


class TestExpiry:
    """Passive lease expiry detected by the next operation on the object"""

    def test_lease_survives_exactly_hold_time(self, engine, clock):
        token = engine.operate("obj1", "edit", None, "userA").token
        clock.advance(30)

        assert engine.operate("obj1", "edit", token, "userA").allowed is True

    def test_expired_lease_is_released_for_next_requester(self, engine, clock):
        token = engine.operate("obj1", "edit", None, "userA").token
        clock.advance(31)

        result = engine.operate("obj1", "edit", None, "userB")

        assert result.allowed is True
        assert result.token != token
        assert engine.inspect("obj1").owner_id == "userB"

    def test_expired_token_no_longer_refreshes(self, engine, clock):
        token = engine.operate("obj1", "edit", None, "userA").token
        clock.advance(31)

        result = engine.operate("obj1", "edit", token, "userA")

        assert result.allowed is False
        assert result.wait_position == 1

    def test_unrelated_read_triggers_expiry_and_promotion(self, engine, clock):
        engine.operate("obj1", "edit", None, "userA")
        engine.operate("obj1", "edit", None, "userB")
        clock.advance(31)

        assert engine.inspect("obj1").lease_state is LeaseState.EXPIRED
        engine.operate("obj1", "read", None, "reader")

        snapshot = engine.inspect("obj1")
        assert snapshot.lease_state is LeaseState.PENDING_CLAIM
        assert snapshot.owner_id == "userB"
        assert engine.operate("obj1", "edit", None, "userB").allowed is True

    def test_unclaimed_pending_lease_expires_to_next_waiter(self, engine, clock):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.operate("obj1", "edit", None, "userB")
        engine.operate("obj1", "edit", None, "userC")
        engine.operate("obj1", "exit", token, "userA")
        clock.advance(31)

        # userB never confirmed; the next waiter is promoted and may claim at once.
        result = engine.operate("obj1", "edit", None, "userC")

        assert result.allowed is True
        assert engine.inspect("obj1").owner_id == "userC"

    def test_hold_time_change_applies_to_existing_lease(self, engine, clock):
        token = engine.operate("obj1", "edit", None, "userA").token
        engine.set_configuration(5, 5, 300)
        clock.advance(6)

        assert engine.operate("obj1", "edit", token, "userA").allowed is False


class TestConfiguration:
    """Runtime configuration changes"""

    def test_queue_size_applies_to_new_objects_only(self, engine):
        engine.operate("old", "edit", None, "holder")
        engine.set_configuration(1, 30, 300)
        engine.operate("new", "edit", None, "holder")

        assert engine.operate("old", "edit", None, "u1").wait_position == 1
        assert engine.operate("old", "edit", None, "u2").wait_position == 2
        assert engine.operate("new", "edit", None, "u1").wait_position == 1
        assert engine.operate("new", "edit", None, "u2").error is FailureReason.QUEUE_FULL
        assert engine.inspect("old").max_queue_size == 5
        assert engine.inspect("new").max_queue_size == 1

    @pytest.mark.parametrize(
        "max_queue_size, hold, wait",
        [(0, 30, 300), (5, 0, 300), (5, 30, -1), (-3, 30, 300)],
    )
    def test_invalid_configuration_is_rejected(self, engine, max_queue_size, hold, wait):
        with pytest.raises(ConfigurationError):
            engine.set_configuration(max_queue_size, hold, wait)

        assert engine.config.max_queue_size == 5
        assert engine.config.lease_max_hold_seconds == 30.0

    def test_config_property_returns_copy(self, engine):
        config = engine.config
        config.max_queue_size = 99

        assert engine.config.max_queue_size == 5

    def test_engine_copies_initial_config(self, clock):
        config = ArbiterConfig(max_queue_size=3)
        engine = ArbitrationEngine(config, clock=clock)
        config.max_queue_size = 10

        assert engine.config.max_queue_size == 3


class TestEndToEnd:
    """Acquire, refresh, queue, release and claim on one object"""

    def test_full_handoff_scenario(self, engine):
        first = engine.operate("obj1", "edit", None, "A")
        assert first.allowed is True
        token = first.token
        assert token

        refreshed = engine.operate("obj1", "save", token, "A")
        assert refreshed.allowed is True
        assert refreshed.token == token

        queued = engine.operate("obj1", "edit", None, "B")
        assert queued.allowed is False
        assert queued.wait_position == 1

        released = engine.operate("obj1", "exit", token, "A")
        assert released.allowed is True
        assert engine.inspect("obj1").lease_state is LeaseState.PENDING_CLAIM

        claimed = engine.operate("obj1", "edit", None, "B")
        assert claimed.allowed is True
        assert claimed.token


class TestConcurrency:
    """Parallel callers against the same object"""

    def test_only_one_concurrent_acquirer_wins(self):
        engine = ArbitrationEngine(ArbiterConfig(max_queue_size=100))
        barrier = threading.Barrier(20)
        results = {}

        def _request(operator_id: str) -> None:
            barrier.wait()
            results[operator_id] = engine.operate("shared", "edit", None, operator_id)

        threads = [threading.Thread(target=_request, args=(f"op{i}",)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        granted = [op for op, result in results.items() if result.allowed]
        queued = sorted(result.wait_position for result in results.values() if not result.allowed)
        assert len(granted) == 1
        assert queued == list(range(1, 20))
        assert engine.inspect("shared").owner_id == granted[0]

    def test_concurrent_reads_all_succeed(self, engine):
        engine.operate("shared", "edit", None, "writer")
        barrier = threading.Barrier(25)
        outcomes = []
        outcomes_lock = threading.Lock()

        def _read(index: int) -> None:
            barrier.wait()
            result = engine.operate("shared", "read", None, f"reader{index}")
            with outcomes_lock:
                outcomes.append(result.allowed)

        threads = [threading.Thread(target=_read, args=(i,)) for i in range(25)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert outcomes == [True] * 25
        assert engine.inspect("shared").read_count == 25
