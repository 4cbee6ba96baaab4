"""
Unit tests for the item state machine.
"""

from datetime import datetime, timezone

import pytest

from study_scheduler.db.models import SchedulableItem
from study_scheduler.enums.scheduling import ItemStatus
from study_scheduler.errors import ConflictError
from study_scheduler.services.scheduling import state_machine
from study_scheduler.services.scheduling.calculator import (
    NextState,
    SchedulingParameters,
)


def _result(repetitions: int, interval_days: int = 1, is_lapse: bool = False) -> NextState:
    return NextState(
        ease_factor=2.5,
        interval_days=interval_days,
        repetitions=repetitions,
        is_lapse=is_lapse,
    )


def _item(status: ItemStatus, **kwargs) -> SchedulableItem:
    return SchedulableItem(
        id="item-1",
        owner_id="user-1",
        content_type="FLASHCARD",
        content_ref="card-1",
        status=status.value,
        next_review_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
        **kwargs,
    )


class TestNextStatus:
    """Tests for status transitions after a review."""

    def test_initial_status(self):
        """Test new items start in LEARNING."""
        assert state_machine.INITIAL_STATUS == ItemStatus.LEARNING

    def test_learning_to_reviewing(self, params):
        """Test the first success promotes a learning item."""
        status = state_machine.next_status(ItemStatus.LEARNING, _result(1), params)
        assert status == ItemStatus.REVIEWING

    def test_reviewing_stays_below_threshold(self, params):
        """Test REVIEWING holds until the mastery repetitions."""
        status = state_machine.next_status(ItemStatus.REVIEWING, _result(2, 6), params)
        assert status == ItemStatus.REVIEWING

    def test_reviewing_to_mastered(self, params):
        """Test the third consecutive success masters the item."""
        status = state_machine.next_status(ItemStatus.REVIEWING, _result(3, 17), params)
        assert status == ItemStatus.MASTERED

    def test_mastered_stays_mastered(self, params):
        """Test further successes keep MASTERED."""
        status = state_machine.next_status(ItemStatus.MASTERED, _result(4, 40), params)
        assert status == ItemStatus.MASTERED

    @pytest.mark.parametrize(
        "current",
        [ItemStatus.LEARNING, ItemStatus.REVIEWING, ItemStatus.MASTERED],
    )
    def test_lapse_returns_to_learning(self, params, current):
        """Test a lapse sends any reviewable item back to LEARNING."""
        status = state_machine.next_status(current, _result(0, 0, True), params)
        assert status == ItemStatus.LEARNING

    def test_suspended_cannot_be_reviewed(self, params):
        """Test reviewing a suspended item is a conflict."""
        with pytest.raises(ConflictError):
            state_machine.next_status(ItemStatus.SUSPENDED, _result(1), params)

    def test_mastery_min_interval(self):
        """Test the optional interval requirement delays mastery."""
        params = SchedulingParameters(mastery_min_interval_days=21)
        short = state_machine.next_status(ItemStatus.REVIEWING, _result(3, 17), params)
        long = state_machine.next_status(ItemStatus.REVIEWING, _result(4, 48), params)
        assert short == ItemStatus.REVIEWING
        assert long == ItemStatus.MASTERED

    def test_accepts_raw_status_string(self, params):
        """Test persisted string values are accepted."""
        status = state_machine.next_status("LEARNING", _result(1), params)
        assert status == ItemStatus.REVIEWING


class TestSuspendToggle:
    """Tests for suspend and unsuspend."""

    def test_suspend_records_previous_status(self):
        """Test suspending remembers the status and clears the due date."""
        item = _item(ItemStatus.REVIEWING)
        assert state_machine.suspend(item) is True
        assert item.status == ItemStatus.SUSPENDED.value
        assert item.suspended_from_status == ItemStatus.REVIEWING.value
        assert item.next_review_at is None

    def test_suspend_is_idempotent(self):
        """Test suspending twice keeps the original previous status."""
        item = _item(ItemStatus.MASTERED)
        state_machine.suspend(item)
        assert state_machine.suspend(item) is False
        assert item.suspended_from_status == ItemStatus.MASTERED.value

    def test_unsuspend_restores_status(self):
        """Test unsuspending restores the status and makes the item due."""
        now = datetime(2026, 2, 1, tzinfo=timezone.utc)
        item = _item(ItemStatus.MASTERED)
        state_machine.suspend(item)

        assert state_machine.unsuspend(item, now) is True
        assert item.status == ItemStatus.MASTERED.value
        assert item.suspended_from_status is None
        assert item.next_review_at == now

    def test_unsuspend_active_item_is_noop(self):
        """Test unsuspending an active item changes nothing."""
        item = _item(ItemStatus.LEARNING)
        due = item.next_review_at
        assert state_machine.unsuspend(item, datetime.now(timezone.utc)) is False
        assert item.status == ItemStatus.LEARNING.value
        assert item.next_review_at == due

    def test_unsuspend_without_record_falls_back(self):
        """Test items suspended without a recorded status resume LEARNING."""
        item = _item(ItemStatus.SUSPENDED, suspended_from_status=None)
        state_machine.unsuspend(item, datetime.now(timezone.utc))
        assert item.status == ItemStatus.LEARNING.value


class TestReset:
    """Tests for the progress reset helper."""

    def test_restores_initial_state(self, params):
        """Test a mastered leech goes back to a fresh learning item."""
        now = datetime(2026, 2, 1, tzinfo=timezone.utc)
        item = _item(
            ItemStatus.MASTERED,
            ease_factor=1.9,
            interval_days=40,
            repetitions=5,
            lapses=9,
            fail_streak=8,
            is_leech=True,
        )

        state_machine.reset(item, params, now)

        assert item.status == ItemStatus.LEARNING.value
        assert item.ease_factor == params.default_ease_factor
        assert (item.interval_days, item.repetitions) == (0, 0)
        assert (item.fail_streak, item.is_leech) == (0, False)
        assert item.next_review_at == now
        assert item.lapses == 9

    def test_unsuspends(self, params):
        """Test resetting a suspended item makes it reviewable again."""
        now = datetime(2026, 2, 1, tzinfo=timezone.utc)
        item = _item(ItemStatus.REVIEWING)
        state_machine.suspend(item)

        state_machine.reset(item, params, now)

        assert item.status == ItemStatus.LEARNING.value
        assert item.suspended_from_status is None
        assert item.next_review_at == now
