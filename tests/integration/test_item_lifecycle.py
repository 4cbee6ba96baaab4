"""
Integration tests for item creation, lookup, deletion and suspension.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from study_scheduler.db.models import ReviewEvent
from study_scheduler.enums.scheduling import ContentType, ItemStatus
from study_scheduler.errors import AuthorizationError, NotFoundError, ValidationError
from study_scheduler.services.scheduling import SchedulingParameters, SchedulingService

pytestmark = pytest.mark.integration

OWNER = "user-1"
OTHER_OWNER = "user-2"


async def _event_count(session, item_id: str) -> int:
    result = await session.execute(
        select(func.count(ReviewEvent.id)).where(ReviewEvent.item_id == item_id)
    )
    return result.scalar()


class TestCreateItem:
    """Tests for create_item."""

    @pytest.mark.asyncio
    async def test_initial_state(self, service, t0):
        """Test new items are LEARNING, default ease and due immediately."""
        item = await service.create_item(OWNER, "card-1", scope="deck-1", now=t0)

        assert item.status == ItemStatus.LEARNING
        assert item.ease_factor == 2.5
        assert (item.interval_days, item.repetitions, item.lapses) == (0, 0, 0)
        assert item.next_review_at == t0
        assert item.last_reviewed_at is None
        assert item.content_type == ContentType.FLASHCARD
        assert item.scope == "deck-1"

    @pytest.mark.asyncio
    async def test_round_trip_exact_timestamps(self, service, session_maker, t0):
        """Test a fresh session reads back identical aware timestamps."""
        created = await service.create_item(
            OWNER, "q-9", content_type=ContentType.QUESTION, notes="ch. 3", now=t0
        )

        async with session_maker() as other:
            loaded = await SchedulingService(other).get_item(created.id, OWNER)

        assert loaded == created
        assert loaded.next_review_at.tzinfo is not None
        assert loaded.next_review_at.microsecond == 123456

    @pytest.mark.asyncio
    async def test_idempotent(self, service, t0):
        """Test attaching the same content twice returns the same item."""
        first = await service.create_item(OWNER, "card-1", now=t0)
        second = await service.create_item(OWNER, "card-1", now=t0 + timedelta(days=1))

        assert second.id == first.id
        assert second.next_review_at == t0

    @pytest.mark.asyncio
    async def test_same_content_different_type_or_owner(self, service, t0):
        """Test uniqueness is per owner and content type."""
        a = await service.create_item(OWNER, "ref-1", now=t0)
        b = await service.create_item(
            OWNER, "ref-1", content_type=ContentType.ERROR_NOTEBOOK_ENTRY, now=t0
        )
        c = await service.create_item(OTHER_OWNER, "ref-1", now=t0)

        assert len({a.id, b.id, c.id}) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("owner_id,content_ref", [("", "card-1"), (OWNER, "  ")])
    async def test_missing_identifiers(self, service, owner_id, content_ref):
        """Test blank identifiers are rejected."""
        with pytest.raises(ValidationError):
            await service.create_item(owner_id, content_ref)


class TestGetItem:
    """Tests for item lookup."""

    @pytest.mark.asyncio
    async def test_not_found(self, service):
        """Test unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.get_item("missing", OWNER)

    @pytest.mark.asyncio
    async def test_other_owner(self, service, t0):
        """Test items are invisible to other owners."""
        item = await service.create_item(OWNER, "card-1", now=t0)

        with pytest.raises(AuthorizationError):
            await service.get_item(item.id, OTHER_OWNER)

    @pytest.mark.asyncio
    async def test_by_content(self, service, t0):
        """Test lookup through the content reference."""
        item = await service.create_item(OWNER, "card-1", now=t0)

        assert (await service.get_item_by_content(OWNER, "card-1")).id == item.id
        assert await service.get_item_by_content(OWNER, "card-2") is None
        assert (
            await service.get_item_by_content(OWNER, "card-1", ContentType.QUESTION)
            is None
        )


class TestListItems:
    """Tests for list_items."""

    @pytest.mark.asyncio
    async def test_filters(self, service, t0):
        """Test status, type and scope filters."""
        a = await service.create_item(OWNER, "a", scope="deck-1", now=t0)
        b = await service.create_item(
            OWNER, "b", content_type=ContentType.QUESTION, scope="deck-2", now=t0
        )
        c = await service.create_item(OWNER, "c", scope="deck-1", now=t0)
        await service.create_item(OTHER_OWNER, "d", scope="deck-1", now=t0)
        await service.set_suspended(c.id, OWNER, True, now=t0)

        all_items = await service.list_items(OWNER)
        assert {i.id for i in all_items} == {a.id, b.id, c.id}
        # Suspended items have no due date and sort last
        assert all_items[-1].id == c.id

        deck_1 = await service.list_items(OWNER, scope="deck-1")
        assert {i.id for i in deck_1} == {a.id, c.id}

        questions = await service.list_items(OWNER, content_type=ContentType.QUESTION)
        assert [i.id for i in questions] == [b.id]

        suspended = await service.list_items(OWNER, status=ItemStatus.SUSPENDED)
        assert [i.id for i in suspended] == [c.id]

    @pytest.mark.asyncio
    async def test_paging(self, service, t0):
        """Test limit and offset."""
        for n in range(5):
            await service.create_item(OWNER, f"card-{n}", now=t0 + timedelta(minutes=n))

        page = await service.list_items(OWNER, limit=2, offset=2)
        assert [i.content_ref for i in page] == ["card-2", "card-3"]

    @pytest.mark.asyncio
    async def test_invalid_paging(self, service):
        """Test non-positive limits are rejected."""
        with pytest.raises(ValidationError):
            await service.list_items(OWNER, limit=0)


class TestDeleteItem:
    """Tests for item deletion."""

    @pytest.mark.asyncio
    async def test_keeps_history_by_default(self, service, db_session, t0):
        """Test deleting an item retains its review events."""
        item = await service.create_item(OWNER, "card-1", now=t0)
        await service.record_review(item.id, OWNER, 5, occurred_at=t0)

        assert await service.delete_item(item.id, OWNER) is True

        with pytest.raises(NotFoundError):
            await service.get_item(item.id, OWNER)
        assert await _event_count(db_session, item.id) == 1

    @pytest.mark.asyncio
    async def test_purge_history(self, service, db_session, t0):
        """Test purge_history removes the events too."""
        item = await service.create_item(OWNER, "card-1", now=t0)
        await service.record_review(item.id, OWNER, 5, occurred_at=t0)

        await service.delete_item(item.id, purge_history=True)

        assert await _event_count(db_session, item.id) == 0

    @pytest.mark.asyncio
    async def test_missing(self, service):
        """Test deleting an unknown item raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.delete_item("missing")

    @pytest.mark.asyncio
    async def test_wrong_owner(self, service, t0):
        """Test an owner cannot delete another owner's item."""
        item = await service.create_item(OWNER, "card-1", now=t0)

        with pytest.raises(AuthorizationError):
            await service.delete_item(item.id, OTHER_OWNER)
        assert (await service.get_item(item.id, OWNER)).id == item.id

    @pytest.mark.asyncio
    async def test_for_content(self, service, t0):
        """Test removing content deletes every owner's item for it."""
        await service.create_item(OWNER, "shared", now=t0)
        await service.create_item(OTHER_OWNER, "shared", now=t0)
        await service.create_item(
            OWNER, "shared", content_type=ContentType.QUESTION, now=t0
        )
        keep = await service.create_item(OWNER, "other", now=t0)

        deleted = await service.delete_items_for_content(
            "shared", content_type=ContentType.FLASHCARD
        )

        assert deleted == 2
        remaining = await service.list_items(OWNER)
        assert {i.id for i in remaining} == {
            keep.id,
            (await service.get_item_by_content(OWNER, "shared", ContentType.QUESTION)).id,
        }
        assert await service.delete_items_for_content("nothing") == 0


class TestSuspend:
    """Tests for set_suspended."""

    @pytest.mark.asyncio
    async def test_suspend_and_restore(self, service, t0):
        """Test the suspend/unsuspend round trip."""
        item = await service.create_item(OWNER, "card-1", now=t0)
        await service.record_review(item.id, OWNER, 5, occurred_at=t0)

        suspended = await service.set_suspended(item.id, OWNER, True, now=t0)
        assert suspended.status == ItemStatus.SUSPENDED
        assert suspended.next_review_at is None

        later = t0 + timedelta(days=30)
        restored = await service.set_suspended(item.id, OWNER, False, now=later)
        assert restored.status == ItemStatus.REVIEWING
        assert restored.next_review_at == later
        assert restored.repetitions == 1

    @pytest.mark.asyncio
    async def test_idempotent(self, service, t0):
        """Test toggling to the current state changes nothing."""
        item = await service.create_item(OWNER, "card-1", now=t0)

        unchanged = await service.set_suspended(
            item.id, OWNER, False, now=t0 + timedelta(days=1)
        )
        assert unchanged == item

        once = await service.set_suspended(item.id, OWNER, True, now=t0)
        twice = await service.set_suspended(
            item.id, OWNER, True, now=t0 + timedelta(days=1)
        )
        assert twice == once

    @pytest.mark.asyncio
    async def test_wrong_owner(self, service, t0):
        """Test only the owner can suspend."""
        item = await service.create_item(OWNER, "card-1", now=t0)

        with pytest.raises(AuthorizationError):
            await service.set_suspended(item.id, OTHER_OWNER, True)


class TestResetItem:
    """Tests for reset_item."""

    @pytest.mark.asyncio
    async def test_back_to_initial_state(self, service, db_session, t0):
        """Test a reset item looks new and is due immediately."""
        item = await service.create_item(OWNER, "card-1", now=t0)
        for days, quality in ((0, 5), (1, 5), (7, 2), (7, 5), (8, 5), (14, 5)):
            await service.record_review(
                item.id, OWNER, quality, occurred_at=t0 + timedelta(days=days)
            )
        progressed = await service.get_item(item.id, OWNER)
        assert progressed.status == ItemStatus.MASTERED

        reset_at = t0 + timedelta(days=20)
        reset = await service.reset_item(item.id, OWNER, now=reset_at)

        assert reset.status == ItemStatus.LEARNING
        assert reset.ease_factor == 2.5
        assert (reset.interval_days, reset.repetitions) == (0, 0)
        assert (reset.fail_streak, reset.is_leech) == (0, False)
        assert reset.next_review_at == reset_at
        # History of past reviews is kept
        assert reset.lapses == 1
        assert reset.last_reviewed_at == progressed.last_reviewed_at
        assert await _event_count(db_session, item.id) == 6

        page = await service.list_due_items(OWNER, as_of=reset_at)
        assert [i.id for i in page.items] == [item.id]

        result = await service.record_review(item.id, OWNER, 5, occurred_at=reset_at)
        assert result.item.interval_days == 1
        assert result.event.status_before == ItemStatus.LEARNING

    @pytest.mark.asyncio
    async def test_clears_leech(self, db_session, t0):
        """Test a reset removes the leech flag."""
        service = SchedulingService(db_session, SchedulingParameters(leech_threshold=1))
        item = await service.create_item(OWNER, "card-1", now=t0)
        assert (await service.record_review(item.id, OWNER, 0, occurred_at=t0)).item.is_leech

        reset = await service.reset_item(item.id, OWNER, now=t0)

        assert reset.is_leech is False
        assert reset.fail_streak == 0

    @pytest.mark.asyncio
    async def test_suspended_item(self, service, t0):
        """Test resetting a suspended item puts it back in the queue."""
        item = await service.create_item(OWNER, "card-1", now=t0)
        await service.set_suspended(item.id, OWNER, True, now=t0)

        reset = await service.reset_item(item.id, OWNER, now=t0)

        assert reset.status == ItemStatus.LEARNING
        assert (await service.list_due_items(OWNER, as_of=t0)).total_due == 1

    @pytest.mark.asyncio
    async def test_wrong_owner(self, service, t0):
        """Test only the owner can reset."""
        item = await service.create_item(OWNER, "card-1", now=t0)

        with pytest.raises(AuthorizationError):
            await service.reset_item(item.id, OTHER_OWNER)

    @pytest.mark.asyncio
    async def test_missing(self, service):
        """Test resetting an unknown item raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.reset_item("missing", OWNER)
