"""
Tests for the audience service facade: statistics and display-count recalculation.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from app.models.segment import Segment
from app.services.audience import AudienceService
from app.services.audience.errors import StoreError
from tests.factories import NOW, InactiveSubscriberFactory, LocationConditionFactory


@pytest.mark.asyncio
class TestStatistics:
    async def test_statistics(self, test_db, merchant, other_merchant, add_subscribers, add_segment):
        await add_subscribers(merchant, 9)
        await add_subscribers(merchant, 2, factory=InactiveSubscriberFactory)
        await add_subscribers(other_merchant, 5)
        await add_segment(merchant, [], name="Everyone")
        await add_segment(merchant, [LocationConditionFactory()], name="Canada")
        await add_segment(merchant, [], name="Paused", is_active=False)
        await add_segment(merchant, [], name="Deleted", deleted_at=NOW)
        await add_segment(other_merchant, [], name="Elsewhere")

        stats = await AudienceService(test_db, merchant.id).statistics()

        assert stats.total_segments == 3
        assert stats.active_segments == 2
        assert stats.total_subscribers == 9
        assert stats.average_subscribers_per_segment == 3

    async def test_statistics_without_segments(self, test_db, merchant):
        stats = await AudienceService(test_db, merchant.id).statistics()

        assert stats.total_segments == 0
        assert stats.average_subscribers_per_segment == 0


@pytest.mark.asyncio
class TestRecalculateSegmentCounts:
    async def test_updates_display_cache(self, test_db, merchant, add_subscribers, add_segment):
        await add_subscribers(merchant, 3, country="Canada")
        await add_subscribers(merchant, 1, country="Mexico")
        canada = await add_segment(merchant, [LocationConditionFactory()], name="Canada")
        paused = await add_segment(merchant, [], name="Paused", is_active=False, subscriber_count=42)

        updates = await AudienceService(test_db, merchant.id).recalculate_segment_counts(now=NOW)

        assert [(u.segment_id, u.subscriber_count) for u in updates] == [(canada.id, 3)]
        assert updates[0].criteria_display == "location is Canada"

        result = await test_db.execute(select(Segment).where(Segment.id.in_([canada.id, paused.id])))
        stored = {s.id: s for s in result.scalars()}
        assert stored[canada.id].subscriber_count == 3
        assert stored[canada.id].criteria_display == "location is Canada"
        assert stored[canada.id].last_calculated_at is not None
        assert stored[paused.id].subscriber_count == 42

    async def test_failed_count_keeps_previous_value(self, test_db, merchant, add_segment):
        segment = await add_segment(merchant, [LocationConditionFactory()], subscriber_count=7)
        service = AudienceService(test_db, merchant.id)

        with patch.object(service.store, "count", AsyncMock(side_effect=StoreError("Subscriber store count failed"))):
            updates = await service.recalculate_segment_counts()

        assert updates[0].error == "Subscriber store count failed"
        assert updates[0].subscriber_count == 7
        assert segment.subscriber_count == 7

    async def test_failure_does_not_lose_other_segments(
        self, test_db, session_factory, merchant, add_subscribers, add_segment
    ):
        await add_subscribers(merchant, 3, country="Canada")
        segments = [
            await add_segment(merchant, [LocationConditionFactory()], name=f"Canada {i}", subscriber_count=7)
            for i in range(3)
        ]
        service = AudienceService(test_db, merchant.id)
        original = service.store.count
        calls = 0

        async def second_call_fails(predicate):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise StoreError("Subscriber store count failed: OperationalError")
            return await original(predicate)

        with patch.object(service.store, "count", second_call_fails):
            updates = await service.recalculate_segment_counts(now=NOW)

        assert sorted(u.subscriber_count for u in updates) == [3, 3, 7]
        assert [u.error is None for u in updates] == [True, False, True]

        async with session_factory() as session:
            result = await session.execute(
                select(Segment.id, Segment.subscriber_count).where(Segment.id.in_([s.id for s in segments]))
            )
            stored = dict(result.all())
        assert stored == {u.segment_id: u.subscriber_count for u in updates}
