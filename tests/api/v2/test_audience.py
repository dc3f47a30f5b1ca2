"""
Tests for audience resolution endpoints (/api/v2/audience, /api/v2/campaigns).
"""

import pytest

from app.services.audience import SegmentResolver
from app.services.audience.errors import StoreError
from tests.factories import ConditionFactory, LocationConditionFactory, MobileSubscriberFactory

AUDIENCE_PREFIX = "/api/v2/audience"
CAMPAIGNS_PREFIX = "/api/v2/campaigns"

MOBILE = ConditionFactory(category="device_type", operator="is_mobile", value=None)


@pytest.mark.asyncio
class TestResolveAudience:
    async def test_union_is_deduplicated(self, authenticated_client, merchant, add_subscribers, add_segment):
        await add_subscribers(merchant, 2, country="Canada")
        await add_subscribers(merchant, 1, factory=MobileSubscriberFactory, country="Canada")
        await add_subscribers(merchant, 2, factory=MobileSubscriberFactory, country="Mexico")
        canada = await add_segment(merchant, [LocationConditionFactory()], name="Canada")
        mobile = await add_segment(merchant, [MOBILE], name="Mobile")

        response = await authenticated_client.post(
            f"{AUDIENCE_PREFIX}/resolve", json={"segment_ids": [canada.id, mobile.id]}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_raw_count"] == 6
        assert data["unique_count"] == 5
        assert len(data["unique_ids"]) == len(set(data["unique_ids"])) == 5
        assert len(data["tokens"]) == 5
        assert [b["segment_name"] for b in data["per_segment_breakdown"]] == ["Canada", "Mobile"]

    async def test_empty_request_is_zero_reach(self, authenticated_client, merchant, add_subscribers):
        await add_subscribers(merchant, 3)

        response = await authenticated_client.post(f"{AUDIENCE_PREFIX}/resolve", json={"segment_ids": []})

        assert response.status_code == 200
        assert response.json()["unique_ids"] == []
        assert response.json()["segment_count"] == 0

    async def test_total_failure_is_503(self, authenticated_client, merchant, add_segment, monkeypatch):
        segment = await add_segment(merchant, [LocationConditionFactory()])

        async def broken(self, segment_id, now=None):
            raise StoreError("Subscriber store fetch failed: OperationalError")

        monkeypatch.setattr(SegmentResolver, "resolve", broken)

        response = await authenticated_client.post(
            f"{AUDIENCE_PREFIX}/resolve", json={"segment_ids": [segment.id]}
        )

        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "AUD_001"
        assert body["errors"] == [
            {"segment_id": segment.id, "message": "Subscriber store fetch failed: OperationalError"}
        ]


@pytest.mark.asyncio
class TestCampaignAudience:
    async def test_campaign_audience(
        self, authenticated_client, merchant, add_subscribers, add_segment, add_campaign
    ):
        await add_subscribers(merchant, 3, country="Canada")
        await add_subscribers(merchant, 2, country="Mexico")
        active = await add_segment(merchant, [LocationConditionFactory()], name="Canada")
        paused = await add_segment(
            merchant, [LocationConditionFactory(locationCountry="Mexico")], name="Mexico", is_active=False
        )
        campaign = await add_campaign(merchant, [active, paused])

        response = await authenticated_client.get(f"{CAMPAIGNS_PREFIX}/{campaign.id}/audience")

        assert response.status_code == 200
        data = response.json()
        assert data["unique_count"] == 3
        assert [b["status"] for b in data["per_segment_breakdown"]] == ["resolved", "inactive"]

    async def test_campaign_reach(self, authenticated_client, merchant, add_subscribers, add_segment, add_campaign):
        await add_subscribers(merchant, 2, factory=MobileSubscriberFactory, country="Canada")
        await add_subscribers(merchant, 1, country="Canada")
        canada = await add_segment(merchant, [LocationConditionFactory()], name="Canada")
        mobile = await add_segment(merchant, [MOBILE], name="Mobile")
        campaign = await add_campaign(merchant, [canada, mobile])

        response = await authenticated_client.get(f"{CAMPAIGNS_PREFIX}/{campaign.id}/reach")

        assert response.status_code == 200
        data = response.json()
        assert data["campaign_id"] == campaign.id
        assert data["total_reach"] == 5
        assert data["unique_subscribers"] == 3
        assert [b["subscriber_count"] for b in data["segment_breakdown"]] == [3, 2]

    async def test_unknown_campaign(self, authenticated_client):
        response = await authenticated_client.get(f"{CAMPAIGNS_PREFIX}/missing/reach")

        assert response.status_code == 404
        assert response.json()["code"] == "RES_003"


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
