"""
Tests for the segment audience endpoints (/api/v2/segments).
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from app.services.audience.errors import StoreError, StoreTimeout
from tests.factories import ConditionFactory, LocationConditionFactory, MobileSubscriberFactory, auth_headers

SEGMENTS_PREFIX = "/api/v2/segments"


@pytest.mark.asyncio
class TestAuthentication:
    async def test_missing_token(self, client):
        response = await client.post(f"{SEGMENTS_PREFIX}/estimate", json={"conditions": []})

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "AUTH_001"

    async def test_invalid_token(self, client):
        response = await client.get(
            f"{SEGMENTS_PREFIX}/estimate", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_unknown_merchant(self, client, merchant):
        response = await client.get(f"{SEGMENTS_PREFIX}/estimate", headers=auth_headers("user_nobody"))
        assert response.status_code == 404
        assert response.json()["code"] == "RES_001"


@pytest.mark.asyncio
class TestEstimate:
    async def test_estimate_with_camel_case_payload(self, authenticated_client, merchant, add_subscribers):
        now = datetime.now(timezone.utc)
        await add_subscribers(merchant, 2, country="Canada", subscribed_at=now - timedelta(days=10))
        await add_subscribers(merchant, 1, country="Canada", subscribed_at=now - timedelta(days=40))
        await add_subscribers(merchant, 3, country="Mexico", subscribed_at=now - timedelta(days=10))

        response = await authenticated_client.post(
            f"{SEGMENTS_PREFIX}/estimate",
            json={
                "conditions": [
                    LocationConditionFactory(locationCountry="canada"),
                    ConditionFactory(
                        category="subscription-date",
                        operator="in_last",
                        value=None,
                        numberValue=15,
                        dateUnit="days",
                        logicalOperator="AND",
                    ),
                ]
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["estimated_count"] == 2
        assert data["conditions"] == 2
        assert data["skipped"] == []
        assert data["error"] is None

    async def test_empty_conditions_count_all_active(self, authenticated_client, merchant, add_subscribers):
        await add_subscribers(merchant, 4)

        response = await authenticated_client.post(f"{SEGMENTS_PREFIX}/estimate", json={"conditions": []})

        assert response.status_code == 200
        assert response.json()["estimated_count"] == 4

    async def test_unsupported_category_is_reported(self, authenticated_client, merchant, add_subscribers):
        await add_subscribers(merchant, 3, country="Canada")
        await add_subscribers(merchant, 2)

        response = await authenticated_client.post(
            f"{SEGMENTS_PREFIX}/estimate",
            json={
                "conditions": [
                    LocationConditionFactory(),
                    ConditionFactory(id="future", category="unknown_future_field", logicalOperator="AND"),
                ]
            },
        )

        data = response.json()
        assert data["estimated_count"] == 3
        assert data["unsupported_categories"] == ["unknown_future_field"]
        assert data["skipped"][0]["condition_id"] == "future"
        assert data["skipped"][0]["error_type"] == "UnsupportedCategory"

    async def test_store_failure_still_answers(self, authenticated_client, merchant):
        failure = AsyncMock(side_effect=StoreError("Subscriber store count failed: OperationalError"))

        with patch("app.services.audience.store.SubscriberStore.count", failure):
            response = await authenticated_client.post(
                f"{SEGMENTS_PREFIX}/estimate", json={"conditions": [LocationConditionFactory()]}
            )

        assert response.status_code == 200
        assert response.json()["estimated_count"] == 0
        assert response.json()["error"] == "Subscriber store count failed: OperationalError"

    async def test_invalid_payload(self, authenticated_client):
        response = await authenticated_client.post(
            f"{SEGMENTS_PREFIX}/estimate", json={"conditions": [{"category": "browser", "numberValue": "many"}]}
        )

        assert response.status_code == 422
        assert response.json()["errors"]

    async def test_statistics(self, authenticated_client, merchant, add_subscribers, add_segment):
        await add_subscribers(merchant, 4)
        await add_segment(merchant, [], name="A")
        await add_segment(merchant, [], name="B", is_active=False)

        response = await authenticated_client.get(f"{SEGMENTS_PREFIX}/estimate")

        assert response.status_code == 200
        data = response.json()
        assert data["total_segments"] == 2
        assert data["active_segments"] == 1
        assert data["total_subscribers"] == 4
        assert data["average_subscribers_per_segment"] == 2


@pytest.mark.asyncio
class TestCategories:
    async def test_lists_categories(self, authenticated_client):
        response = await authenticated_client.get(f"{SEGMENTS_PREFIX}/categories")

        assert response.status_code == 200
        names = [c["name"] for c in response.json()["categories"]]
        assert "location" in names
        assert "email_domain" in names


@pytest.mark.asyncio
class TestSegmentAudience:
    async def test_resolve_segment(self, authenticated_client, merchant, add_subscribers, add_segment):
        await add_subscribers(merchant, 2, factory=MobileSubscriberFactory)
        await add_subscribers(merchant, 3)
        segment = await add_segment(
            merchant, [ConditionFactory(category="device_type", operator="is_mobile", value=None)], name="Mobile"
        )

        response = await authenticated_client.get(f"{SEGMENTS_PREFIX}/{segment.id}/audience")

        assert response.status_code == 200
        data = response.json()
        assert data["segment_name"] == "Mobile"
        assert data["subscriber_count"] == 2
        assert len(data["tokens"]) == 2
        assert response.headers["X-Request-ID"]

    async def test_unknown_segment(self, authenticated_client):
        response = await authenticated_client.get(
            f"{SEGMENTS_PREFIX}/missing/audience", headers={"X-Request-ID": "req-123"}
        )

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "RES_002"
        assert body["trace_id"] == "req-123"
        assert body["instance"] == f"{SEGMENTS_PREFIX}/missing/audience"

    async def test_other_tenants_segment(self, authenticated_client, other_merchant, add_segment):
        segment = await add_segment(other_merchant, [LocationConditionFactory()])

        response = await authenticated_client.get(f"{SEGMENTS_PREFIX}/{segment.id}/audience")
        assert response.status_code == 404

    async def test_store_timeout(self, authenticated_client, merchant, add_segment):
        segment = await add_segment(merchant, [LocationConditionFactory()])

        with patch(
            "app.services.audience.store.SubscriberStore.fetch",
            AsyncMock(side_effect=StoreTimeout(10, "fetch")),
        ):
            response = await authenticated_client.get(f"{SEGMENTS_PREFIX}/{segment.id}/audience")

        assert response.status_code == 504
        assert response.json()["code"] == "EXT_002"


@pytest.mark.asyncio
class TestRecalculate:
    async def test_recalculate(self, authenticated_client, merchant, add_subscribers, add_segment):
        await add_subscribers(merchant, 3, country="Canada")
        segment = await add_segment(merchant, [LocationConditionFactory()], name="Canada")

        response = await authenticated_client.post(f"{SEGMENTS_PREFIX}/recalculate")

        assert response.status_code == 200
        data = response.json()
        assert data["updated"] == 1
        assert data["segments"][0]["segment_id"] == segment.id
        assert data["segments"][0]["subscriber_count"] == 3
        assert data["segments"][0]["criteria_display"] == "location is Canada"
