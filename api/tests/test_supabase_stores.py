"""
Tests for the Supabase-backed stores and entitlement gate.

Supabase query chains are mocked; these tests check table names, filters
and row mapping.

Run: cd api && python -m pytest tests/test_supabase_stores.py
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from integrations.core.tokens import CredentialVault
from integrations.core.types import (
    IntegrationPlatform,
    IntegrationRecord,
    Review,
    ReviewPlatform,
)
from services.entitlements import SupabaseEntitlementGate
from services.review_store import (
    SupabaseIntegrationStore,
    SupabaseOwnerDirectory,
    SupabaseReviewStore,
)
from services.review_sync import ReviewSyncEngine, build_review_sync_engine


def subscription_client(rows):
    client = MagicMock()
    chain = client.table.return_value.select.return_value.eq.return_value.eq.return_value
    chain.order.return_value.limit.return_value.execute.return_value = MagicMock(data=rows)
    return client


# =============================================================================
# Entitlements
# =============================================================================

def test_premium_subscription_is_entitled():
    client = subscription_client([{"plan": "premium", "status": "active", "end_date": None}])

    assert asyncio.run(SupabaseEntitlementGate(client).is_entitled("owner-1"))
    client.table.assert_called_with("subscriptions")


def test_enterprise_with_future_end_date_is_entitled():
    ends = (datetime.now(timezone.utc) + timedelta(days=10)).isoformat().replace("+00:00", "Z")
    client = subscription_client([{"plan": "enterprise", "status": "active", "end_date": ends}])

    assert asyncio.run(SupabaseEntitlementGate(client).is_entitled("owner-1"))


def test_free_ended_or_missing_subscription_is_not_entitled():
    ended = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

    for rows in (
        [],
        [{"plan": "free", "status": "active", "end_date": None}],
        [{"plan": "premium", "status": "active", "end_date": ended}],
    ):
        gate = SupabaseEntitlementGate(subscription_client(rows))
        assert not asyncio.run(gate.is_entitled("owner-1")), rows


def test_subscription_lookup_failure_is_not_entitled():
    client = MagicMock()
    client.table.side_effect = RuntimeError("connection refused")

    assert not asyncio.run(SupabaseEntitlementGate(client).is_entitled("owner-1"))


# =============================================================================
# Stores
# =============================================================================

def test_integration_store_round_trip():
    vault = CredentialVault("test-passphrase")
    row = {
        "owner_id": "owner-1",
        "platform": "google",
        "account_ref": {"account_id": "accounts/1", "location_id": "locations/2"},
        "access_secret": vault.encrypt("token"),
        "refresh_secret": None,
        "user_secret": None,
        "secret_expiry": "2024-01-15T13:00:00+00:00",
        "last_sync_watermark": None,
        "status": "active",
    }
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[row])
    store = SupabaseIntegrationStore(client)

    record = asyncio.run(store.get("owner-1", IntegrationPlatform.GOOGLE))

    assert isinstance(record, IntegrationRecord)
    assert record.secret_expiry == datetime(2024, 1, 15, 13, 0, tzinfo=timezone.utc)

    asyncio.run(store.upsert(record))
    payload = client.table.return_value.upsert.call_args.args[0]
    assert payload["platform"] == "google"
    assert payload["status"] == "active"
    assert client.table.return_value.upsert.call_args.kwargs["on_conflict"] == "owner_id,platform"


def test_review_store_latest_synced_at():
    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.eq.return_value
    query.order.return_value.limit.return_value.execute.return_value = MagicMock(
        data=[{"synced_at": "2024-01-10T09:00:00.12345+00:00"}]
    )

    latest = asyncio.run(SupabaseReviewStore(client).latest_synced_at("owner-1", ReviewPlatform.GOOGLE))

    assert latest == datetime(2024, 1, 10, 9, 0, 0, 123450, tzinfo=timezone.utc)
    query.order.assert_called_with("synced_at", desc=True)


def test_review_store_update_is_owner_scoped():
    client = MagicMock()
    review = Review(
        id="google_abc",
        owner_id="owner-1",
        platform=ReviewPlatform.GOOGLE,
        review_date=datetime(2024, 1, 12, tzinfo=timezone.utc),
    )

    asyncio.run(SupabaseReviewStore(client).update(review))

    update = client.table.return_value.update
    payload = update.call_args.args[0]
    for key in ("id", "owner_id", "platform"):
        assert key not in payload
    assert payload["author"] == "Anonymous"
    update.return_value.eq.assert_called_with("owner_id", "owner-1")
    update.return_value.eq.return_value.eq.assert_called_with("platform", "google")
    update.return_value.eq.return_value.eq.return_value.eq.assert_called_with("id", "google_abc")


def test_review_store_find_is_owner_scoped():
    client = MagicMock()
    select = client.table.return_value.select.return_value
    select.eq.return_value.eq.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])

    found = asyncio.run(SupabaseReviewStore(client).find("owner-2", ReviewPlatform.GOOGLE, "places_P_x"))

    assert found is None
    select.eq.assert_called_with("owner_id", "owner-2")
    select.eq.return_value.eq.assert_called_with("platform", "google")
    select.eq.return_value.eq.return_value.eq.assert_called_with("id", "places_P_x")


def test_owner_directory_profile():
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
        data=[{"id": "owner-1", "name": "Trattoria Uno", "address": "1 Main St", "google_place_id": None}]
    )
    directory = SupabaseOwnerDirectory(client)

    profile = asyncio.run(directory.get_profile("owner-1"))
    asyncio.run(directory.save_place_id("owner-1", "ChIJ123"))

    assert profile.name == "Trattoria Uno"
    assert profile.google_place_id is None
    client.table.return_value.update.assert_called_with({"google_place_id": "ChIJ123"})


def test_build_review_sync_engine_wiring():
    engine = build_review_sync_engine(MagicMock(), vault=CredentialVault("test-passphrase"))

    assert isinstance(engine, ReviewSyncEngine)
    assert sorted(engine._adapters) == ["business_profile", "meta", "places", "search_proxy"]
    assert set(engine._token_managers) == {IntegrationPlatform.GOOGLE, IntegrationPlatform.META}
