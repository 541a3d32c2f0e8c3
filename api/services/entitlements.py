"""
Entitlement gate for review sync.

Review sync is a paid feature: the owner needs an active subscription on
the premium or enterprise plan that has not passed its end date.
"""

import logging
from datetime import datetime, timezone

from dateutil import parser as dateparser
from supabase import Client

logger = logging.getLogger(__name__)

ENTITLED_PLANS = ("premium", "enterprise")


class SupabaseEntitlementGate:
    """Checks the `subscriptions` table for an entitling plan."""

    def __init__(self, client: Client):
        self._client = client

    async def is_entitled(self, owner_id: str) -> bool:
        try:
            result = self._client.table("subscriptions")\
                .select("plan, status, end_date")\
                .eq("owner_id", owner_id)\
                .eq("status", "active")\
                .order("start_date", desc=True)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.warning(f"[ENTITLEMENTS] Subscription lookup failed for {owner_id[:8]}: {e}")
            return False

        if not result.data:
            return False

        subscription = result.data[0]
        end_date = subscription.get("end_date")
        if end_date:
            ends_at = dateparser.isoparse(end_date)
            if ends_at.tzinfo is None:
                ends_at = ends_at.replace(tzinfo=timezone.utc)
            if ends_at <= datetime.now(timezone.utc):
                return False

        return subscription.get("plan") in ENTITLED_PLANS
