"""Purchase tracking for the analytics collections."""

import logging
from datetime import datetime, timezone
from typing import Any

from supabase import Client

from storefront.core.supabase import execute, get_supabase_client

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Records user activity and per-product performance counters."""

    def __init__(self, supabase_client: Client | None = None):
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def track_purchase(self, user_id: str, order: dict[str, Any]) -> None:
        """Record a completed purchase.

        Bumps purchase count and revenue for every product in the order, then
        stores a purchase activity row for the user.

        Args:
            user_id: Buyer.
            order: The order that was paid for (COD orders count at placement).
        """
        for item in order["items"]:
            await execute(
                self.supabase.rpc(
                    "record_product_purchase",
                    {
                        "p_product_id": item["product_id"],
                        "p_quantity": item["quantity"],
                        "p_revenue_cents": item["unit_amount_cents"] * item["quantity"],
                    },
                )
            )

        activity = self.supabase.table("user_activity").insert(
            {
                "user_id": str(user_id),
                "action": "purchase",
                "metadata": {
                    "order_id": order["id"],
                    "total_cents": order["total_cents"],
                    "item_count": len(order["items"]),
                },
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        await execute(activity)
        logger.debug("Tracked purchase of order %s", order["id"])
