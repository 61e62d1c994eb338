"""Catalog lookups used when pricing an order."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from supabase import Client

from storefront.core.supabase import execute, get_supabase_client

logger = logging.getLogger(__name__)


def price_to_cents(price: Any) -> int:
    """Convert a catalog price in major units (e.g. "12.50") to integer cents."""
    amount = Decimal(str(price)) * 100
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ProductService:
    """Service for reading the product catalog."""

    def __init__(self, supabase_client: Client | None = None):
        """Initialize product service.

        Args:
            supabase_client: Optional Supabase client for testing.
        """
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def get_products(self, product_ids: list[str]) -> dict[str, dict[str, Any]]:
        """Fetch catalog rows for a set of products.

        Args:
            product_ids: Product IDs to look up.

        Returns:
            dict: Product rows keyed by product ID. Unknown IDs are absent.
        """
        if not product_ids:
            return {}

        result = await execute(
            self.supabase.table("products")
            .select("id, name, price, image, active")
            .in_("id", sorted(set(product_ids)))
        )
        return {str(row["id"]): row for row in result.data or []}
