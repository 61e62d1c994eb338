"""Cart storage on the user's profile."""

import logging

from supabase import Client

from storefront.core.supabase import execute, get_supabase_client
from storefront.models.profile import CartData

logger = logging.getLogger(__name__)


class CartService:
    """Service for reading and clearing a user's cart."""

    def __init__(self, supabase_client: Client | None = None):
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def get_cart(self, user_id: str) -> CartData:
        """Get a user's cart.

        Args:
            user_id: Owner of the cart.

        Returns:
            CartData: product_id -> color -> quantity. Empty when no profile exists.
        """
        result = await execute(
            self.supabase.table("profiles")
            .select("cart_data")
            .eq("id", str(user_id))
            .maybe_single()
        )
        if not result or not result.data:
            return {}
        return result.data.get("cart_data") or {}

    async def clear_cart(self, user_id: str) -> None:
        """Empty a user's cart in a single write.

        Args:
            user_id: Owner of the cart.
        """
        await execute(self.supabase.table("profiles").update({"cart_data": {}}).eq("id", str(user_id)))
        logger.info("Cart cleared for user %s", user_id)
