"""Cart Repository - cart_items rows for signed-in users.

All methods use async/await with supabase-py v2.
"""
from typing import List

from tenacity import retry, stop_after_attempt, wait_exponential

from cartsync.db import CART_SYNC_RETRY_ATTEMPTS, Tables
from .base import BaseRepository

# Joined columns needed to rebuild a full cart line
CART_ITEMS_SELECT = """
    id,
    quantity,
    product_id,
    variant_id,
    created_at,
    product:products (
        id,
        name,
        sku,
        base_price,
        sale_price,
        stock_quantity,
        status,
        images
    ),
    variant:product_variants (
        id,
        name,
        sku_suffix,
        price_adjustment,
        stock_quantity,
        image_url
    )
"""

sync_retry = retry(
    stop=stop_after_attempt(CART_SYNC_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


class CartRepository(BaseRepository):
    """cart_items table operations."""

    @sync_retry
    async def get_items(self, user_id: str) -> List[dict]:
        """Get cart rows with product and variant joined, newest first."""
        result = await self.client.table(Tables.CART_ITEMS).select(
            CART_ITEMS_SELECT
        ).eq("user_id", user_id).order("created_at", desc=True).execute()
        return result.data or []

    @sync_retry
    async def insert_items(self, rows: List[dict]) -> List[str]:
        """Insert rows; returns the new row ids."""
        if not rows:
            return []
        result = await self.client.table(Tables.CART_ITEMS).insert(rows).execute()
        ids = [row["id"] for row in result.data or []]
        if len(ids) != len(rows):
            # Pruning against a partial id list would delete the new rows
            raise RuntimeError(f"Inserted {len(rows)} cart rows, got {len(ids)} ids back")
        return ids

    @sync_retry
    async def delete_except(self, user_id: str, keep_ids: List[str]) -> None:
        """Delete the user's rows other than ``keep_ids`` (all rows when empty)."""
        query = self.client.table(Tables.CART_ITEMS).delete().eq("user_id", user_id)
        if keep_ids:
            query = query.not_.in_("id", keep_ids)
        await query.execute()
