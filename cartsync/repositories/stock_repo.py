"""Stock Repository - purchasable ceilings for products and variants.

Runs on the sync Supabase client: ceilings are read inside synchronous cart
mutations.
"""
from typing import Optional

from cartsync.db import Tables
from .base import BaseRepository


class StockRepository(BaseRepository):
    """Stock lookups."""

    def _first_row(self, table: str, row_id: str, columns: str) -> Optional[dict]:
        result = self.client.table(table).select(columns).eq(
            "id", row_id
        ).limit(1).execute()
        return result.data[0] if result.data else None

    def get_product(self, product_id: str) -> Optional[dict]:
        """Stock and listing status of the base product, None if it does not exist."""
        return self._first_row(Tables.PRODUCTS, product_id, "stock_quantity, status")

    def get_variant_stock(self, variant_id: str) -> Optional[int]:
        """Stock of a variant, None if unknown or untracked."""
        row = self._first_row(Tables.PRODUCT_VARIANTS, variant_id, "stock_quantity")
        if row is None or row.get("stock_quantity") is None:
            return None
        return int(row["stock_quantity"])
