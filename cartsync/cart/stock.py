"""Stock oracles: answer the current purchasable ceiling for a product/variant."""
from typing import Dict, Optional, Protocol

from cartsync.db import get_supabase_sync
from cartsync.logging import get_logger
from cartsync.repositories import StockRepository
from .models import LineKey, is_active_status

logger = get_logger(__name__)


class StockOracle(Protocol):
    def current_ceiling(self, product_id: str, variant_id: Optional[str] = None) -> int: ...


class SupabaseStockOracle:
    """
    Ceilings from the catalog tables.

    Variant stock wins over product stock. An unknown product or one that is
    no longer active has ceiling 0.
    On lookup errors the last ceiling seen for the key is reused (0 if none),
    so a catalog outage degrades to stale limits instead of failing the cart.
    """

    def __init__(self, repo: Optional[StockRepository] = None):
        self._repo = repo
        self._last_known: Dict[LineKey, int] = {}

    @property
    def repo(self) -> StockRepository:
        if self._repo is None:
            self._repo = StockRepository(get_supabase_sync())
        return self._repo

    def current_ceiling(self, product_id: str, variant_id: Optional[str] = None) -> int:
        key = (product_id, variant_id)
        try:
            product = self.repo.get_product(product_id)
            if product is None or not is_active_status(product.get("status")):
                stock = 0
            else:
                stock = None
                if variant_id:
                    stock = self.repo.get_variant_stock(variant_id)
                if stock is None:
                    stock = product.get("stock_quantity")
        except Exception as e:
            logger.warning(f"Stock lookup failed for {product_id}: {e}")
            return self._last_known.get(key, 0)

        ceiling = max(int(stock or 0), 0)
        self._last_known[key] = ceiling
        return ceiling


class InMemoryStockOracle:
    """Ceilings held in a dict; unknown keys fall back to the product's entry, then 0."""

    def __init__(self, ceilings: Optional[Dict] = None):
        self._ceilings: Dict[LineKey, int] = {}
        for key, value in (ceilings or {}).items():
            self.set(*(key if isinstance(key, tuple) else (key, None)), value)

    def set(self, product_id: str, variant_id: Optional[str], ceiling: int) -> None:
        self._ceilings[(product_id, variant_id)] = max(int(ceiling), 0)

    def current_ceiling(self, product_id: str, variant_id: Optional[str] = None) -> int:
        if (product_id, variant_id) in self._ceilings:
            return self._ceilings[(product_id, variant_id)]
        return self._ceilings.get((product_id, None), 0)
