"""
Remote cart stores: one snapshot per signed-in identity.

``replace`` is a full overwrite. Ordering between calls is the caller's
problem (see cartsync.cart.sync); a single call is idempotent.
"""
from typing import Dict, List, Optional, Protocol

from cartsync.db import get_supabase
from cartsync.errors import (
    SyncFailure,
    ERROR_IDENTITY_REQUIRED,
    ERROR_REMOTE_FETCH_FAILED,
    ERROR_REMOTE_REPLACE_FAILED,
)
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.repositories import CartRepository
from .models import CartLine, CartSnapshot, ProductRef, VariantRef, build_line
from .storage import decode_snapshot, encode_snapshot

logger = get_logger(__name__)


class RemoteCartStore(Protocol):
    async def fetch(self, identity: str) -> CartSnapshot: ...

    async def replace(self, identity: str, snapshot: CartSnapshot) -> None: ...


def line_from_row(row: dict) -> Optional[CartLine]:
    """Rebuild a cart line from a joined cart_items row.

    Rows whose product was deleted are skipped; an inactive product counts as
    out of stock. Quantity is capped at the stock the row was joined with; an
    out-of-stock row keeps its quantity and comes back with max_quantity 0.
    """
    product_row = row.get("product")
    if not product_row:
        return None

    product = ProductRef(**product_row)
    variant = VariantRef(**row["variant"]) if row.get("variant") else None

    stock = variant.stock_quantity if variant and variant.stock_quantity is not None else product.stock_quantity
    ceiling = max(int(stock or 0), 0) if product.is_active else 0

    quantity = int(row.get("quantity") or 0)
    if quantity < 1:
        return None
    if ceiling > 0:
        quantity = min(quantity, ceiling)

    return build_line(product, variant, quantity, ceiling)


def row_from_line(user_id: str, line: CartLine) -> dict:
    return {
        "user_id": user_id,
        "product_id": line.product_id,
        "variant_id": line.variant_id,
        "quantity": line.quantity,
    }


class SupabaseRemoteCartStore:
    """Remote cart on the storefront's cart_items table."""

    def __init__(self, repo: Optional[CartRepository] = None):
        self._repo = repo

    async def _get_repo(self) -> CartRepository:
        if self._repo is None:
            self._repo = CartRepository(await get_supabase())
        return self._repo

    async def fetch(self, identity: str) -> CartSnapshot:
        if not identity:
            raise SyncFailure(ERROR_IDENTITY_REQUIRED)
        try:
            repo = await self._get_repo()
            rows = await repo.get_items(identity)
        except Exception as e:
            logger.error(f"{ERROR_REMOTE_FETCH_FAILED} for {sanitize_id_for_logging(identity)}: {e}")
            raise SyncFailure(f"{ERROR_REMOTE_FETCH_FAILED}: {e}", identity=identity) from e

        items: List[CartLine] = []
        seen = set()
        for row in rows:
            line = line_from_row(row)
            if line is None or line.key in seen:
                continue
            seen.add(line.key)
            items.append(line)
        return CartSnapshot(items=items, version=0)

    async def replace(self, identity: str, snapshot: CartSnapshot) -> None:
        """
        Overwrite the identity's cart rows with ``snapshot``.

        New rows go in first and only then are the older rows pruned, so a
        failure at either step leaves the previous lines in place. Rows left
        over by a failed prune are shadowed on fetch by the newer rows for the
        same key and removed by the next successful replace.
        """
        if not identity:
            raise SyncFailure(ERROR_IDENTITY_REQUIRED)
        try:
            repo = await self._get_repo()
            new_ids = await repo.insert_items([row_from_line(identity, line) for line in snapshot.items])
            await repo.delete_except(identity, new_ids)
        except Exception as e:
            logger.error(f"{ERROR_REMOTE_REPLACE_FAILED} for {sanitize_id_for_logging(identity)}: {e}")
            raise SyncFailure(f"{ERROR_REMOTE_REPLACE_FAILED}: {e}", identity=identity) from e


class InMemoryRemoteCartStore:
    """Per-identity snapshots held as encoded JSON, so nothing is shared by reference."""

    def __init__(self):
        self._carts: Dict[str, str] = {}

    async def fetch(self, identity: str) -> CartSnapshot:
        snapshot = decode_snapshot(self._carts.get(identity))
        return snapshot if snapshot is not None else CartSnapshot.empty()

    async def replace(self, identity: str, snapshot: CartSnapshot) -> None:
        self._carts[identity] = encode_snapshot(snapshot)
