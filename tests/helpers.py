"""Shared builders and fakes for the cart tests."""
import asyncio

from cartsync.errors import SyncFailure
from cartsync.cart import CartLine, CartSnapshot, InMemoryRemoteCartStore


def make_product(product_id: str, price: float = 100.0, stock: int = 5, sale_price=None, sku=None) -> dict:
    """Catalog row as the products table returns it."""
    return {
        "id": product_id,
        "name": f"Product {product_id}",
        "sku": sku or f"SKU-{product_id}",
        "base_price": price,
        "sale_price": sale_price,
        "images": [{"url": f"https://cdn.test/{product_id}.jpg"}],
        "stock_quantity": stock,
    }


def make_line(product_id: str, quantity: int, max_quantity: int = 10, variant_id=None, price="100") -> CartLine:
    return CartLine(
        product_id=product_id,
        variant_id=variant_id,
        name=f"Product {product_id}",
        sku=f"SKU-{product_id}",
        unit_price_base=price,
        quantity=quantity,
        max_quantity=max_quantity,
    )


def make_snapshot(*lines: CartLine, version: int = 0) -> CartSnapshot:
    return CartSnapshot(items=list(lines), version=version)


class RecordingRemoteCartStore(InMemoryRemoteCartStore):
    """
    In-memory remote that records every call.

    - ``hold = True`` parks each replace on an asyncio.Event in ``gates``
    - ``fail_replace`` / ``fail_fetch`` make the next N calls raise SyncFailure
    - ``fetch_gate`` parks fetches until set
    """

    def __init__(self):
        super().__init__()
        self.replaced = []
        self.fetched = []
        self.hold = False
        self.gates = []
        self.fail_replace = 0
        self.fail_fetch = 0
        self.fetch_gate = None

    async def fetch(self, identity):
        self.fetched.append(identity)
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fail_fetch:
            self.fail_fetch -= 1
            raise SyncFailure("fetch down", identity=identity)
        return await super().fetch(identity)

    async def replace(self, identity, snapshot):
        self.replaced.append((identity, snapshot.version, snapshot.quantities()))
        if self.hold:
            gate = asyncio.Event()
            self.gates.append(gate)
            await gate.wait()
        if self.fail_replace:
            self.fail_replace -= 1
            raise SyncFailure("replace down", identity=identity)
        await super().replace(identity, snapshot)

    def release_all(self):
        self.hold = False
        for gate in self.gates:
            gate.set()

    async def stored(self, identity) -> dict:
        return (await InMemoryRemoteCartStore.fetch(self, identity)).quantities()

