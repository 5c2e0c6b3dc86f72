"""Cart package: models, merge, stores, sync queue, and the engine."""
from .models import CartLine, CartSnapshot, CartMutation, ProductRef, VariantRef
from .merge import merge_snapshots
from .identity import ANONYMOUS, CartContext, IdentitySignal
from .storage import RedisLocalStore, JsonFileLocalStore, InMemoryLocalStore
from .stock import SupabaseStockOracle, InMemoryStockOracle
from .remote import SupabaseRemoteCartStore, InMemoryRemoteCartStore
from .sync import RemoteSyncQueue
from .engine import CartEngine

__all__ = [
    "CartLine",
    "CartSnapshot",
    "CartMutation",
    "ProductRef",
    "VariantRef",
    "merge_snapshots",
    "ANONYMOUS",
    "CartContext",
    "IdentitySignal",
    "RedisLocalStore",
    "JsonFileLocalStore",
    "InMemoryLocalStore",
    "SupabaseStockOracle",
    "InMemoryStockOracle",
    "SupabaseRemoteCartStore",
    "InMemoryRemoteCartStore",
    "RemoteSyncQueue",
    "CartEngine",
]
