"""Wiring for the production cart engine (Supabase remote + stock, Redis or file local store)."""
from typing import Optional

from cartsync.cart.engine import CartEngine
from cartsync.cart.identity import IdentitySignal
from cartsync.cart.remote import SupabaseRemoteCartStore
from cartsync.cart.stock import SupabaseStockOracle
from cartsync.cart.storage import JsonFileLocalStore, RedisLocalStore
from cartsync.db import CART_DEVICE_ID


def build_engine(
    identity_signal: Optional[IdentitySignal] = None,
    device_id: str = CART_DEVICE_ID,
    local_path: Optional[str] = None,
) -> CartEngine:
    """
    Build a CartEngine for the application root to own.

    Args:
        identity_signal: Signal fed by the auth layer
        device_id: Key for the Redis-backed device cart
        local_path: Use a JSON file instead of Redis for the device cart

    Call ``await engine.start()`` before use.
    """
    local_store = JsonFileLocalStore(local_path) if local_path else RedisLocalStore(device_id=device_id)
    return CartEngine(
        local_store=local_store,
        remote_store=SupabaseRemoteCartStore(),
        stock_oracle=SupabaseStockOracle(),
        identity_signal=identity_signal,
    )
