"""
Database Module - Supabase and Redis Clients

Provides singleton instances of:
- Async Supabase client for the remote cart (cart_items)
- Sync Supabase client for stock ceiling lookups
- Sync Upstash Redis client for the device-local cart snapshot
"""

import os
from typing import Optional

from supabase import create_client, Client
from supabase._async.client import AsyncClient, create_client as acreate_client
from upstash_redis import Redis


# Environment variables (Upstash uses REST_URL and REST_TOKEN)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")

# Device the local snapshot belongs to (one snapshot per device)
CART_DEVICE_ID = os.environ.get("CART_DEVICE_ID", "default")

# Attempts for remote fetch before giving up
CART_SYNC_RETRY_ATTEMPTS = int(os.environ.get("CART_SYNC_RETRY_ATTEMPTS", "3"))


_supabase_client: Optional[Client] = None
_async_supabase_client: Optional[AsyncClient] = None
_sync_redis_client: Optional[Redis] = None


def get_supabase_sync() -> Client:
    """
    Get synchronous Supabase client (singleton).
    Used by the stock oracle, whose lookups happen inside synchronous mutations.
    """
    global _supabase_client

    if _supabase_client is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)

    return _supabase_client


async def get_supabase() -> AsyncClient:
    """
    Get async Supabase client (singleton).
    Used for remote cart fetch/replace.
    """
    global _async_supabase_client

    if _async_supabase_client is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _async_supabase_client = await acreate_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)

    return _async_supabase_client


def get_redis_sync() -> Redis:
    """
    Get sync Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN

    Local saves run inside synchronous cart mutations, so only the sync
    client is needed.
    """
    global _sync_redis_client

    if _sync_redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _sync_redis_client = Redis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _sync_redis_client


class RedisKeys:
    """Redis key prefixes for cart data."""

    DEVICE_CART = "cart:device:"  # cart:device:{device_id}

    @staticmethod
    def device_cart_key(device_id: str) -> str:
        return f"{RedisKeys.DEVICE_CART}{device_id}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    DEVICE_CART = int(os.environ.get("CART_LOCAL_TTL", str(30 * 86400)))  # 30 days


class Tables:
    """Supabase table names used by the cart."""

    CART_ITEMS = "cart_items"
    PRODUCTS = "products"
    PRODUCT_VARIANTS = "product_variants"
