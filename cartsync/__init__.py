"""
cartsync

Storefront cart state engine:
- cart: models, merge resolver, local/remote stores, sync queue, engine
- db: Supabase and Upstash Redis clients
- logging: centralized logging setup

Note: Imports are lazy so importing the package does not pull in the
Supabase/Redis clients until they are used.
"""

__all__ = [
    "CartEngine",
    "build_engine",
]


def __getattr__(name):
    """Lazy attribute access."""
    if name == "CartEngine":
        from cartsync.cart.engine import CartEngine
        return CartEngine
    elif name == "build_engine":
        from cartsync.factory import build_engine
        return build_engine
    raise AttributeError(f"module 'cartsync' has no attribute '{name}'")
