"""
Repository Pattern for Database Operations

- CartRepository: per-user cart_items rows (remote cart)
- StockRepository: product / variant stock ceilings
"""
from .cart_repo import CartRepository
from .stock_repo import StockRepository

__all__ = [
    "CartRepository",
    "StockRepository",
]
