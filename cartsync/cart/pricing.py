"""Cart totals: shipping and tax on top of the line subtotal."""
from dataclasses import dataclass
from decimal import Decimal

from cartsync.money import round_money, to_decimal, to_float
from .models import CartSnapshot

FREE_SHIPPING_THRESHOLD = Decimal("2999")
SHIPPING_FEE = Decimal("99")
TAX_RATE = Decimal("0.18")  # GST


@dataclass
class CartTotals:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal


def calculate_totals(subtotal) -> CartTotals:
    """
    Totals for a subtotal.

    Shipping is free above FREE_SHIPPING_THRESHOLD and for an empty cart;
    tax applies to the subtotal only.
    """
    subtotal = round_money(to_decimal(subtotal))
    if subtotal <= 0 or subtotal >= FREE_SHIPPING_THRESHOLD:
        shipping = Decimal("0")
    else:
        shipping = SHIPPING_FEE
    tax = round_money(subtotal * TAX_RATE)
    return CartTotals(
        subtotal=subtotal,
        shipping=round_money(shipping),
        tax=tax,
        total=round_money(subtotal + shipping + tax),
    )


def summarize(snapshot: CartSnapshot) -> dict:
    """Cart summary for presentation code."""
    if snapshot.is_empty:
        return {
            "is_empty": True,
            "total_items": 0,
            "items": [],
            "subtotal": 0.0,
            "shipping": 0.0,
            "tax": 0.0,
            "total": 0.0,
            "version": snapshot.version,
        }

    totals = calculate_totals(snapshot.subtotal)
    return {
        "is_empty": False,
        "total_items": snapshot.total_items,
        "items": [
            {
                "id": item.line_id,
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "name": item.name,
                "variant_name": item.variant_name,
                "sku": item.sku,
                "image": item.image,
                "quantity": item.quantity,
                "max_quantity": item.max_quantity,
                "is_available": item.is_available,
                "unit_price": to_float(item.unit_price),
                "total_price": to_float(item.total_price),
            }
            for item in snapshot.items
        ],
        "subtotal": to_float(totals.subtotal),
        "shipping": to_float(totals.shipping),
        "tax": to_float(totals.tax),
        "total": to_float(totals.total),
        "version": snapshot.version,
    }
