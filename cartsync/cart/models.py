"""Cart models with Decimal-based pricing."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from pydantic import BaseModel, field_validator

from cartsync.errors import CapacityExceeded
from cartsync.money import to_decimal, to_optional_decimal, multiply, round_money

LineKey = Tuple[str, Optional[str]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CartLine:
    """One purchasable line, keyed by (product_id, variant_id)."""
    product_id: str
    variant_id: Optional[str]
    name: str
    sku: str
    unit_price_base: Decimal
    quantity: int
    max_quantity: int
    unit_price_sale: Optional[Decimal] = None
    variant_name: Optional[str] = None
    image: Optional[str] = None

    def __post_init__(self):
        self.unit_price_base = to_decimal(self.unit_price_base)
        self.unit_price_sale = to_optional_decimal(self.unit_price_sale)

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.variant_id)

    @property
    def line_id(self) -> str:
        """Stable display id, e.g. ``prod-1-default``."""
        return f"{self.product_id}-{self.variant_id or 'default'}"

    @property
    def is_available(self) -> bool:
        """False once the stock ceiling has dropped to zero."""
        return self.max_quantity > 0

    @property
    def unit_price(self) -> Decimal:
        """Sale price when present, else base price."""
        if self.unit_price_sale:
            return self.unit_price_sale
        return self.unit_price_base

    @property
    def total_price(self) -> Decimal:
        return round_money(multiply(self.unit_price, self.quantity))

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "variant_name": self.variant_name,
            "sku": self.sku,
            "unit_price_base": str(self.unit_price_base),
            "unit_price_sale": None if self.unit_price_sale is None else str(self.unit_price_sale),
            "image": self.image,
            "quantity": self.quantity,
            "max_quantity": self.max_quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        """Create from dictionary; raises on missing or malformed fields."""
        quantity = int(data["quantity"])
        max_quantity = int(data["max_quantity"])
        if quantity < 1 or max_quantity < 0:
            raise ValueError(f"Invalid quantities for {data['product_id']}: {quantity}/{max_quantity}")
        return cls(
            product_id=str(data["product_id"]),
            variant_id=data.get("variant_id"),
            name=data["name"],
            variant_name=data.get("variant_name"),
            sku=data.get("sku", ""),
            unit_price_base=to_decimal(data["unit_price_base"]),
            unit_price_sale=to_optional_decimal(data.get("unit_price_sale")),
            image=data.get("image"),
            quantity=quantity,
            max_quantity=max_quantity,
        )


@dataclass
class CartSnapshot:
    """Full set of cart lines at one instant plus a logical version."""
    items: List[CartLine] = field(default_factory=list)
    version: int = 0
    updated_at: str = field(default="", compare=False)

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = _now()

    @classmethod
    def empty(cls) -> "CartSnapshot":
        return cls(items=[], version=0)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total_items(self) -> int:
        """Total number of units in cart."""
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        """Sum of line totals for lines that can still be purchased."""
        return sum((item.total_price for item in self.items if item.is_available), Decimal("0"))

    def find(self, product_id: str, variant_id: Optional[str] = None) -> Optional[CartLine]:
        return next((item for item in self.items if item.key == (product_id, variant_id)), None)

    def copy(self) -> "CartSnapshot":
        """Deep enough copy: lines are duplicated so callers cannot mutate ours."""
        return CartSnapshot(
            items=[replace(item) for item in self.items],
            version=self.version,
            updated_at=self.updated_at,
        )

    def quantities(self) -> dict:
        """``{(product_id, variant_id): quantity}`` view, handy for comparisons."""
        return {item.key: item.quantity for item in self.items}

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        return {
            "items": [item.to_dict() for item in self.items],
            "version": self.version,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartSnapshot":
        """Create from dictionary."""
        raw_items = data.get("items", [])
        if not isinstance(raw_items, list) or not all(isinstance(item, dict) for item in raw_items):
            raise ValueError("Cart items must be a list of objects")
        items = [CartLine.from_dict(item) for item in raw_items]
        keys = {item.key for item in items}
        if len(keys) != len(items):
            raise ValueError("Duplicate cart line keys")
        return cls(
            items=items,
            version=int(data.get("version", 0)),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class CartMutation:
    """Outcome of a cart mutation, returned to the caller."""
    line: Optional[CartLine]
    requested: int
    clamped: bool = False
    available: bool = True
    changed: bool = False
    version: int = 0
    product_id: Optional[str] = None
    ceiling: Optional[int] = None

    def raise_for_capacity(self) -> "CartMutation":
        """Raise CapacityExceeded if the request was clamped to the stock ceiling."""
        if self.clamped:
            raise CapacityExceeded(self.product_id or "", self.requested, max(self.ceiling or 0, 0))
        return self


# ============================================================
# Catalog rows
# ============================================================

ACTIVE_STATUS = "active"


def is_active_status(status: Optional[str]) -> bool:
    """Listing status check; rows without a status column count as active."""
    return status is None or status == ACTIVE_STATUS


class VariantRef(BaseModel):
    """Row from product_variants."""
    id: str
    name: Optional[str] = None
    sku_suffix: Optional[str] = None
    price_adjustment: Decimal = Decimal("0")
    stock_quantity: Optional[int] = None
    image_url: Optional[str] = None

    class Config:
        extra = "ignore"

    @field_validator("price_adjustment", mode="before")
    @classmethod
    def convert_adjustment_to_decimal(cls, v):
        return to_decimal(v)


class ProductRef(BaseModel):
    """Row from products, as much as the cart needs."""
    id: str
    name: str
    sku: str = ""
    base_price: Decimal
    sale_price: Optional[Decimal] = None
    images: list = []
    stock_quantity: int = 0
    status: Optional[str] = ACTIVE_STATUS

    class Config:
        extra = "ignore"

    @field_validator("base_price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return to_decimal(v)

    @field_validator("sale_price", mode="before")
    @classmethod
    def convert_sale_price_to_decimal(cls, v):
        return to_optional_decimal(v)

    @property
    def is_active(self) -> bool:
        return is_active_status(self.status)

    @property
    def first_image(self) -> Optional[str]:
        if not self.images:
            return None
        first = self.images[0]
        if isinstance(first, dict):
            return first.get("url")
        return first


def build_line(
    product: ProductRef,
    variant: Optional[VariantRef],
    quantity: int,
    max_quantity: int,
) -> CartLine:
    """Build a new cart line from catalog rows, applying the variant's adjustments."""
    adjustment = variant.price_adjustment if variant else Decimal("0")
    sale_price = product.sale_price + adjustment if product.sale_price else None
    if variant:
        sku = f"{product.sku}-{variant.sku_suffix}" if variant.sku_suffix else product.sku
        image = variant.image_url or product.first_image
    else:
        sku = product.sku
        image = product.first_image
    return CartLine(
        product_id=product.id,
        variant_id=variant.id if variant else None,
        name=product.name,
        variant_name=variant.name if variant else None,
        sku=sku,
        unit_price_base=product.base_price + adjustment,
        unit_price_sale=sale_price,
        image=image,
        quantity=quantity,
        max_quantity=max_quantity,
    )
