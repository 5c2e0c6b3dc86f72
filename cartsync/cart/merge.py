"""
Merge Resolver

Combines the device-local snapshot with the identity's remote snapshot when a
visitor signs in. The function is pure apart from the ceiling lookup, which
is injected so merges always see current stock rather than either input's.
"""
from dataclasses import replace
from typing import Callable, Optional

from .models import CartLine, CartSnapshot

CeilingLookup = Callable[[str, Optional[str]], int]


def merge_lines(local: CartLine, remote: CartLine, ceiling: int) -> CartLine:
    """Merge two lines sharing a key.

    Quantity is the larger of the two, capped at the fresh ceiling. Display
    and price fields come from the remote line since it was fetched last.
    A zero ceiling keeps the line (flagged unavailable) instead of dropping it.
    """
    quantity = max(local.quantity, remote.quantity)
    if ceiling > 0:
        quantity = min(quantity, ceiling)
    return replace(remote, quantity=quantity, max_quantity=max(ceiling, 0))


def merge_snapshots(
    local: CartSnapshot,
    remote: CartSnapshot,
    ceiling: CeilingLookup,
) -> CartSnapshot:
    """
    Merge local and remote snapshots into a new one with version 0.

    Args:
        local: Device snapshot (what the visitor built while anonymous)
        remote: Snapshot stored for the identity
        ceiling: ``(product_id, variant_id) -> int`` stock lookup

    Returns:
        Merged snapshot; local-only and remote-only lines are kept unchanged
    """
    remote_by_key = {item.key: item for item in remote.items}
    merged = []

    for item in local.items:
        other = remote_by_key.pop(item.key, None)
        if other is None:
            merged.append(replace(item))
        else:
            merged.append(merge_lines(item, other, ceiling(item.product_id, item.variant_id)))

    # Remaining remote-only lines, in remote order
    merged.extend(replace(item) for item in remote.items if item.key in remote_by_key)

    return CartSnapshot(items=merged, version=0)
