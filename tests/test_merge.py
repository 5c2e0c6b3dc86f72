"""
Tests for the merge resolver
"""

from decimal import Decimal

from cartsync.cart import CartSnapshot, InMemoryStockOracle, merge_snapshots
from tests.helpers import make_line, make_snapshot


def ceilings(**values):
    return InMemoryStockOracle(values).current_ceiling


class TestMergeIdentity:
    """Empty snapshot is the identity element."""

    def test_merge_with_empty_remote(self):
        """merge(S, empty) == S"""
        local = make_snapshot(make_line("A", 3), make_line("B", 1, variant_id="v1"))

        merged = merge_snapshots(local, CartSnapshot.empty(), ceilings(A=10, B=10))

        assert merged.items == local.items

    def test_merge_with_empty_local(self):
        """merge(empty, S) == S"""
        remote = make_snapshot(make_line("A", 3), make_line("B", 2))

        merged = merge_snapshots(CartSnapshot.empty(), remote, ceilings(A=10, B=10))

        assert merged.items == remote.items

    def test_merge_idempotent(self):
        """merge(S, S) == S when ceilings match."""
        snapshot = make_snapshot(make_line("A", 3, max_quantity=10), make_line("B", 2, max_quantity=10))

        merged = merge_snapshots(snapshot, snapshot, ceilings(A=10, B=10))

        assert merged.items == snapshot.items

    def test_merge_idempotent_after_clamp(self):
        """merge(S, S) clamps to a lower ceiling, then is stable."""
        snapshot = make_snapshot(make_line("A", 8, max_quantity=10))
        lookup = ceilings(A=4)

        once = merge_snapshots(snapshot, snapshot, lookup)
        twice = merge_snapshots(once, once, lookup)

        assert once.quantities() == {("A", None): 4}
        assert twice.items == once.items


class TestMergeSharedKeys:
    """Keys present on both sides."""

    def test_takes_max_quantity(self):
        """Scenario B: local {A:3}, remote {A:1, B:2} -> {A:3, B:2}"""
        local = make_snapshot(make_line("A", 3))
        remote = make_snapshot(make_line("A", 1), make_line("B", 2))

        merged = merge_snapshots(local, remote, ceilings(A=10, B=10))

        assert merged.quantities() == {("A", None): 3, ("B", None): 2}

    def test_quantity_capped_by_fresh_ceiling(self):
        """quantity == min(ceiling, max(L, R))"""
        local = make_snapshot(make_line("A", 7, max_quantity=10))
        remote = make_snapshot(make_line("A", 2, max_quantity=10))

        merged = merge_snapshots(local, remote, ceilings(A=5))

        line = merged.find("A")
        assert line.quantity == 5
        assert line.max_quantity == 5

    def test_display_fields_from_remote(self):
        """Remote catalog data wins for prices and names."""
        local = make_snapshot(make_line("A", 1, price="100"))
        remote_line = make_line("A", 1, price="120")
        remote_line.name = "Renamed"
        remote = make_snapshot(remote_line)

        merged = merge_snapshots(local, remote, ceilings(A=10))

        assert merged.find("A").unit_price_base == Decimal("120")
        assert merged.find("A").name == "Renamed"

    def test_zero_ceiling_surfaces_unavailable(self):
        """Out-of-stock shared lines stay, flagged unavailable."""
        local = make_snapshot(make_line("A", 2))
        remote = make_snapshot(make_line("A", 1))

        merged = merge_snapshots(local, remote, ceilings(A=0))

        line = merged.find("A")
        assert line.is_available is False
        assert line.quantity == 2

    def test_variants_are_distinct_keys(self):
        """(product, variant) is the key, not the product alone."""
        local = make_snapshot(make_line("A", 1, variant_id="red"))
        remote = make_snapshot(make_line("A", 2, variant_id="blue"), make_line("A", 3))

        merged = merge_snapshots(local, remote, ceilings(A=10))

        assert merged.quantities() == {("A", "red"): 1, ("A", "blue"): 2, ("A", None): 3}


class TestMergeVersion:
    """Merge starts a new logical clock."""

    def test_version_reset(self):
        local = make_snapshot(make_line("A", 1), version=12)
        remote = make_snapshot(make_line("B", 1), version=4)

        merged = merge_snapshots(local, remote, ceilings(A=10, B=10))

        assert merged.version == 0

    def test_inputs_not_mutated(self):
        local = make_snapshot(make_line("A", 9))
        remote = make_snapshot(make_line("A", 1))

        merge_snapshots(local, remote, ceilings(A=3))

        assert local.find("A").quantity == 9
        assert remote.find("A").quantity == 1
