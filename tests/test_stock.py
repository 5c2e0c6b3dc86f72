"""
Tests for stock oracles
"""

from unittest.mock import Mock

from cartsync.repositories import StockRepository
from cartsync.cart import InMemoryStockOracle, SupabaseStockOracle


def active(stock):
    return {"stock_quantity": stock, "status": "active"}


class TestSupabaseStockOracle:

    def test_product_stock(self, mock_supabase_sync_client):
        mock_supabase_sync_client.table.return_value.execute.return_value = Mock(data=[active(7)])
        oracle = SupabaseStockOracle(StockRepository(mock_supabase_sync_client))

        assert oracle.current_ceiling("A") == 7
        mock_supabase_sync_client.table.assert_called_with("products")
        mock_supabase_sync_client.table.return_value.select.assert_called_with("stock_quantity, status")

    def test_variant_stock_first(self):
        repo = Mock()
        repo.get_product.return_value = active(9)
        repo.get_variant_stock.return_value = 2
        oracle = SupabaseStockOracle(repo)

        assert oracle.current_ceiling("A", "v1") == 2
        repo.get_variant_stock.assert_called_once_with("v1")

    def test_untracked_variant_falls_back_to_product(self):
        repo = Mock()
        repo.get_variant_stock.return_value = None
        repo.get_product.return_value = active(4)
        oracle = SupabaseStockOracle(repo)

        assert oracle.current_ceiling("A", "v1") == 4

    def test_unknown_product_is_zero(self, mock_supabase_sync_client):
        oracle = SupabaseStockOracle(StockRepository(mock_supabase_sync_client))

        assert oracle.current_ceiling("missing") == 0

    def test_inactive_product_is_zero(self):
        """Test a delisted product cannot be bought whatever its stock."""
        repo = Mock()
        repo.get_product.return_value = {"stock_quantity": 8, "status": "archived"}
        repo.get_variant_stock.return_value = 3
        oracle = SupabaseStockOracle(repo)

        assert oracle.current_ceiling("A") == 0
        assert oracle.current_ceiling("A", "v1") == 0
        repo.get_variant_stock.assert_not_called()

    def test_missing_status_counts_as_active(self):
        repo = Mock()
        repo.get_product.return_value = {"stock_quantity": 5}
        oracle = SupabaseStockOracle(repo)

        assert oracle.current_ceiling("A") == 5

    def test_lookup_error_uses_last_known(self):
        repo = Mock()
        repo.get_product.return_value = active(6)
        oracle = SupabaseStockOracle(repo)
        oracle.current_ceiling("A")

        repo.get_product.side_effect = ConnectionError("catalog down")

        assert oracle.current_ceiling("A") == 6
        assert oracle.current_ceiling("B") == 0


class TestInMemoryStockOracle:

    def test_variant_falls_back_to_product(self):
        oracle = InMemoryStockOracle({"A": 5, ("A", "v1"): 2})

        assert oracle.current_ceiling("A", "v1") == 2
        assert oracle.current_ceiling("A", "v2") == 5
        assert oracle.current_ceiling("Z") == 0

    def test_negative_clamped(self):
        oracle = InMemoryStockOracle()
        oracle.set("A", None, -3)

        assert oracle.current_ceiling("A") == 0
