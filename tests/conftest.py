"""Pytest configuration and fixtures"""
import os
import pytest
from unittest.mock import Mock, AsyncMock

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")
os.environ.setdefault("CART_SYNC_RETRY_ATTEMPTS", "2")

from cartsync.cart import (
    CartEngine,
    IdentitySignal,
    InMemoryLocalStore,
    InMemoryStockOracle,
)
from tests.helpers import RecordingRemoteCartStore, make_product


@pytest.fixture
def stock_oracle():
    """Ceilings: A=5, B=10, C=3, OUT=0."""
    return InMemoryStockOracle({"A": 5, "B": 10, "C": 3, "OUT": 0})


@pytest.fixture
def local_store():
    return InMemoryLocalStore()


@pytest.fixture
def remote_store():
    return RecordingRemoteCartStore()


@pytest.fixture
def identity_signal():
    return IdentitySignal()


@pytest.fixture
def engine(local_store, remote_store, stock_oracle, identity_signal):
    """Initialized engine, anonymous, not yet subscribed to the identity signal."""
    cart = CartEngine(local_store, remote_store, stock_oracle, identity_signal)
    cart.init()
    return cart


@pytest.fixture
def product_a():
    return make_product("A", price=100.0, stock=5)


@pytest.fixture
def product_b():
    return make_product("B", price=50.0, stock=10, sale_price=40.0)


@pytest.fixture
def mock_supabase_client():
    """Mock async Supabase client (every builder call returns the same table mock)."""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.order.return_value = table_mock
    table_mock.in_.return_value = table_mock
    table_mock.not_ = table_mock
    table_mock.execute = AsyncMock(return_value=Mock(data=[]))

    client.table.return_value = table_mock
    return client


@pytest.fixture
def mock_supabase_sync_client():
    """Mock sync Supabase client."""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute.return_value = Mock(data=[])

    client.table.return_value = table_mock
    return client


@pytest.fixture
def mock_redis():
    """Mock sync Upstash Redis client backed by a dict."""
    data = {}
    redis = Mock()
    redis.data = data
    redis.get.side_effect = lambda key: data.get(key)
    redis.set.side_effect = lambda key, value, ex=None: data.__setitem__(key, value)
    redis.delete.side_effect = lambda key: data.pop(key, None)
    return redis
