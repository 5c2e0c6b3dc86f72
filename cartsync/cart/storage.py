"""
Persistent local storage for the device's cart snapshot.

Every store follows the same contract:
- load() never raises; missing or corrupt data yields an empty snapshot
- save() never raises; it returns False when the write did not happen
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from cartsync.db import get_redis_sync, RedisKeys, TTL, CART_DEVICE_ID
from cartsync.errors import ERROR_LOCAL_STORE_CORRUPT, ERROR_LOCAL_STORE_UNAVAILABLE
from cartsync.logging import get_logger, sanitize_id_for_logging
from .models import CartSnapshot

logger = get_logger(__name__)

_CORRUPT_ERRORS = (json.JSONDecodeError, KeyError, TypeError, ValueError)


class LocalStore(Protocol):
    """Contract for device-local persistence."""

    def load(self) -> CartSnapshot: ...

    def save(self, snapshot: CartSnapshot) -> bool: ...

    def clear(self) -> bool: ...


def decode_snapshot(raw: str | bytes | None) -> Optional[CartSnapshot]:
    """Decode a stored payload; None when there is nothing stored.

    Raises json/Key/Type/ValueError on corrupt payloads, including bytes
    that are not UTF-8 and JSON that is not an object.
    """
    if not raw:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return CartSnapshot.from_dict(data)


def encode_snapshot(snapshot: CartSnapshot) -> str:
    return json.dumps(snapshot.to_dict())


class RedisLocalStore:
    """
    Keeps the device snapshot in Upstash Redis.

    Features:
    - One key per device (cart:device:{device_id})
    - TTL so abandoned device carts expire
    - Corrupt payloads are deleted on load
    """

    def __init__(self, device_id: str = CART_DEVICE_ID, ttl: int = TTL.DEVICE_CART, redis=None):
        self.device_id = device_id
        self.ttl = ttl
        self._redis = redis  # Lazy initialization

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_sync()
        return self._redis

    @property
    def key(self) -> str:
        return RedisKeys.device_cart_key(self.device_id)

    def load(self) -> CartSnapshot:
        """Load the device snapshot, or an empty one."""
        try:
            raw = self.redis.get(self.key)
        except Exception as e:
            logger.error(f"{ERROR_LOCAL_STORE_UNAVAILABLE}: {e}")
            return CartSnapshot.empty()

        try:
            snapshot = decode_snapshot(raw)
        except _CORRUPT_ERRORS as e:
            logger.warning(
                f"{ERROR_LOCAL_STORE_CORRUPT} for device {sanitize_id_for_logging(self.device_id)}: {e}"
            )
            self.clear()
            return CartSnapshot.empty()

        return snapshot if snapshot is not None else CartSnapshot.empty()

    def save(self, snapshot: CartSnapshot) -> bool:
        """Save snapshot with TTL."""
        try:
            self.redis.set(self.key, encode_snapshot(snapshot), ex=self.ttl)
            return True
        except Exception as e:
            logger.error(f"Failed to save cart to Redis: {e}")
            return False

    def clear(self) -> bool:
        try:
            self.redis.delete(self.key)
            return True
        except Exception as e:
            logger.error(f"Failed to clear cart from Redis: {e}")
            return False


class JsonFileLocalStore:
    """Keeps the device snapshot in a JSON file, written atomically."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> CartSnapshot:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return CartSnapshot.empty()
        except OSError as e:
            logger.error(f"{ERROR_LOCAL_STORE_UNAVAILABLE}: {e}")
            return CartSnapshot.empty()

        try:
            snapshot = decode_snapshot(raw)
        except _CORRUPT_ERRORS as e:
            logger.warning(f"{ERROR_LOCAL_STORE_CORRUPT} in {self.path}: {e}")
            self.clear()
            return CartSnapshot.empty()

        return snapshot if snapshot is not None else CartSnapshot.empty()

    def save(self, snapshot: CartSnapshot) -> bool:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".cart-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(encode_snapshot(snapshot))
            os.replace(tmp_name, self.path)
            return True
        except OSError as e:
            logger.error(f"Failed to save cart to {self.path}: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

    def clear(self) -> bool:
        try:
            self.path.unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.error(f"Failed to remove {self.path}: {e}")
            return False


class InMemoryLocalStore:
    """Process-lifetime store for tests and throwaway sessions."""

    def __init__(self, snapshot: Optional[CartSnapshot] = None):
        self._raw: Optional[str] = encode_snapshot(snapshot) if snapshot else None

    def load(self) -> CartSnapshot:
        try:
            snapshot = decode_snapshot(self._raw)
        except _CORRUPT_ERRORS as e:
            logger.warning(f"{ERROR_LOCAL_STORE_CORRUPT}: {e}")
            self._raw = None
            return CartSnapshot.empty()
        return snapshot if snapshot is not None else CartSnapshot.empty()

    def save(self, snapshot: CartSnapshot) -> bool:
        self._raw = encode_snapshot(snapshot)
        return True

    def clear(self) -> bool:
        self._raw = None
        return True
