"""Identity signal and cart context."""
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from cartsync.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

IdentityCallback = Callable[[Optional[str]], None]


@dataclass(frozen=True)
class CartContext:
    """Anonymous when identity is None, otherwise Authenticated(identity)."""
    identity: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def __str__(self) -> str:
        if self.identity is None:
            return "Anonymous"
        return f"Authenticated({sanitize_id_for_logging(self.identity)})"


ANONYMOUS = CartContext()


class IdentitySource(Protocol):
    def current_identity(self) -> Optional[str]: ...

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]: ...


class IdentitySignal:
    """
    In-process identity signal.

    The auth layer calls ``set_identity`` on sign-in/sign-out (and with the
    restored session at startup); subscribers hear about actual changes only.
    """

    def __init__(self, identity: Optional[str] = None):
        self._identity = identity
        self._callbacks: List[IdentityCallback] = []

    def current_identity(self) -> Optional[str]:
        return self._identity

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_identity(self, identity: Optional[str]) -> None:
        if identity == self._identity:
            return
        self._identity = identity
        logger.info(f"Identity changed: {CartContext(identity)}")
        for callback in list(self._callbacks):
            try:
                callback(identity)
            except Exception as e:
                logger.error(f"Identity subscriber failed: {e}", exc_info=True)

    def sign_in(self, identity: str) -> None:
        self.set_identity(identity)

    def sign_out(self) -> None:
        self.set_identity(None)
