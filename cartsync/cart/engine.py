"""Cart engine: owns the working cart, persists it, and keeps the remote copy in step."""
import asyncio
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Set, Union

from cartsync.errors import (
    PersistenceFailure,
    ERROR_LOCAL_STORE_UNAVAILABLE,
    ERROR_PRODUCT_ID_REQUIRED,
    ERROR_PRODUCT_REQUIRED,
    ERROR_QUANTITY_NOT_INT,
    ERROR_QUANTITY_NOT_POSITIVE,
)
from cartsync.logging import get_logger, sanitize_id_for_logging
from .identity import ANONYMOUS, CartContext, IdentitySource
from .merge import merge_snapshots
from .models import CartLine, CartMutation, CartSnapshot, LineKey, ProductRef, VariantRef, build_line
from .pricing import summarize
from .remote import RemoteCartStore
from .stock import StockOracle
from .storage import LocalStore
from .sync import RemoteSyncQueue, SyncOrder

logger = get_logger(__name__)

SnapshotCallback = Callable[[CartSnapshot], None]


def _check_quantity(quantity) -> None:
    # bool is an int subclass; True is not a quantity
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValueError(ERROR_QUANTITY_NOT_INT)


class CartEngine:
    """
    The cart for one device.

    Features:
    - Synchronous mutations: memory, then local store, then a queued remote push
    - Clamps quantities to stock ceilings and reports when it did
    - Merges the device cart into the identity's remote cart on sign-in
    - Empties the device cart on sign-out, leaving the remote cart intact

    Built once by the application root and passed to whoever needs it.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: RemoteCartStore,
        stock_oracle: StockOracle,
        identity_signal: Optional[IdentitySource] = None,
    ):
        self._local = local_store
        self._remote = remote_store
        self._stock = stock_oracle
        self._identity_signal = identity_signal
        self._unsubscribe_identity: Optional[Callable[[], None]] = None

        self._snapshot = CartSnapshot.empty()
        self._context: CartContext = ANONYMOUS
        self._subscribers: List[SnapshotCallback] = []
        self._queues: Dict[str, RemoteSyncQueue] = {}
        self._transitions: Set[asyncio.Task] = set()
        self._deferred_identity: Optional[str] = None
        self._has_deferred_identity = False

        # Bumped on every identity transition; a sign-in whose fetch finishes
        # under an older generation is thrown away.
        self._generation = 0
        # Bumped on every merge adoption; first half of the sync order.
        self._epoch = 0
        self._pending_identity: Optional[str] = None
        # Identity whose sign-in fetch failed; retried by resync() and the next mutation
        self._failed_identity: Optional[str] = None

        self._initialized = False
        self.is_loading = False
        self.last_error: Optional[Exception] = None

    # ============================================================
    # Lifecycle
    # ============================================================

    def init(self) -> CartSnapshot:
        """Load the device snapshot from the local store."""
        try:
            snapshot = self._local.load()
        except Exception as e:
            logger.error(f"{ERROR_LOCAL_STORE_UNAVAILABLE}: {e}")
            self.last_error = PersistenceFailure(str(e))
            snapshot = CartSnapshot.empty()

        self._snapshot = snapshot
        self._initialized = True
        logger.info(f"Cart loaded: {len(snapshot.items)} lines, version {snapshot.version}")
        self._notify()
        return self.snapshot

    async def start(self) -> None:
        """Load, subscribe to identity changes, and sign in if already identified."""
        if not self._initialized:
            self.init()
        if self._identity_signal is None:
            return
        if self._unsubscribe_identity is None:
            self._unsubscribe_identity = self._identity_signal.on_change(self._on_identity_change)
        identity = self._identity_signal.current_identity()
        if identity is not None:
            await self.handle_identity_change(identity)

    def reset(self) -> None:
        """Empty the working cart and the local store."""
        self._snapshot = CartSnapshot.empty()
        self._persist()
        self._notify()

    async def flush(self) -> None:
        """Wait for identity transitions and remote pushes to settle."""
        if self._has_deferred_identity:
            identity = self._deferred_identity
            self._has_deferred_identity = False
            self._deferred_identity = None
            await self.handle_identity_change(identity)

        while True:
            running = [task for task in self._transitions if not task.done()]
            if not running:
                break
            results = await asyncio.gather(*running, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Identity transition failed: {result}")
                    self.last_error = result

        for queue in list(self._queues.values()):
            await queue.flush()

    async def close(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        await self.flush()

    # ============================================================
    # Reads
    # ============================================================

    @property
    def snapshot(self) -> CartSnapshot:
        """Copy of the working snapshot; changing it does not change the cart."""
        return self._snapshot.copy()

    @property
    def context(self) -> CartContext:
        return self._context

    @property
    def version(self) -> int:
        return self._snapshot.version

    @property
    def is_syncing(self) -> bool:
        return any(queue.is_busy for queue in self._queues.values())

    def get_items(self) -> List[CartLine]:
        return self.snapshot.items

    def find_item(self, product_id: str, variant_id: Optional[str] = None) -> Optional[CartLine]:
        line = self._snapshot.find(product_id, variant_id)
        return replace(line) if line else None

    def get_unavailable_items(self) -> List[CartLine]:
        """Lines whose stock ceiling has dropped to zero."""
        return [replace(item) for item in self._snapshot.items if not item.is_available]

    def get_item_count(self) -> int:
        return self._snapshot.total_items

    def get_subtotal(self) -> Decimal:
        return self._snapshot.subtotal

    def get_total(self) -> Decimal:
        # Coupons would apply here
        return self.get_subtotal()

    def get_summary(self) -> dict:
        return summarize(self._snapshot)

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Call ``callback(snapshot)`` after every change; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ============================================================
    # Mutations
    # ============================================================

    def add_item(
        self,
        product: Union[ProductRef, dict],
        variant: Union[VariantRef, dict, None] = None,
        quantity: int = 1,
    ) -> CartMutation:
        """Add ``quantity`` units, accumulating onto an existing line."""
        if not product:
            raise ValueError(ERROR_PRODUCT_REQUIRED)
        _check_quantity(quantity)
        if quantity < 1:
            raise ValueError(ERROR_QUANTITY_NOT_POSITIVE)

        if isinstance(product, dict):
            product = ProductRef(**product)
        if isinstance(variant, dict):
            variant = VariantRef(**variant)

        variant_id = variant.id if variant else None
        if product.is_active:
            ceiling = self._stock.current_ceiling(product.id, variant_id)
        else:
            ceiling = 0
        existing = self._snapshot.find(product.id, variant_id)

        if existing is None:
            if ceiling <= 0:
                logger.info(f"Not adding {product.id}: out of stock or inactive")
                return CartMutation(
                    line=None, requested=quantity, clamped=True, available=False,
                    version=self._snapshot.version, product_id=product.id, ceiling=ceiling,
                )
            line = build_line(product, variant, min(quantity, ceiling), ceiling)
            items = [replace(item) for item in self._snapshot.items] + [line]
            self._commit(items)
            return CartMutation(
                line=replace(line), requested=quantity, clamped=quantity > ceiling,
                changed=True, version=self._snapshot.version, product_id=product.id, ceiling=ceiling,
            )

        return self._set_line_quantity(existing, existing.quantity + quantity, ceiling)

    def update_quantity(
        self,
        product_id: str,
        variant_id: Optional[str],
        quantity: int,
    ) -> CartMutation:
        """Set a line's quantity; zero or less removes it, absent lines are left alone."""
        if not product_id or not isinstance(product_id, str):
            raise ValueError(ERROR_PRODUCT_ID_REQUIRED)
        _check_quantity(quantity)

        if quantity <= 0:
            return self.remove_item(product_id, variant_id)

        existing = self._snapshot.find(product_id, variant_id)
        if existing is None:
            return CartMutation(line=None, requested=quantity, version=self._snapshot.version)

        ceiling = self._stock.current_ceiling(product_id, variant_id)
        return self._set_line_quantity(existing, quantity, ceiling)

    def remove_item(self, product_id: str, variant_id: Optional[str] = None) -> CartMutation:
        """Remove a line; no-op when absent."""
        key = (product_id, variant_id)
        if self._snapshot.find(product_id, variant_id) is None:
            return CartMutation(line=None, requested=0, version=self._snapshot.version)

        items = [replace(item) for item in self._snapshot.items if item.key != key]
        self._commit(items)
        return CartMutation(line=None, requested=0, changed=True, version=self._snapshot.version)

    def clear_cart(self) -> CartMutation:
        """Empty the cart (and, when signed in, the identity's remote cart)."""
        self._commit([])
        return CartMutation(line=None, requested=0, changed=True, version=self._snapshot.version)

    def refresh_ceilings(self) -> List[CartLine]:
        """
        Re-read every line's ceiling and clamp quantities to it.

        Returns the lines that were reduced or became unavailable.
        """
        items = []
        affected = []
        for item in self._snapshot.items:
            ceiling = self._stock.current_ceiling(item.product_id, item.variant_id)
            quantity = min(item.quantity, ceiling) if ceiling > 0 else item.quantity
            updated = replace(item, quantity=quantity, max_quantity=max(ceiling, 0))
            if quantity < item.quantity or (item.is_available and ceiling == 0):
                affected.append(replace(updated))
            items.append(updated)

        if items != self._snapshot.items:
            self._commit(items)
        return affected

    def _set_line_quantity(self, existing: CartLine, requested: int, ceiling: int) -> CartMutation:
        if ceiling <= 0:
            # Unpurchasable: keep the line so it can be shown as unavailable
            quantity = existing.quantity
            clamped = True
            available = False
        else:
            quantity = max(1, min(requested, ceiling))
            clamped = requested > ceiling
            available = True

        updated = replace(existing, quantity=quantity, max_quantity=max(ceiling, 0))
        if updated == existing:
            return CartMutation(
                line=replace(existing), requested=requested, clamped=clamped,
                available=available, version=self._snapshot.version,
                product_id=existing.product_id, ceiling=ceiling,
            )

        items = [updated if item.key == existing.key else replace(item) for item in self._snapshot.items]
        self._commit(items)
        return CartMutation(
            line=replace(updated), requested=requested, clamped=clamped,
            available=available, changed=True, version=self._snapshot.version,
            product_id=existing.product_id, ceiling=ceiling,
        )

    def _commit(self, items: List[CartLine]) -> None:
        self._snapshot = CartSnapshot(items=items, version=self._snapshot.version + 1)
        self._persist()
        self._notify()
        if self._context.is_authenticated:
            self._enqueue_sync(self._context.identity)
        elif self._failed_identity is not None:
            self._retry_sign_in()

    # ============================================================
    # Persistence / sync
    # ============================================================

    def _persist(self) -> None:
        try:
            saved = self._local.save(self._snapshot)
        except Exception as e:
            logger.error(f"Local save raised: {e}")
            saved = False
        if not saved:
            # Memory-only until a later save succeeds
            self.last_error = PersistenceFailure(ERROR_LOCAL_STORE_UNAVAILABLE)
            logger.warning(f"Cart version {self._snapshot.version} kept in memory only")

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self.snapshot)
            except Exception as e:
                logger.error(f"Cart subscriber failed: {e}", exc_info=True)

    def _queue_for(self, identity: str) -> RemoteSyncQueue:
        queue = self._queues.get(identity)
        if queue is None:
            queue = RemoteSyncQueue(
                identity,
                self._remote,
                on_error=self._on_sync_error,
                on_ack=self._on_sync_ack,
            )
            self._queues[identity] = queue
        return queue

    def _enqueue_sync(self, identity: str) -> None:
        self._queue_for(identity).submit(self._snapshot, epoch=self._epoch)

    def resync(self) -> bool:
        """
        Recover after a sync failure.

        Signed in: push the current snapshot again. Anonymous after a failed
        sign-in fetch: retry that sign-in. Returns False when there is nothing
        to retry.
        """
        if self._context.is_authenticated:
            self._enqueue_sync(self._context.identity)
            return True
        return self._retry_sign_in()

    def _retry_sign_in(self) -> bool:
        identity = self._failed_identity
        if identity is None or self._pending_identity is not None:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if not self._has_deferred_identity:
                self._deferred_identity = identity
                self._has_deferred_identity = True
            return True

        logger.info(f"Retrying sign-in for {sanitize_id_for_logging(identity)}")
        self._failed_identity = None
        # Claim the slot now so a burst of mutations schedules one retry
        self._pending_identity = identity
        task = loop.create_task(self._resume_sign_in(identity, self._generation))
        self._transitions.add(task)
        task.add_done_callback(self._transitions.discard)
        return True

    async def _resume_sign_in(self, identity: str, generation: int) -> bool:
        if generation != self._generation:
            # Signed out or switched before the retry ran
            return False
        return await self._sign_in(identity)

    def _on_sync_error(self, error: Exception) -> None:
        self.last_error = error

    def _on_sync_ack(self, order: SyncOrder) -> None:
        logger.debug(f"Remote cart acknowledged {order}")

    # ============================================================
    # Identity transitions
    # ============================================================

    def _on_identity_change(self, identity: Optional[str]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Identity changed outside an event loop; applying on next flush")
            self._deferred_identity = identity
            self._has_deferred_identity = True
            return

        task = loop.create_task(self.handle_identity_change(identity))
        self._transitions.add(task)
        task.add_done_callback(self._transitions.discard)

    async def handle_identity_change(self, identity: Optional[str]) -> bool:
        """
        Apply an identity transition.

        Returns True when a sign-in merged and adopted the remote cart.
        """
        current = self._context.identity
        if identity is not None and identity in (current, self._pending_identity):
            return False

        failed = self._failed_identity
        if current is not None or self._pending_identity is not None or (
            failed is not None and failed != identity
        ):
            self._sign_out()

        if identity is None:
            return False
        return await self._sign_in(identity)

    def _sign_out(self) -> None:
        identity = self._context.identity or self._pending_identity or self._failed_identity
        self._generation += 1
        self._context = ANONYMOUS
        self._pending_identity = None
        self._failed_identity = None
        self.is_loading = False
        # Queued pushes for the old identity still drain; only the device cart goes
        self.reset()
        logger.info(f"Signed out {sanitize_id_for_logging(identity)}; device cart cleared")

    def _read_ceilings(self, keys: List[LineKey]) -> Dict[LineKey, int]:
        """Stock lookups for a merge; runs in a worker thread since the oracle blocks."""
        return {key: self._stock.current_ceiling(*key) for key in keys}

    async def _sign_in(self, identity: str) -> bool:
        self._generation += 1
        generation = self._generation
        self._pending_identity = identity
        self.is_loading = True

        try:
            remote = await self._remote.fetch(identity)
        except Exception as e:
            if generation == self._generation:
                self._pending_identity = None
                self._failed_identity = identity
                self.is_loading = False
                self.last_error = e
            logger.error(f"Cart merge skipped for {sanitize_id_for_logging(identity)}: {e}")
            return False

        if generation == self._generation and remote.items:
            ceilings = await asyncio.to_thread(self._read_ceilings, [item.key for item in remote.items])
        else:
            ceilings = {}

        if generation != self._generation:
            logger.info("Discarding remote cart from a superseded sign-in")
            return False

        def ceiling_for(product_id: str, variant_id: Optional[str]) -> int:
            key = (product_id, variant_id)
            if key not in ceilings:
                ceilings[key] = self._stock.current_ceiling(product_id, variant_id)
            return ceilings[key]

        # Read local only now so mutations made during the fetch are merged too
        merged = merge_snapshots(self._snapshot, remote, ceiling_for)

        self._context = CartContext(identity)
        self._pending_identity = None
        self._failed_identity = None
        self.is_loading = False
        self._epoch += 1

        self._snapshot = merged
        self._persist()
        self._notify()
        self._enqueue_sync(identity)
        logger.info(
            f"Merged cart for {sanitize_id_for_logging(identity)}: "
            f"{len(merged.items)} lines"
        )
        return True
