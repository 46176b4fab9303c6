"""Customer cart and the lock policy applied while adding to a placed order."""

import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from config import CART_IDLE_MINUTES
from errors import (
    DecreaseBelowOriginalError,
    RemovalOfOriginalError,
    TransitionNotAllowedError,
)
from merge import items_total
from schemas import CartItem, MenuItem, Order

logger = logging.getLogger(__name__)


def to_cart_item(item: MenuItem, quantity: int) -> CartItem:
    return CartItem(**item.model_dump(exclude={"quantity"}), quantity=quantity)


class CartStore:
    """Current selection, one line per item id, insertion ordered."""

    def __init__(self):
        self._lines: Dict[str, CartItem] = {}

    @property
    def items(self) -> List[CartItem]:
        return [line.model_copy() for line in self._lines.values()]

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def quantity_of(self, item_id: str) -> int:
        line = self._lines.get(item_id)
        return line.quantity if line else 0

    def add_item(self, item: MenuItem, quantity: int = 1) -> bool:
        """Add ``quantity`` of ``item``; returns False when the quantity is rejected."""
        if quantity < 1:
            return False
        line = self._lines.get(item.id)
        if line is not None:
            line.quantity += quantity
        else:
            self._lines[item.id] = to_cart_item(item, quantity)
        return True

    def set_quantity(self, item_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(item_id)
            return
        line = self._lines.get(item_id)
        if line is not None:
            line.quantity = quantity

    def remove_item(self, item_id: str) -> None:
        self._lines.pop(item_id, None)

    def total_amount(self) -> int:
        return items_total(list(self._lines.values()))

    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def replace_all(self, items: Iterable[CartItem]) -> None:
        self._lines = {}
        for item in items:
            self._lines[item.id] = item.model_copy()

    def clear(self) -> None:
        self._lines = {}


class UpdateFlow:
    """
    A cart seeded from a persisted order.

    Seeded lines can only grow: their quantity may not drop below what was
    already ordered and they cannot be removed. Lines added during the flow
    follow the normal cart rules.
    """

    def __init__(self, order: Order, cart: Optional[CartStore] = None):
        if order.order_status == "completed":
            raise TransitionNotAllowedError("Completed orders cannot be updated")
        self.order = order
        self.cart = cart if cart is not None else CartStore()
        self.cart.replace_all(order.items)
        self._original = {item.id: item.quantity for item in order.items}

    @property
    def original_quantities(self) -> Dict[str, int]:
        return dict(self._original)

    def original_quantity(self, item_id: str) -> Optional[int]:
        return self._original.get(item_id)

    def is_decrease_below_original(self, item_id: str, new_quantity: int) -> bool:
        original = self.original_quantity(item_id)
        return original is not None and new_quantity < original

    def is_removal_of_original(self, item_id: str) -> bool:
        return self.original_quantity(item_id) is not None

    def add_item(self, item: MenuItem, quantity: int = 1) -> bool:
        return self.cart.add_item(item, quantity)

    def set_quantity(self, item_id: str, quantity: int) -> None:
        if self.is_decrease_below_original(item_id, quantity):
            raise DecreaseBelowOriginalError(item_id, self._original[item_id])
        self.cart.set_quantity(item_id, quantity)

    def remove_item(self, item_id: str) -> None:
        if self.is_removal_of_original(item_id):
            raise RemovalOfOriginalError(item_id)
        self.cart.remove_item(item_id)


CartEntry = Union[CartStore, UpdateFlow]


class CartRegistry:
    """
    Carts of the customers currently browsing, keyed by cart id.

    A cart not read or written for ``idle_minutes`` is dropped the next time
    a cart is opened or looked up.
    """

    def __init__(self, idle_minutes: float = CART_IDLE_MINUTES, clock: Callable[[], float] = time.monotonic):
        self._carts: Dict[str, CartEntry] = {}
        self._last_used: Dict[str, float] = {}
        self._idle_seconds = idle_minutes * 60
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._carts)

    def create(self) -> str:
        return self._add(CartStore())

    def open_update(self, order: Order) -> str:
        cart_id = self._add(UpdateFlow(order))
        logger.info("Update flow %s opened for order %s", cart_id, order.id)
        return cart_id

    def get(self, cart_id: str) -> Optional[CartEntry]:
        with self._lock:
            now = self._clock()
            self._prune(now)
            entry = self._carts.get(cart_id)
            if entry is not None:
                self._last_used[cart_id] = now
            return entry

    def discard(self, cart_id: str) -> None:
        with self._lock:
            self._carts.pop(cart_id, None)
            self._last_used.pop(cart_id, None)

    def _add(self, entry: CartEntry) -> str:
        cart_id = uuid4().hex
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._carts[cart_id] = entry
            self._last_used[cart_id] = now
        return cart_id

    def _prune(self, now: float) -> None:
        expired = [cid for cid, used in self._last_used.items() if now - used >= self._idle_seconds]
        for cart_id in expired:
            del self._carts[cart_id]
            del self._last_used[cart_id]
        if expired:
            logger.info("Dropped %d idle carts", len(expired))
