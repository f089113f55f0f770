# storefront_sync/services/optimistic_cart.py
"""Client-held projection of the cart.

Two layers: the last authoritative snapshot fetched from the server and
an ordered overlay of actions dispatched since. The visible cart is the
overlay folded over the snapshot. Whenever a fresh server snapshot lands
the overlay is dropped wholesale, never merged, so a stale response can
briefly "revert" optimistic changes until the server catches up.
"""
import copy
import itertools
import time
from dataclasses import dataclass
from typing import Optional, Union

PLACEHOLDER_NAME = "Loading..."
PLACEHOLDER_CART_ID = "optimistic-cart"


@dataclass(frozen=True)
class AddItem:
    product_id: str


@dataclass(frozen=True)
class RemoveItem:
    item_key: str


@dataclass(frozen=True)
class UpdateQuantity:
    item_key: str
    quantity: int


@dataclass(frozen=True)
class Reset:
    pass


Action = Union[AddItem, RemoveItem, UpdateQuantity, Reset]

_placeholder_ids = itertools.count(1)


def _item_product_id(item: dict) -> Optional[str]:
    product = item.get("product") or {}
    return product.get("_id") or product.get("_ref")


def _placeholder_item(product_id: str) -> dict:
    return {
        "_key": f"optimistic-{next(_placeholder_ids)}",
        "quantity": 1,
        "placeholder": True,
        "product": {"_id": product_id, "name": PLACEHOLDER_NAME, "price": None, "image": None, "slug": None},
    }


def apply_action(cart: Optional[dict], action: Action) -> Optional[dict]:
    """Pure reducer: returns a new projection, never mutates ``cart``."""
    if isinstance(action, AddItem):
        if cart is None:
            return {"_id": PLACEHOLDER_CART_ID, "placeholder": True, "items": [_placeholder_item(action.product_id)]}
        cart = copy.deepcopy(cart)
        items = cart.setdefault("items", [])
        for item in items:
            if _item_product_id(item) == action.product_id:
                item["quantity"] = item.get("quantity", 0) + 1
                return cart
        items.append(_placeholder_item(action.product_id))
        return cart

    if cart is None:
        return None

    if isinstance(action, RemoveItem):
        cart = copy.deepcopy(cart)
        cart["items"] = [i for i in cart.get("items") or [] if i.get("_key") != action.item_key]
        return cart

    if isinstance(action, UpdateQuantity):
        if action.quantity <= 0:
            return apply_action(cart, RemoveItem(action.item_key))
        cart = copy.deepcopy(cart)
        for item in cart.get("items") or []:
            if item.get("_key") == action.item_key:
                item["quantity"] = action.quantity
        return cart

    raise TypeError(f"unknown cart action {action!r}")


class OptimisticCart:
    def __init__(self, snapshot: Optional[dict] = None, clock=time.time):
        self._snapshot = copy.deepcopy(snapshot)
        self._pending: list[Action] = []
        self._clock = clock
        self.optimistic_timestamp = 0.0

    @property
    def snapshot(self) -> Optional[dict]:
        return copy.deepcopy(self._snapshot)

    @property
    def pending(self) -> tuple:
        return tuple(self._pending)

    @property
    def view(self) -> Optional[dict]:
        cart = copy.deepcopy(self._snapshot)
        for action in self._pending:
            cart = apply_action(cart, action)
        return cart

    def _stamp(self):
        now = self._clock()
        # strictly increasing even when the clock stalls or steps back
        self.optimistic_timestamp = now if now > self.optimistic_timestamp else self.optimistic_timestamp + 1e-6

    def dispatch(self, action: Action) -> Optional[dict]:
        self._stamp()
        if isinstance(action, Reset):
            self._pending.clear()
        else:
            self._pending.append(action)
        return self.view

    def receive(self, server_cart: Optional[dict]) -> Optional[dict]:
        """A server fetch resolved: it becomes the snapshot and the overlay is discarded."""
        self._snapshot = copy.deepcopy(server_cart)
        self._pending.clear()
        return self.view
