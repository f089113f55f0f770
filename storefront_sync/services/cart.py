# storefront_sync/services/cart.py
import re
import uuid
from typing import Optional

from ..clients.stripe_api import StripeGateway
from ..utils.logger import info, warn, error
from .content import ContentStore, reference

TAG = "[cart]"

EMPTY_CART = "cart is empty"
ITEM_KEY = re.compile(r"[A-Za-z0-9_-]+")


def new_item_key() -> str:
    return uuid.uuid4().hex[:12]


def _blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def _valid_key(item_key: str) -> bool:
    # keys are spliced into patch paths like items[_key=="..."]
    return bool(ITEM_KEY.fullmatch(item_key))


def _valid_quantity(quantity) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity >= 0


class CartService:
    """Server-side cart operations over the one-cart-per-user document.

    Every public method returns a plain dict (or None for "no cart");
    failures are reported through an ``error`` key and never raised.
    Mutations are single patches with no version check, so concurrent
    writers to the same cart resolve last-write-wins.
    """

    def __init__(self, content: ContentStore, payments: StripeGateway):
        self.content = content
        self.payments = payments

    # -----------------------------------------------------
    # Query
    # -----------------------------------------------------

    def get_cart(self, user_id: str) -> Optional[dict]:
        if _blank(user_id):
            return None
        try:
            cart = self.content.get_cart_by_user(user_id)
        except Exception as e:
            error(f"{TAG} get_cart failed for user {user_id}: {e}")
            return None
        if cart is not None:
            cart["items"] = cart.get("items") or []
        return cart

    # -----------------------------------------------------
    # Commands
    # -----------------------------------------------------

    def add_item(self, product_id: str, user_id: str) -> dict:
        if _blank(product_id):
            return {"error": "Product id is required"}
        if _blank(user_id):
            return {"error": "Please sign in to add items to cart"}
        try:
            cart = self.content.find_cart(user_id)
            if not cart:
                info(f"{TAG} creating cart for user {user_id} with {product_id}")
                self.content.create_cart(user_id, [self._line(product_id)])
                return {}

            for item in (cart.get("items") or []):
                if self._product_ref(item) == product_id:
                    info(f"{TAG} incrementing {product_id} in cart {cart['_id']} "
                         f"({item.get('quantity', 0)} -> {item.get('quantity', 0) + 1})")
                    self.content.increment_cart_item(cart["_id"], item["_key"], 1)
                    return {}

            info(f"{TAG} appending {product_id} to cart {cart['_id']}")
            self.content.append_cart_item(cart["_id"], self._line(product_id))
            return {}
        except Exception as e:
            error(f"{TAG} add_item failed product={product_id} user={user_id}: {e}")
            return {"error": "Failed to add to cart"}

    def update_quantity(self, cart_id: str, item_key: str, quantity) -> dict:
        if _blank(cart_id) or _blank(item_key):
            return {"error": "Cart id and item key are required"}
        if not _valid_key(item_key):
            return {"error": "Invalid item key"}
        if not _valid_quantity(quantity):
            return {"error": "Quantity must be a non-negative integer"}
        if quantity == 0:
            return self.remove_item(cart_id, item_key)
        try:
            info(f"{TAG} setting {item_key} in cart {cart_id} to {quantity}")
            self.content.set_cart_item_quantity(cart_id, item_key, quantity)
            return {}
        except Exception as e:
            error(f"{TAG} update_quantity failed cart={cart_id} item={item_key}: {e}")
            return {"error": "Failed to update cart item quantity"}

    def remove_item(self, cart_id: str, item_key: str) -> dict:
        if _blank(cart_id) or _blank(item_key):
            return {"error": "Cart id and item key are required"}
        if not _valid_key(item_key):
            return {"error": "Invalid item key"}
        try:
            # unsetting a missing key is a no-op on the store side
            info(f"{TAG} removing {item_key} from cart {cart_id}")
            self.content.remove_cart_item(cart_id, item_key)
            return {}
        except Exception as e:
            error(f"{TAG} remove_item failed cart={cart_id} item={item_key}: {e}")
            return {"error": "Failed to remove cart item"}

    # -----------------------------------------------------
    # Checkout
    # -----------------------------------------------------

    def checkout(self, cart_id: str) -> dict:
        if _blank(cart_id):
            return {"error": "Cart id is required"}
        try:
            cart = self.content.get_cart_lines(cart_id)
            line_items = []
            for item in ((cart or {}).get("items") or []):
                price_id = ((item or {}).get("product") or {}).get("priceId")
                quantity = (item or {}).get("quantity")
                if not price_id:
                    warn(f"{TAG} checkout {cart_id}: skipping line {item.get('_key')} without a Stripe price")
                    continue
                if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                    warn(f"{TAG} checkout {cart_id}: skipping line {item.get('_key')} with quantity {quantity!r}")
                    continue
                line_items.append({"price": price_id, "quantity": quantity})

            if not line_items:
                return {"error": EMPTY_CART}

            info(f"{TAG} creating checkout session for cart {cart_id} with {len(line_items)} line(s)")
            session = self.payments.create_checkout_session(line_items, metadata={"cart_id": cart_id})
            if session.get("url"):
                return {"url": session["url"]}
            return {"error": "Failed to create checkout session"}
        except Exception as e:
            error(f"{TAG} checkout failed for cart {cart_id}: {e}")
            return {"error": "Failed to create checkout session"}

    def buy_now(self, price_id: str) -> dict:
        if _blank(price_id):
            return {"error": "Price id is required"}
        try:
            session = self.payments.create_checkout_session([{"price": price_id, "quantity": 1}])
            if session.get("url"):
                return {"url": session["url"]}
            return {"error": "Failed to create checkout session"}
        except Exception as e:
            error(f"{TAG} buy_now failed for price {price_id}: {e}")
            return {"error": "Failed to create checkout session"}

    # -----------------------------------------------------
    # Helpers
    # -----------------------------------------------------

    @staticmethod
    def _line(product_id: str) -> dict:
        return {"_key": new_item_key(), "product": reference(product_id), "quantity": 1}

    @staticmethod
    def _product_ref(item: dict) -> Optional[str]:
        return ((item or {}).get("product") or {}).get("_ref")
