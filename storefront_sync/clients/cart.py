import requests

from ..services.optimistic_cart import OptimisticCart, AddItem, RemoveItem, UpdateQuantity, Reset
from ..utils.logger import warn


class CartClient:
    """Talks to the cart routes and keeps an optimistic projection in step.

    Each mutation is shown locally first, then sent; the cart is refetched
    afterwards and that response replaces the projection.
    """

    def __init__(self, base_url: str, user_id: str, session=None, cart: OptimisticCart | None = None):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.session = session or requests.Session()
        self.cart = cart or OptimisticCart()

    @property
    def view(self):
        return self.cart.view

    def _call(self, method: str, path: str, **kwargs) -> dict:
        try:
            r = self.session.request(method, f"{self.base_url}{path}", timeout=20, **kwargs)
            body = r.json() if r.content else {}
        except (requests.RequestException, ValueError) as e:
            warn(f"[cart-client] {method} {path} failed: {e}")
            return {"error": "Network error"}
        if r.status_code >= 400 and not body.get("error"):
            body["error"] = f"HTTP {r.status_code}"
        return body

    def refresh(self):
        body = self._call("GET", "/cart", params={"userId": self.user_id})
        if "error" in body:
            return body
        return {"cart": self.cart.receive(body.get("cart"))}

    def _mutate(self, action, method: str, path: str, **kwargs) -> dict:
        self.cart.dispatch(action)
        result = self._call(method, path, **kwargs)
        if result.get("error"):
            self.cart.dispatch(Reset())
            return {"error": result["error"]}
        refreshed = self.refresh()
        if refreshed.get("error"):
            return {"error": refreshed["error"]}
        return {}

    def _cart_id(self):
        return (self.cart.snapshot or {}).get("_id")

    def add_item(self, product_id: str) -> dict:
        return self._mutate(AddItem(product_id), "POST", "/cart/items",
                            json={"productId": product_id, "userId": self.user_id})

    def remove_item(self, item_key: str) -> dict:
        cart_id = self._cart_id()
        if not cart_id:
            return {"error": "No cart found"}
        return self._mutate(RemoveItem(item_key), "DELETE", f"/cart/{cart_id}/items/{item_key}")

    def update_quantity(self, item_key: str, quantity: int) -> dict:
        cart_id = self._cart_id()
        if not cart_id:
            return {"error": "No cart found"}
        if quantity == 0:
            return self.remove_item(item_key)
        return self._mutate(UpdateQuantity(item_key, quantity), "PATCH", f"/cart/{cart_id}/items/{item_key}",
                            json={"quantity": quantity})

    def checkout(self) -> dict:
        cart_id = self._cart_id()
        if not cart_id:
            return {"error": "No cart found"}
        return self._call("POST", f"/cart/{cart_id}/checkout")
