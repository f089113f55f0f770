import stripe

from ..config import PUBLIC_URL

# (topic) -> webhook events the payments -> content handler consumes
SYNC_EVENTS = [
    "product.created",
    "product.updated",
    "product.deleted",
    "price.created",
    "price.updated",
    "price.deleted",
]


def _plain(obj) -> dict:
    """StripeObject -> plain dict (recursively), so callers never depend on SDK types."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway:
    """The handful of Stripe calls the sync and checkout paths need.

    Everything returns plain dicts.
    """

    def __init__(self, secret_key: str, api_version: str | None = None, public_url: str | None = None):
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required")
        self.api_key = secret_key
        self.api_version = api_version
        self.public_url = (public_url or PUBLIC_URL or "").rstrip("/")

    @classmethod
    def from_config(cls, cfg: dict, public_url: str | None = None) -> "StripeGateway":
        return cls(cfg.get("secret_key"), cfg.get("api_version"), public_url)

    def _opts(self) -> dict:
        opts = {"api_key": self.api_key}
        if self.api_version:
            opts["stripe_version"] = self.api_version
        return opts

    # products
    def create_product(self, params: dict) -> dict:
        return _plain(stripe.Product.create(**params, **self._opts()))

    def update_product(self, product_id: str, params: dict) -> dict:
        return _plain(stripe.Product.modify(product_id, **params, **self._opts()))

    # prices
    def retrieve_price(self, price_id: str) -> dict:
        return _plain(stripe.Price.retrieve(price_id, **self._opts()))

    def create_price(self, params: dict) -> dict:
        return _plain(stripe.Price.create(**params, **self._opts()))

    def update_price(self, price_id: str, params: dict) -> dict:
        return _plain(stripe.Price.modify(price_id, **params, **self._opts()))

    # checkout
    def create_checkout_session(self, line_items: list[dict], metadata: dict | None = None) -> dict:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=line_items,
            mode="payment",
            success_url=f"{self.public_url}/success",
            cancel_url=f"{self.public_url}/cancel",
            metadata=metadata or {},
            **self._opts(),
        )
        return _plain(session)

    # webhook endpoints
    def list_webhook_endpoints(self) -> list[dict]:
        resp = stripe.WebhookEndpoint.list(limit=100, **self._opts())
        return [_plain(e) for e in (getattr(resp, "data", None) or [])]

    def create_webhook_endpoint(self, url: str, events: list[str]) -> dict:
        return _plain(stripe.WebhookEndpoint.create(url=url, enabled_events=events, **self._opts()))

    def update_webhook_endpoint(self, endpoint_id: str, events: list[str]) -> dict:
        return _plain(stripe.WebhookEndpoint.modify(endpoint_id, enabled_events=events, **self._opts()))
