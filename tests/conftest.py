import copy
import hashlib
import hmac
import itertools
import json
import time

import pytest

from storefront_sync import create_app
from storefront_sync.errors import ContentStoreError
from storefront_sync.services.content import cart_id_for, mirror_id
from storefront_sync.utils.cache import TagCache
from storefront_sync.utils.security import sanity_signature

STRIPE_SECRET = "whsec_test_secret"
SANITY_SECRET = "sanity_test_secret"


# =========================================================
# In-memory content store
# =========================================================

class FakeContentStore:
    """Dictionary-backed stand-in for ContentStore with the same method surface."""

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.assets: dict[str, dict] = {}
        self.writes: list[tuple] = []
        # stripe product id -> number of lookups that still come back empty
        self.hidden_lookups: dict[str, int] = {}
        self.product_lookups = 0

    def put(self, doc: dict) -> dict:
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return doc

    def add_asset(self, asset_id: str, url: str):
        self.assets[asset_id] = {"_id": asset_id, "assetId": asset_id.split("-")[1], "url": url}

    # generic
    def get_document(self, doc_id):
        return copy.deepcopy(self.docs.get(doc_id))

    def create_or_replace(self, doc):
        self.writes.append(("createOrReplace", doc["_id"]))
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return copy.deepcopy(doc)

    def set_fields(self, doc_id, fields, unset=None):
        if doc_id not in self.docs:
            raise ContentStoreError(f"Document {doc_id} not found", 404)
        self.writes.append(("patch", doc_id))
        doc = self.docs[doc_id]
        doc.update(copy.deepcopy(fields))
        for key in unset or []:
            doc.pop(key, None)
        return copy.deepcopy(doc)

    # assets
    def find_image_asset_by_url(self, url):
        for asset in self.assets.values():
            if asset["url"] == url:
                return dict(asset)
        return None

    def get_asset_url(self, asset_id):
        return (self.assets.get(asset_id) or {}).get("url")

    # products / prices
    def find_products_by_stripe_id(self, stripe_product_id):
        return [copy.deepcopy(d) for d in self.docs.values()
                if d.get("_type") == "product" and d.get("stripeProductId") == stripe_product_id]

    def find_product_by_stripe_id(self, stripe_product_id):
        self.product_lookups += 1
        if self.hidden_lookups.get(stripe_product_id, 0) > 0:
            self.hidden_lookups[stripe_product_id] -= 1
            return None
        docs = self.find_products_by_stripe_id(stripe_product_id)
        for doc in docs:
            if doc["_id"] == mirror_id(stripe_product_id):
                return doc
        return docs[0] if docs else None

    def find_price_by_stripe_id(self, stripe_price_id):
        for d in self.docs.values():
            if d.get("_type") == "price" and d.get("stripePriceId") == stripe_price_id:
                return copy.deepcopy(d)
        return None

    def find_products_pending_price(self, stripe_price_id):
        return [copy.deepcopy(d) for d in self.docs.values()
                if d.get("_type") == "product" and d.get("stripePriceId") == stripe_price_id]

    # carts
    def _raw_cart(self, user_id):
        for d in self.docs.values():
            if d.get("_type") == "cart" and d.get("userId") == user_id:
                return d
        return None

    def _expand_product(self, ref):
        product = self.docs.get(ref)
        if not product:
            return None
        default = self.docs.get((product.get("default_price") or {}).get("_ref")) or {}
        images = product.get("images") or []
        image = self.get_asset_url(images[0]["asset"]["_ref"]) if images else None
        return {
            "_id": product["_id"],
            "name": product.get("name"),
            "description": product.get("description"),
            "slug": (product.get("slug") or {}).get("current"),
            "price": default.get("unit_amount"),
            "currency": default.get("currency"),
            "priceId": default.get("stripePriceId"),
            "image": image,
        }

    def get_cart_by_user(self, user_id):
        cart = self._raw_cart(user_id)
        if cart is None:
            return None
        cart = copy.deepcopy(cart)
        if cart.get("items") is not None:
            cart["items"] = [{**i, "product": self._expand_product(i["product"]["_ref"])} for i in cart["items"]]
        return cart

    def find_cart(self, user_id):
        return copy.deepcopy(self._raw_cart(user_id))

    def get_cart_lines(self, cart_id):
        cart = self.docs.get(cart_id)
        if not cart:
            return None
        return {
            "_id": cart_id,
            "items": [
                {"_key": i["_key"], "quantity": i.get("quantity"),
                 "product": self._expand_product(i["product"]["_ref"])}
                for i in cart.get("items") or []
            ],
        }

    def create_cart(self, user_id, items):
        cart_id = cart_id_for(user_id)
        if cart_id not in self.docs:
            self.docs[cart_id] = {"_id": cart_id, "_type": "cart", "userId": user_id, "items": copy.deepcopy(items)}
        return copy.deepcopy(self.docs[cart_id])

    def _cart_item(self, cart_id, item_key):
        if cart_id not in self.docs:
            raise ContentStoreError(f"Document {cart_id} not found", 404)
        for item in self.docs[cart_id].get("items") or []:
            if item["_key"] == item_key:
                return item
        return None

    def increment_cart_item(self, cart_id, item_key, by=1):
        item = self._cart_item(cart_id, item_key)
        if item is not None:
            item["quantity"] = item.get("quantity", 0) + by
        return copy.deepcopy(self.docs[cart_id])

    def append_cart_item(self, cart_id, item):
        if cart_id not in self.docs:
            raise ContentStoreError(f"Document {cart_id} not found", 404)
        self.docs[cart_id].setdefault("items", []).append(copy.deepcopy(item))
        return copy.deepcopy(self.docs[cart_id])

    def set_cart_item_quantity(self, cart_id, item_key, quantity):
        item = self._cart_item(cart_id, item_key)
        if item is not None:
            item["quantity"] = quantity
        return copy.deepcopy(self.docs[cart_id])

    def remove_cart_item(self, cart_id, item_key):
        if cart_id not in self.docs:
            raise ContentStoreError(f"Document {cart_id} not found", 404)
        cart = self.docs[cart_id]
        cart["items"] = [i for i in cart.get("items") or [] if i["_key"] != item_key]
        return copy.deepcopy(cart)


# =========================================================
# In-memory Stripe
# =========================================================

class FakePayments:
    def __init__(self):
        self.products: dict[str, dict] = {}
        self.prices: dict[str, dict] = {}
        self.sessions: list[dict] = []
        self.endpoints: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_checkout = False
        self._ids = itertools.count(1)

    def create_product(self, params):
        pid = f"prod_{next(self._ids)}"
        self.calls.append(("create_product", pid, copy.deepcopy(params)))
        self.products[pid] = {"id": pid, **copy.deepcopy(params)}
        return dict(self.products[pid])

    def update_product(self, product_id, params):
        self.calls.append(("update_product", product_id, copy.deepcopy(params)))
        product = self.products.setdefault(product_id, {"id": product_id})
        meta = {**product.get("metadata", {}), **params.get("metadata", {})}
        product.update(copy.deepcopy(params))
        product["metadata"] = meta
        return dict(product)

    def retrieve_price(self, price_id):
        return dict(self.prices[price_id])

    def create_price(self, params):
        price_id = f"price_{next(self._ids)}"
        self.calls.append(("create_price", price_id, copy.deepcopy(params)))
        self.prices[price_id] = {"id": price_id, "active": True, **copy.deepcopy(params)}
        return dict(self.prices[price_id])

    def update_price(self, price_id, params):
        self.calls.append(("update_price", price_id, copy.deepcopy(params)))
        price = self.prices.setdefault(price_id, {"id": price_id})
        meta = {**price.get("metadata", {}), **params.get("metadata", {})}
        price.update(copy.deepcopy(params))
        price["metadata"] = meta
        return dict(price)

    def create_checkout_session(self, line_items, metadata=None):
        if self.fail_checkout:
            raise RuntimeError("stripe is down")
        session = {"id": f"cs_{next(self._ids)}", "line_items": copy.deepcopy(line_items),
                   "metadata": metadata or {}}
        session["url"] = f"https://checkout.stripe.test/{session['id']}"
        self.sessions.append(session)
        return dict(session)

    def list_webhook_endpoints(self):
        return copy.deepcopy(self.endpoints)

    def create_webhook_endpoint(self, url, events):
        endpoint = {"id": f"we_{next(self._ids)}", "url": url, "enabled_events": list(events)}
        self.endpoints.append(endpoint)
        return dict(endpoint)

    def update_webhook_endpoint(self, endpoint_id, events):
        for endpoint in self.endpoints:
            if endpoint["id"] == endpoint_id:
                endpoint["enabled_events"] = list(events)
                return dict(endpoint)
        raise KeyError(endpoint_id)

    def names(self):
        return [c[0] for c in self.calls]


# =========================================================
# Builders
# =========================================================

def stripe_product(pid="prod_A", name="Widget", **extra):
    product = {"id": pid, "object": "product", "name": name, "description": "A widget",
               "active": True, "images": [], "metadata": {}, "default_price": None}
    product.update(extra)
    return product


def stripe_price(price_id="price_A", product="prod_A", unit_amount=1000, currency="usd", **extra):
    price = {"id": price_id, "object": "price", "product": product, "unit_amount": unit_amount,
             "currency": currency, "active": True, "metadata": {}}
    price.update(extra)
    return price


def event(etype, obj, eid="evt_1"):
    return {"id": eid, "object": "event", "type": etype, "data": {"object": obj}}


def stripe_header(payload: str, secret: str = STRIPE_SECRET, ts: int | None = None) -> str:
    ts = ts or int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def sanity_header(payload: bytes, secret: str = SANITY_SECRET, ts: int | None = None) -> str:
    ts = ts or int(time.time() * 1000)
    return f"t={ts},v1={sanity_signature(payload, secret, ts)}"


def as_body(obj) -> str:
    return json.dumps(obj, separators=(",", ":"))


# =========================================================
# Fixtures
# =========================================================

@pytest.fixture
def content():
    return FakeContentStore()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def cache():
    return TagCache()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def app(content, payments, cache, sleeps):
    app = create_app(
        overrides={
            "TESTING": True,
            "BASE_URL": "https://sync.example.com",
            "STRIPE": {"secret_key": "sk_test", "webhook_secret": STRIPE_SECRET, "api_version": None},
            "SANITY": {"project_id": "p", "dataset": "test", "webhook_secret": SANITY_SECRET},
            "RETRY_SLEEP": sleeps.append,
        },
        content=content,
        payments=payments,
        cache=cache,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()
