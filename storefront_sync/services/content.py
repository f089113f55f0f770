# storefront_sync/services/content.py
import re
from datetime import datetime, timezone

from ..clients.sanity import SanityClient
from ..utils.logger import warn

# =========================================================
# Deterministic ids
# ---------------------------------------------------------
# Every document mirrored from Stripe is stored under
#   stripe-<stripe id>
# so redelivered or reordered events overwrite the same document
# instead of creating a second one. Carts use cart-<user id>.
# =========================================================

MIRROR_PREFIX = "stripe-"
CART_PREFIX = "cart-"

def mirror_id(stripe_id: str) -> str:
    return f"{MIRROR_PREFIX}{stripe_id}"

def cart_id_for(user_id: str) -> str:
    return CART_PREFIX + re.sub(r"[^a-zA-Z0-9_-]", "-", user_id)

def reference(doc_id: str, key: str | None = None) -> dict:
    ref = {"_type": "reference", "_ref": doc_id}
    if key:
        ref["_key"] = key
    return ref

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def image_urls(store, doc: dict) -> list[str]:
    """URLs of a product document's image assets, in order; unresolvable ones are skipped."""
    urls = []
    for image in (doc.get("images") or []):
        ref = ((image or {}).get("asset") or {}).get("_ref")
        if not ref:
            continue
        try:
            url = store.get_asset_url(ref)
        except Exception as e:
            warn(f"[content] failed to fetch image asset {ref}: {e}")
            continue
        if url:
            urls.append(url)
        else:
            warn(f"[content] image asset {ref} has no url, skipping")
    return urls

# =========================================================
# GROQ
# =========================================================

IMAGE_ASSET_BY_URL = "*[_type == 'sanity.imageAsset' && url == $url][0]{_id, assetId, url}"
ASSET_URL = "*[_id == $assetId][0]{url}"
DOCUMENT_BY_ID = "*[_id == $id][0]"
PRODUCTS_BY_STRIPE_ID = '*[_type == "product" && stripeProductId == $productId]'
PRICE_BY_STRIPE_ID = '*[_type == "price" && stripePriceId == $priceId][0]'
PRODUCTS_PENDING_PRICE = '*[_type == "product" && stripePriceId == $priceId]'

CART_BY_USER = """
*[_type == "cart" && userId == $userId][0]{
  ...,
  items[]{
    ...,
    product->{
      _id,
      name,
      description,
      "slug": slug.current,
      "price": default_price->unit_amount,
      "currency": default_price->currency,
      "priceId": default_price->stripePriceId,
      "image": images[0].asset->url
    }
  }
}
"""

CART_RAW_BY_USER = '*[_type == "cart" && userId == $userId][0]'

CART_LINES = """
*[_type == "cart" && _id == $cartId][0]{
  _id,
  items[]{
    _key,
    quantity,
    product->{
      _id,
      name,
      "priceId": default_price->stripePriceId
    }
  }
}
"""


class ContentStore:
    """Domain-level reads and writes against the Sanity dataset."""

    def __init__(self, client: SanityClient):
        self.client = client

    # -----------------------------------------------------
    # Generic
    # -----------------------------------------------------

    def get_document(self, doc_id: str) -> dict | None:
        return self.client.query(DOCUMENT_BY_ID, {"id": doc_id})

    def create_or_replace(self, doc: dict) -> dict:
        return self.client.create_or_replace(doc)

    def set_fields(self, doc_id: str, fields: dict, unset: list[str] | None = None) -> dict:
        return self.client.patch(doc_id, set=fields or None, unset=unset)

    # -----------------------------------------------------
    # Assets
    # -----------------------------------------------------

    def find_image_asset_by_url(self, url: str) -> dict | None:
        return self.client.query(IMAGE_ASSET_BY_URL, {"url": url})

    def get_asset_url(self, asset_id: str) -> str | None:
        asset = self.client.query(ASSET_URL, {"assetId": asset_id})
        return (asset or {}).get("url")

    # -----------------------------------------------------
    # Products / prices
    # -----------------------------------------------------

    def find_products_by_stripe_id(self, stripe_product_id: str) -> list[dict]:
        return self.client.query(PRODUCTS_BY_STRIPE_ID, {"productId": stripe_product_id}) or []

    def find_product_by_stripe_id(self, stripe_product_id: str) -> dict | None:
        # Prefer the mirrored document when an authored duplicate also carries the id
        docs = self.find_products_by_stripe_id(stripe_product_id)
        for doc in docs:
            if doc.get("_id") == mirror_id(stripe_product_id):
                return doc
        return docs[0] if docs else None

    def find_price_by_stripe_id(self, stripe_price_id: str) -> dict | None:
        return self.client.query(PRICE_BY_STRIPE_ID, {"priceId": stripe_price_id})

    def find_products_pending_price(self, stripe_price_id: str) -> list[dict]:
        return self.client.query(PRODUCTS_PENDING_PRICE, {"priceId": stripe_price_id}) or []

    # -----------------------------------------------------
    # Carts
    # -----------------------------------------------------

    def get_cart_by_user(self, user_id: str) -> dict | None:
        return self.client.query(CART_BY_USER, {"userId": user_id})

    def find_cart(self, user_id: str) -> dict | None:
        """The cart document as stored, references unexpanded."""
        return self.client.query(CART_RAW_BY_USER, {"userId": user_id})

    def get_cart_lines(self, cart_id: str) -> dict | None:
        return self.client.query(CART_LINES, {"cartId": cart_id})

    def create_cart(self, user_id: str, items: list[dict]) -> dict:
        doc = {"_id": cart_id_for(user_id), "_type": "cart", "userId": user_id, "items": items}
        resp = self.client.mutate([{"createIfNotExists": doc}])
        return self.client.first_document(resp)

    def increment_cart_item(self, cart_id: str, item_key: str, by: int = 1) -> dict:
        return self.client.patch(cart_id, inc={f'items[_key=="{item_key}"].quantity': by})

    def append_cart_item(self, cart_id: str, item: dict) -> dict:
        return self.client.patch(
            cart_id,
            set_if_missing={"items": []},
            insert={"after": "items[-1]", "items": [item]},
        )

    def set_cart_item_quantity(self, cart_id: str, item_key: str, quantity: int) -> dict:
        return self.client.patch(cart_id, set={f'items[_key=="{item_key}"].quantity': quantity})

    def remove_cart_item(self, cart_id: str, item_key: str) -> dict:
        return self.client.patch(cart_id, unset=[f'items[_key=="{item_key}"]'])
