# storefront_sync/services/stripe_to_sanity.py
import re
import time
from typing import Optional, List, Tuple

from ..errors import ValidationError, ProductNotSyncedYet, SyncError
from ..utils.cache import TagCache
from ..utils.hash import product_hash, price_hash
from ..utils.logger import debug, info, warn
from ..utils.retry import lookup_retrying
from .content import ContentStore, image_urls, mirror_id, reference, now_iso

TAG = "[Stripe ➝ Sanity]"
SOURCE = "stripe"

# Stored by Sanity itself; never compared when deciding whether a write changes anything
_SYSTEM_FIELDS = ("_rev", "_createdAt", "_updatedAt", "syncRevision")

# =========================================================
# Utilities
# =========================================================

def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", re.sub(r"\s+", "-", (name or "").lower()))

def _stripe_id(value) -> Optional[str]:
    """Stripe sends either a bare id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None

def _carry(existing: Optional[dict]) -> dict:
    return {k: v for k, v in (existing or {}).items() if k not in ("_rev", "_createdAt", "_updatedAt")}

def _same_content(existing: Optional[dict], doc: dict) -> bool:
    if not existing:
        return False
    strip = lambda d: {k: v for k, v in d.items() if k not in _SYSTEM_FIELDS}
    return strip(existing) == strip(doc)

def _is_echo(meta: dict, new_hash: str, existing: Optional[dict]) -> bool:
    """True when the event only reflects a push we made from Sanity."""
    return (
        meta.get("sync_source") == "sanity"
        and meta.get("sync_hash") == new_hash
        and bool(existing)
        and existing.get("syncHash") == new_hash
    )

def _revision(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0

def _next_revision(existing: Optional[dict], meta: dict) -> int:
    return max(_revision((existing or {}).get("syncRevision")), _revision(meta.get("sync_revision"))) + 1

# =========================================================
# Core sync handler
# =========================================================

class StripeToSanity:
    """Reconciles the Sanity dataset with product/price events from Stripe."""

    def __init__(self, content: ContentStore, cache: TagCache,
                 max_retries: int = 3, base_delay: float = 1.0, sleep=time.sleep):
        self.content = content
        self.cache = cache
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.sleep = sleep

    def handle_event(self, event: dict) -> str:
        etype = event.get("type")
        obj = (event.get("data") or {}).get("object")
        if not etype or not isinstance(obj, dict):
            raise ValidationError(f"Malformed event {event.get('id')}: missing type or data.object")

        info(f"{TAG} handling {etype} for {obj.get('id')} (event {event.get('id')})")
        if etype in ("product.created", "product.updated"):
            self.sync_product(obj)
        elif etype == "product.deleted":
            self.archive_product(obj)
        elif etype in ("price.created", "price.updated"):
            self.sync_price(obj)
        elif etype == "price.deleted":
            self.archive_price(obj)
        else:
            warn(f"{TAG} unhandled event type {etype} (event {event.get('id')})")
            return "ignored"
        return "processed"

    # -----------------------------------------------------
    # Products
    # -----------------------------------------------------

    def _resolve_images(self, pid: str, urls: List[str]) -> Tuple[List[dict], List[str]]:
        """(image refs, urls that resolved to an asset)"""
        refs, resolved = [], []
        for url in urls:
            try:
                asset = self.content.find_image_asset_by_url(url)
            except Exception as e:
                warn(f"{TAG} image lookup failed for {url} (PID {pid}): {e}")
                continue
            if not asset:
                warn(f"{TAG} image asset not found for {url} (PID {pid}), skipping")
                continue
            refs.append({
                "_key": asset.get("assetId") or asset["_id"],
                "_type": "image",
                "asset": reference(asset["_id"]),
            })
            resolved.append(url)
        info(f"{TAG} resolved {len(refs)}/{len(urls)} images for PID {pid}")
        return refs, resolved

    def _resolve_default_price(self, price_id: Optional[str]) -> Tuple[Optional[dict], Optional[str]]:
        """(reference, pending stripe price id); exactly one is set when a default exists."""
        if not price_id:
            return None, None
        price_doc = self.content.find_price_by_stripe_id(price_id)
        if price_doc:
            return reference(price_doc["_id"]), None
        info(f"{TAG} default price {price_id} not in Sanity yet, storing as pending")
        return None, price_id

    def sync_product(self, product: dict) -> Optional[dict]:
        pid = product.get("id")
        if not pid:
            raise ValidationError("Product ID is missing or invalid")
        name = (product.get("name") or "").strip()
        if not name:
            raise ValidationError(f"Product name is missing or empty for product ID: {pid}")

        meta = product.get("metadata") or {}
        doc_id = meta.get("sanity_id") or mirror_id(pid)
        existing = self.content.get_document(doc_id)
        if not existing and meta.get("deleted_from_sanity") == "true":
            info(f"{TAG} PID {pid} was deleted in Sanity, not recreating {doc_id}")
            return None

        stripe_urls = [u for u in (product.get("images") or []) if u]
        new_hash = product_hash(name, product.get("description"), product.get("active", True),
                                meta.get("brand"), stripe_urls)
        if _is_echo(meta, new_hash, existing):
            debug(f"{TAG} ignoring echo of our own push PID {pid}")
            return existing

        images, resolved_urls = self._resolve_images(pid, stripe_urls)
        default_ref, pending = self._resolve_default_price(_stripe_id(product.get("default_price")))

        doc = _carry(existing)
        doc.update({
            "_id": doc_id,
            "_type": "product",
            "name": name,
            "slug": {"_type": "slug", "current": slugify(name)},
            "description": product.get("description") or "",
            "stripeProductId": pid,
            "brand": meta.get("brand") or "",
            "images": images,
            "active": bool(product.get("active", True)),
            "syncSource": SOURCE,
            # hashed over what Sanity can actually show, the same view the reverse push hashes
            "syncHash": product_hash(name, product.get("description"), product.get("active", True),
                                     meta.get("brand"), resolved_urls),
        })
        if doc["active"]:
            doc.pop("deletedAt", None)
        doc.pop("stripePriceId", None)
        if default_ref:
            doc["default_price"] = default_ref
        elif pending:
            doc.pop("default_price", None)
            doc["stripePriceId"] = pending
        # No default on the Stripe side: keep whatever a price event attached
        doc.setdefault("prices", [])

        if _same_content(existing, doc):
            debug(f"{TAG} no changes, skip PID {pid}")
            return existing

        doc["syncRevision"] = _next_revision(existing, meta)
        info(f"{TAG} upserting {doc_id} (PID {pid}, {len(images)} images, "
             f"default_price={'set' if default_ref else 'pending' if pending else 'none'})")
        result = self.content.create_or_replace(doc)

        self.cache.invalidate("products", f"product_{pid}")
        info(f"{TAG} product sync complete PID {pid} -> {doc_id}")
        return result

    def archive_product(self, product: dict):
        pid = product.get("id")
        if not pid:
            raise ValidationError("Product ID is missing or invalid")

        docs = self.content.find_products_by_stripe_id(pid)
        if not docs:
            warn(f"{TAG} product {pid} not found in Sanity, nothing to archive")
            return
        stamp = now_iso()
        for doc in docs:
            info(f"{TAG} archiving {doc['_id']} (PID {pid})")
            # hashed over the archived fields so the Sanity update echo matches
            digest = product_hash((doc.get("name") or "").strip(), doc.get("description"), False,
                                  doc.get("brand"), image_urls(self.content, doc))
            self.content.set_fields(doc["_id"], {
                "active": False,
                "deletedAt": stamp,
                "syncSource": SOURCE,
                "syncRevision": _revision(doc.get("syncRevision")) + 1,
                "syncHash": digest,
            })

        self.cache.invalidate("products", f"product_{pid}")

    # -----------------------------------------------------
    # Prices
    # -----------------------------------------------------

    def _find_owning_product(self, stripe_product_id: str, price_id: str) -> dict:
        def _log_retry(rs):
            warn(f"{TAG} product {stripe_product_id} not found for price {price_id}, retrying in "
                 f"{rs.next_action.sleep:g}s (attempt {rs.attempt_number}/{self.max_retries + 1})")

        try:
            for attempt in lookup_retrying(self.max_retries, self.base_delay, self.sleep, _log_retry):
                with attempt:
                    doc = self.content.find_product_by_stripe_id(stripe_product_id)
                    if not doc:
                        raise ProductNotSyncedYet(stripe_product_id)
                    return doc
        except ProductNotSyncedYet as e:
            raise SyncError(
                f"Product with stripeProductId {stripe_product_id} not found in Sanity after "
                f"{self.max_retries + 1} attempts - cannot sync price {price_id} without existing product"
            ) from e

    def _attach_price(self, product_doc: dict, price_doc_id: str, make_default: bool):
        prices = [p for p in (product_doc.get("prices") or []) if p.get("_ref") != price_doc_id]
        prices.append(reference(price_doc_id, key=price_doc_id))
        fields = {"prices": prices}
        unset = None
        if make_default:
            fields["default_price"] = reference(price_doc_id)
            unset = ["stripePriceId"]
        self.content.set_fields(product_doc["_id"], fields, unset=unset)

    def sync_price(self, price: dict) -> dict:
        price_id = price.get("id")
        if not price_id:
            raise ValidationError("Price ID is missing or invalid")
        stripe_product_id = _stripe_id(price.get("product"))
        if not stripe_product_id:
            raise ValidationError(f"Product ID is missing for price {price_id}")
        if price.get("unit_amount") is None:
            raise ValidationError(f"Unit amount is missing for price {price_id}")
        if not price.get("currency"):
            raise ValidationError(f"Currency is missing for price {price_id}")

        product_doc = self._find_owning_product(stripe_product_id, price_id)

        meta = price.get("metadata") or {}
        doc_id = meta.get("sanity_id") or mirror_id(price_id)
        existing = self.content.get_document(doc_id)
        if not existing and meta.get("deleted_from_sanity") == "true":
            info(f"{TAG} price {price_id} was deleted in Sanity, not recreating {doc_id}")
            return None
        if existing and existing.get("stripePriceId") not in (None, price_id):
            # the authored price moved on to a successor Stripe price
            info(f"{TAG} price {price_id} superseded by {existing['stripePriceId']} on {doc_id}, skipping")
            return existing
        active = bool(price.get("active", True))
        new_hash = price_hash(price["unit_amount"], price["currency"], active)

        if _is_echo(meta, new_hash, existing):
            debug(f"{TAG} ignoring echo of our own push price {price_id}")
            result = existing
        else:
            doc = _carry(existing)
            doc.update({
                "_id": doc_id,
                "_type": "price",
                "stripePriceId": price_id,
                "unit_amount": price["unit_amount"],
                "currency": price["currency"],
                "active": active,
                "product": reference(product_doc["_id"], key=product_doc["_id"]),
                "syncSource": SOURCE,
                "syncHash": new_hash,
            })
            if _same_content(existing, doc):
                debug(f"{TAG} no changes, skip price {price_id}")
                result = existing
            else:
                doc["syncRevision"] = _next_revision(existing, meta)
                info(f"{TAG} upserting price {doc_id} ({price['unit_amount']} {price['currency']}) "
                     f"-> product {product_doc['_id']}")
                result = self.content.create_or_replace(doc)

        # Inactive prices stay listed but never become the default
        self._attach_price(product_doc, doc_id, make_default=active)

        waiting = [p for p in self.content.find_products_pending_price(price_id) if p["_id"] != product_doc["_id"]]
        if waiting:
            info(f"{TAG} fixing up {len(waiting)} product(s) waiting for price {price_id}")
        for p in waiting:
            self._attach_price(p, doc_id, make_default=True)

        self.cache.invalidate("products", f"product_{stripe_product_id}", f"price_{price_id}")
        info(f"{TAG} price sync complete {price_id} -> {doc_id}")
        return result

    def archive_price(self, price: dict):
        price_id = price.get("id")
        if not price_id:
            raise ValidationError("Price ID is missing or invalid")
        stripe_product_id = _stripe_id(price.get("product"))
        if not stripe_product_id:
            raise ValidationError(f"Product ID is missing for price deletion {price_id}")

        price_doc = self.content.find_price_by_stripe_id(price_id)
        price_doc_id = price_doc["_id"] if price_doc else mirror_id(price_id)
        if price_doc:
            info(f"{TAG} archiving price {price_doc_id}")
            self.content.set_fields(price_doc_id, {
                "active": False,
                "deletedAt": now_iso(),
                "syncSource": SOURCE,
                "syncRevision": _revision(price_doc.get("syncRevision")) + 1,
                "syncHash": price_hash(price_doc.get("unit_amount"), price_doc.get("currency"), False),
            })
        else:
            warn(f"{TAG} price {price_id} not found in Sanity, cleaning references only")

        product_doc = self.content.find_product_by_stripe_id(stripe_product_id)
        if product_doc:
            prices = [p for p in (product_doc.get("prices") or []) if p.get("_ref") != price_doc_id]
            unset = []
            if (product_doc.get("default_price") or {}).get("_ref") == price_doc_id:
                info(f"{TAG} deleted price was the default of {product_doc['_id']}, unsetting")
                unset.append("default_price")
            if product_doc.get("stripePriceId") == price_id:
                unset.append("stripePriceId")
            self.content.set_fields(product_doc["_id"], {"prices": prices}, unset=unset or None)
        else:
            warn(f"{TAG} product {stripe_product_id} not found - cannot update product references")

        for p in self.content.find_products_pending_price(price_id):
            if product_doc and p["_id"] == product_doc["_id"]:
                continue
            self.content.set_fields(p["_id"], {}, unset=["stripePriceId"])

        self.cache.invalidate("products", f"product_{stripe_product_id}", f"price_{price_id}")
