# storefront_sync/services/sanity_to_stripe.py
from ..clients.stripe_api import StripeGateway
from ..errors import ValidationError, SyncError
from ..utils.cache import TagCache
from ..utils.hash import product_hash, price_hash
from ..utils.logger import debug, info, warn
from .content import ContentStore, image_urls, now_iso

TAG = "[Sanity ➝ Stripe]"
SOURCE = "sanity"

DRAFT_PREFIX = "drafts."

def _revision(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0

def _is_active(doc: dict) -> bool:
    # Authored documents may never have had the flag set
    return doc.get("active") is not False

def _sync_metadata(doc_id: str, revision: int, digest: str, **extra) -> dict:
    meta = {
        "sanity_id": doc_id,
        "updated_from_sanity": "true",
        "sync_source": SOURCE,
        "sync_revision": str(revision),
        "sync_hash": digest,
    }
    meta.update({k: v for k, v in extra.items() if v is not None})
    return meta


class SanityToStripe:
    """Pushes author-controlled product and price fields from Sanity to Stripe."""

    def __init__(self, content: ContentStore, payments: StripeGateway, cache: TagCache):
        self.content = content
        self.payments = payments
        self.cache = cache

    # -----------------------------------------------------
    # Dispatch
    # -----------------------------------------------------

    def handle_event(self, payload: dict) -> dict:
        document = payload.get("sanityDocument")
        transition = payload.get("transition")

        # Projection-less webhooks post the document itself
        if not document and payload.get("_type"):
            document = payload
            transition = transition or "update"

        if not document:
            info(f"{TAG} no document in event, nothing to do")
            return {"status": "skipped", "transition": transition}

        doc_type, doc_id = document.get("_type"), document.get("_id")
        summary = {"transition": transition, "documentType": doc_type, "documentId": doc_id}

        if (doc_id or "").startswith(DRAFT_PREFIX):
            debug(f"{TAG} ignoring draft {doc_id}")
            return {**summary, "status": "skipped"}

        if transition in ("appear", "update"):
            info(f"{TAG} {doc_type} {transition}: {doc_id}")
            self.sync_document(document)
        elif transition == "disappear":
            if doc_type == "product" and document.get("stripeProductId"):
                self.archive_product(document["stripeProductId"])
            elif doc_type == "price" and document.get("stripePriceId"):
                self.archive_price(document["stripePriceId"])
            else:
                info(f"{TAG} {doc_type} {doc_id} removed but never reached Stripe")
        else:
            warn(f"{TAG} unhandled or missing transition {transition!r}, attempting sync of {doc_id}")
            self.sync_document(document)

        return {**summary, "status": "processed"}

    def sync_document(self, document: dict):
        doc_type = document.get("_type")
        if doc_type == "product":
            self.sync_product(document)
        elif doc_type == "price":
            self.sync_price(document)
        else:
            debug(f"{TAG} ignoring document type {doc_type}")

    def sync_by_id(self, doc_id: str) -> dict:
        """Manual "Sync to Stripe" for one stored document."""
        doc = self.content.get_document(doc_id)
        if not doc:
            raise ValidationError(f"Document {doc_id} not found")
        if doc.get("_type") not in ("product", "price"):
            raise ValidationError(f"Document {doc_id} is a {doc.get('_type')}, not a product or price")
        self.sync_document(doc)
        return doc

    # -----------------------------------------------------
    # Products
    # -----------------------------------------------------

    def sync_product(self, doc: dict) -> str:
        doc_id = doc.get("_id")
        if not doc_id:
            raise ValidationError("Product document has no _id")
        name = (doc.get("name") or "").strip()
        if not name:
            raise ValidationError(f"Product {doc_id} has no name")

        urls = image_urls(self.content, doc)
        active = _is_active(doc)
        digest = product_hash(name, doc.get("description"), active, doc.get("brand"), urls)
        stripe_id = doc.get("stripeProductId")

        if stripe_id and doc.get("syncHash") == digest:
            debug(f"{TAG} no author changes since last sync, skip {doc_id}")
            return stripe_id

        revision = _revision(doc.get("syncRevision")) + 1
        params = {
            "name": name,
            "images": urls,
            "active": active,
            "metadata": _sync_metadata(doc_id, revision, digest, brand=doc.get("brand") or ""),
        }

        if stripe_id:
            info(f"{TAG} updating Stripe product {stripe_id} from {doc_id}")
            # empty string unsets the description on update
            params["description"] = doc.get("description") or ""
            self.payments.update_product(stripe_id, params)
        else:
            info(f"{TAG} creating Stripe product for {doc_id}")
            if doc.get("description"):
                params["description"] = doc["description"]
            created = self.payments.create_product(params)
            stripe_id = created["id"]

        self.content.set_fields(doc_id, {
            "stripeProductId": stripe_id,
            "syncSource": SOURCE,
            "syncRevision": revision,
            "syncHash": digest,
        })
        self.cache.invalidate("products", f"product_{stripe_id}")
        info(f"{TAG} product sync complete {doc_id} -> {stripe_id}")
        return stripe_id

    def archive_product(self, stripe_product_id: str):
        info(f"{TAG} archiving Stripe product {stripe_product_id}")
        self.payments.update_product(stripe_product_id, {
            "active": False,
            "metadata": {"deleted_from_sanity": "true", "deleted_at": now_iso()},
        })
        self.cache.invalidate("products", f"product_{stripe_product_id}")

    # -----------------------------------------------------
    # Prices
    # -----------------------------------------------------

    def sync_price(self, doc: dict) -> str:
        doc_id = doc.get("_id")
        if not doc_id:
            raise ValidationError("Price document has no _id")
        amount = doc.get("unit_amount")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValidationError(f"Price {doc_id} needs a non-negative integer unit_amount, got {amount!r}")
        currency = (doc.get("currency") or "").strip().lower()
        if not currency:
            raise ValidationError(f"Price {doc_id} has no currency")
        product_ref = (doc.get("product") or {}).get("_ref")
        if not product_ref:
            raise ValidationError(f"Price {doc_id} does not reference a product")

        product_doc = self.content.get_document(product_ref) or {}
        stripe_product_id = product_doc.get("stripeProductId")
        if not stripe_product_id:
            raise SyncError(f"Associated product {product_ref} must be synced to Stripe first")

        active = _is_active(doc)
        digest = price_hash(amount, currency, active)
        stripe_price_id = doc.get("stripePriceId")

        if stripe_price_id and doc.get("syncHash") == digest:
            debug(f"{TAG} no author changes since last sync, skip {doc_id}")
            return stripe_price_id

        revision = _revision(doc.get("syncRevision")) + 1
        metadata = _sync_metadata(doc_id, revision, digest)

        if stripe_price_id:
            current = self.payments.retrieve_price(stripe_price_id)
            if current.get("unit_amount") != amount or (current.get("currency") or "").lower() != currency:
                stripe_price_id = self._replace_price(stripe_price_id, stripe_product_id, product_doc,
                                                      doc_id, amount, currency, metadata)
            else:
                info(f"{TAG} updating Stripe price {stripe_price_id} from {doc_id}")
                self.payments.update_price(stripe_price_id, {"active": active, "metadata": metadata})
        else:
            info(f"{TAG} creating Stripe price for {doc_id} ({amount} {currency})")
            created = self.payments.create_price({
                "product": stripe_product_id,
                "unit_amount": amount,
                "currency": currency,
                "active": active,
                "metadata": metadata,
            })
            stripe_price_id = created["id"]

        self.content.set_fields(doc_id, {
            "stripePriceId": stripe_price_id,
            "syncSource": SOURCE,
            "syncRevision": revision,
            "syncHash": digest,
        })
        self.cache.invalidate("products", f"product_{stripe_product_id}", f"price_{stripe_price_id}")
        info(f"{TAG} price sync complete {doc_id} -> {stripe_price_id}")
        return stripe_price_id

    def _replace_price(self, old_id: str, stripe_product_id: str, product_doc: dict, doc_id: str,
                       amount: int, currency: str, metadata: dict) -> str:
        """Stripe prices are immutable: create a successor, move the default, archive the old one."""
        info(f"{TAG} amount/currency changed for {doc_id}, replacing Stripe price {old_id}")
        new = self.payments.create_price({
            "product": stripe_product_id,
            "unit_amount": amount,
            "currency": currency,
            "metadata": {**metadata, "replaces": old_id},
        })
        if (product_doc.get("default_price") or {}).get("_ref") == doc_id:
            self.payments.update_product(stripe_product_id, {"default_price": new["id"]})
        self.payments.update_price(old_id, {"active": False, "metadata": {"replaced_by": new["id"]}})
        return new["id"]

    def archive_price(self, stripe_price_id: str):
        info(f"{TAG} archiving Stripe price {stripe_price_id}")
        self.payments.update_price(stripe_price_id, {
            "active": False,
            "metadata": {"deleted_from_sanity": "true", "deleted_at": now_iso()},
        })
        self.cache.invalidate("products", f"price_{stripe_price_id}")
