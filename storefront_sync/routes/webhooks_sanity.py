# storefront_sync/routes/webhooks_sanity.py
import json
import time
from flask import Blueprint, request, current_app

from .. import get_services
from ..errors import SignatureError, ValidationError
from ..utils.security import verify_sanity_signature, SANITY_SIGNATURE_HEADER
from ..utils.logger import info, warn, error
from ._responses import request_id, timestamp, elapsed_ms, problem

bp = Blueprint("webhooks_sanity", __name__)


@bp.post("/sanity")
def sanity_events():
    start = time.time()
    rid = request_id()
    info(f"[Sanity] ===== webhook request {rid} =====")

    raw = request.get_data()
    if not raw:
        warn(f"[Sanity] empty request body ({rid})")
        return problem("Empty request body", 400, rid)

    secret = current_app.config["SANITY"].get("webhook_secret")
    signature = request.headers.get(SANITY_SIGNATURE_HEADER)
    if secret:
        if not signature:
            warn(f"[Sanity] missing signature header ({rid})")
            return problem("Missing webhook signature", 401, rid)
        try:
            verify_sanity_signature(raw, signature, secret)
        except SignatureError as e:
            warn(f"[Sanity] invalid webhook signature ({rid}): {e}")
            return problem("Invalid webhook signature", 401, rid)
    else:
        warn(f"[Sanity] signature verification skipped - no secret configured ({rid})")

    try:
        payload = json.loads(raw.decode("utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("payload is not a JSON object")
    except ValueError as e:
        warn(f"[Sanity] failed to parse payload ({rid}): {e}")
        return problem("Failed to parse webhook payload", 400, rid, details=str(e))

    doc = payload.get("sanityDocument") or payload
    try:
        summary = get_services()["sanity_sync"].handle_event(payload)
    except ValidationError as e:
        warn(f"[Sanity ➝ Stripe] rejecting {doc.get('_type')} {doc.get('_id')}: {e}")
        return problem("Invalid document", 400, rid, details=str(e),
                       documentType=doc.get("_type"), documentId=doc.get("_id"))
    except Exception as e:
        error(f"[Sanity ➝ Stripe] failed to process {doc.get('_type')} {doc.get('_id')} ({rid}): {e}")
        return problem("Webhook processing failed", 500, rid, details=str(e),
                       transition=payload.get("transition"), documentType=doc.get("_type"),
                       documentId=doc.get("_id"), processingTime=elapsed_ms(start))

    took = elapsed_ms(start)
    info(f"[Sanity] processed {summary.get('transition')} for {summary.get('documentId')} in {took}ms ({rid})")
    return {
        "received": True,
        **summary,
        "requestId": rid,
        "processingTime": took,
        "timestamp": timestamp(),
    }, 200
