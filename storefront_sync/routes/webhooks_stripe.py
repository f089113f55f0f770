# storefront_sync/routes/webhooks_stripe.py
import json
import time
from flask import Blueprint, request, current_app

from .. import get_services
from ..errors import SignatureError, ValidationError
from ..utils.security import verify_stripe_signature, STRIPE_SIGNATURE_HEADER
from ..utils.logger import info, warn, error
from ._responses import request_id, timestamp, elapsed_ms, problem

bp = Blueprint("webhooks_stripe", __name__)


@bp.post("/stripe")
def stripe_events():
    start = time.time()
    rid = request_id()
    info(f"[Stripe] ===== webhook request {rid} =====")

    secret = current_app.config["STRIPE"].get("webhook_secret")
    if not secret:
        error(f"[Stripe] STRIPE_WEBHOOK_SECRET is not configured, rejecting {rid}")
        return problem("Webhook secret not configured", 500, rid)

    signature = request.headers.get(STRIPE_SIGNATURE_HEADER)
    if not signature:
        warn(f"[Stripe] missing signature header ({rid})")
        return problem("Missing stripe-signature header", 400, rid)

    raw = request.get_data()
    if not raw:
        warn(f"[Stripe] empty request body ({rid})")
        return problem("Empty request body", 400, rid)

    try:
        verify_stripe_signature(raw, signature, secret)
        event = json.loads(raw.decode("utf-8"))
    except (SignatureError, ValueError) as e:
        warn(f"[Stripe] signature verification failed ({rid}): {e}")
        return problem("Webhook signature verification failed", 400, rid, details=str(e))

    etype, eid = event.get("type"), event.get("id")
    info(f"[Stripe] event {eid} {etype} ({rid})")

    try:
        get_services()["stripe_sync"].handle_event(event)
    except ValidationError as e:
        # malformed, redelivery cannot help
        warn(f"[Stripe ➝ Sanity] rejecting malformed event {eid}: {e}")
        return problem("Invalid event payload", 400, rid, details=str(e), eventType=etype, eventId=eid)
    except Exception as e:
        error(f"[Stripe ➝ Sanity] failed to process {etype} {eid} ({rid}): {e}")
        # non-2xx makes Stripe redeliver later
        return problem("Webhook processing failed", 500, rid, details=str(e), eventType=etype,
                       eventId=eid, processingTime=elapsed_ms(start))

    took = elapsed_ms(start)
    info(f"[Stripe] processed {etype} {eid} in {took}ms ({rid})")
    return {
        "received": True,
        "eventType": etype,
        "eventId": eid,
        "requestId": rid,
        "processingTime": took,
        "timestamp": timestamp(),
    }, 200
