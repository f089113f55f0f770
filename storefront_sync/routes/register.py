# storefront_sync/routes/register.py
from flask import Blueprint, current_app

from .. import get_services
from ..clients.stripe_api import SYNC_EVENTS
from ..utils.logger import info, error

bp = Blueprint("register", __name__)


def _ensure(payments, address: str, events: list[str]):
    # Read existing endpoints
    try:
        existing = payments.list_webhook_endpoints()
    except Exception as e:
        error(f"[register] failed to read Stripe webhook endpoints: {e}")
        return f"Failed to read existing webhooks: {e}", 500

    found = [w for w in existing if w.get("url") == address]
    if found:
        endpoint = found[0]
        missing = sorted(set(events) - set(endpoint.get("enabled_events") or []))
        if not missing:
            return "OK stripe", 200

        # Widen the subscription in place rather than adding a duplicate endpoint
        try:
            payments.update_webhook_endpoint(endpoint["id"], sorted(set(events) | set(endpoint.get("enabled_events") or [])))
        except Exception as e:
            return f"FAIL stripe exception {e}", 500
        info(f"[register] updated Stripe endpoint {endpoint['id']} with {', '.join(missing)}")
        return "UPDATED stripe", 200

    # No endpoint for this address -> create
    try:
        created = payments.create_webhook_endpoint(address, list(events))
    except Exception as e:
        return f"FAIL stripe exception {e}", 500
    info(f"[register] created Stripe endpoint {created.get('id')} -> {address}")
    return "CREATED stripe", 200


@bp.get("/stripe")
def reg_stripe():
    base_url = current_app.config.get("BASE_URL")
    if not base_url:
        return "Missing BASE_URL in env.", 500
    address = f"{base_url.rstrip('/')}/webhooks/stripe"
    return _ensure(get_services()["payments"], address, SYNC_EVENTS)
