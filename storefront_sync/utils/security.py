import base64, hashlib, hmac, time

import stripe

from ..errors import SignatureError

SANITY_SIGNATURE_HEADER = "sanity-webhook-signature"
STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


def verify_stripe_signature(raw: bytes, header: str, secret: str, tolerance: int = 300):
    if not header:
        raise SignatureError("Missing stripe-signature header")
    try:
        stripe.WebhookSignature.verify_header(raw.decode("utf-8"), header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise SignatureError(str(e)) from e


def _parse_sanity_header(header: str) -> tuple[str, str]:
    parts = dict(p.split("=", 1) for p in header.split(",") if "=" in p)
    ts, sig = parts.get("t", "").strip(), parts.get("v1", "").strip()
    if not ts or not sig:
        raise SignatureError("Malformed sanity-webhook-signature header")
    return ts, sig


def sanity_signature(raw: bytes, secret: str, timestamp: int | str) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + raw, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def verify_sanity_signature(raw: bytes, header: str, secret: str, tolerance: int | None = None):
    ts, their_sig = _parse_sanity_header(header)
    if tolerance is not None and abs(time.time() * 1000 - int(ts)) > tolerance * 1000:
        raise SignatureError("Sanity webhook timestamp outside tolerance")
    if not hmac.compare_digest(sanity_signature(raw, secret, ts), their_sig):
        raise SignatureError("Invalid webhook signature")
