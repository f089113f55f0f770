import json, hashlib

def _digest(fields: dict) -> str:
    return hashlib.sha256(json.dumps(fields, sort_keys=True).encode()).hexdigest()

def product_hash(name, description, active, brand, image_urls) -> str:
    """Hash of the author-controlled product fields, identical on both sides."""
    return _digest({
        "name": name or "",
        "description": description or "",
        "active": bool(active),
        "brand": brand or "",
        "images": [u for u in (image_urls or []) if u],
    })

def price_hash(unit_amount, currency, active=True) -> str:
    return _digest({
        "unit_amount": unit_amount,
        "currency": (currency or "").lower(),
        "active": bool(active),
    })
