import os

BASE_URL = os.getenv("BASE_URL")
PUBLIC_URL = os.getenv("PUBLIC_URL", os.getenv("BASE_URL", "http://localhost:3000"))

STRIPE = {
    "secret_key": os.getenv("STRIPE_SECRET_KEY"),
    "webhook_secret": os.getenv("STRIPE_WEBHOOK_SECRET"),
    "api_version": os.getenv("STRIPE_API_VERSION", "2025-09-30.clover"),
    "name": "Stripe",
}

SANITY = {
    "project_id": os.getenv("SANITY_PROJECT_ID"),
    "dataset": os.getenv("SANITY_DATASET", "production"),
    "token": os.getenv("SANITY_API_TOKEN"),
    "api_version": os.getenv("SANITY_API_VERSION", "2025-02-19"),
    "webhook_secret": os.getenv("SANITY_WEBHOOK_SECRET"),
    "name": "Sanity",
}

# Optional hook the storefront exposes to drop cached pages by tag
REVALIDATE_URL = os.getenv("REVALIDATE_URL")
REVALIDATE_SECRET = os.getenv("REVALIDATE_SECRET")

# Price arriving before its product: retries after the first attempt
PRICE_SYNC_MAX_RETRIES = int(os.getenv("PRICE_SYNC_MAX_RETRIES", 3))
PRICE_SYNC_BASE_DELAY = float(os.getenv("PRICE_SYNC_BASE_DELAY", 1.0))


def as_dict() -> dict:
    """Snapshot of the settings; create_app copies this into app.config."""
    return {
        "BASE_URL": BASE_URL,
        "PUBLIC_URL": PUBLIC_URL,
        "STRIPE": dict(STRIPE),
        "SANITY": dict(SANITY),
        "REVALIDATE_URL": REVALIDATE_URL,
        "REVALIDATE_SECRET": REVALIDATE_SECRET,
        "PRICE_SYNC_MAX_RETRIES": PRICE_SYNC_MAX_RETRIES,
        "PRICE_SYNC_BASE_DELAY": PRICE_SYNC_BASE_DELAY,
    }
