import sys
import time
import logging
from flask import Flask
from dotenv import load_dotenv

EXTENSION = "storefront_sync"


def create_app(overrides: dict | None = None, content=None, payments=None, cache=None):
    load_dotenv()
    from . import config
    from .clients.sanity import SanityClient
    from .clients.stripe_api import StripeGateway
    from .services.content import ContentStore
    from .services.stripe_to_sanity import StripeToSanity
    from .services.sanity_to_stripe import SanityToStripe
    from .services.cart import CartService
    from .utils.cache import TagCache
    from .utils.logger import LOG_LEVEL

    app = Flask(__name__)
    app.config.update(config.as_dict())
    app.config.update(overrides or {})

    # =========================================================
    # Logging: gunicorn handlers when served by it, stdout always
    # =========================================================
    # app.logger is the "storefront_sync" logger utils.logger writes to
    gunicorn_error = logging.getLogger("gunicorn.error")
    app.logger.handlers = list(gunicorn_error.handlers)
    app.logger.setLevel(LOG_LEVEL)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(LOG_LEVEL)
    sh.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s] %(message)s", "%H:%M:%S"))
    app.logger.addHandler(sh)

    # =========================================================
    # Collaborators
    # =========================================================
    if content is None:
        content = ContentStore(SanityClient.from_config(app.config["SANITY"]))
    if payments is None:
        payments = StripeGateway.from_config(app.config["STRIPE"], app.config["PUBLIC_URL"])
    if cache is None:
        cache = TagCache(app.config.get("REVALIDATE_URL"), app.config.get("REVALIDATE_SECRET"))

    app.extensions[EXTENSION] = {
        "content": content,
        "payments": payments,
        "cache": cache,
        "stripe_sync": StripeToSanity(
            content, cache,
            max_retries=app.config["PRICE_SYNC_MAX_RETRIES"],
            base_delay=app.config["PRICE_SYNC_BASE_DELAY"],
            sleep=app.config.get("RETRY_SLEEP") or time.sleep,
        ),
        "sanity_sync": SanityToStripe(content, payments, cache),
        "cart": CartService(content, payments),
    }

    if not app.config["SANITY"].get("webhook_secret"):
        app.logger.warning("SANITY_WEBHOOK_SECRET is not set. Sanity webhook signature verification is disabled.")

    # =========================================================
    # Blueprints
    # =========================================================
    from .routes.register import bp as register_bp
    from .routes.webhooks_stripe import bp as stripe_bp
    from .routes.webhooks_sanity import bp as sanity_bp
    from .routes.cart import bp as cart_bp
    from .routes.sync_actions import bp as sync_bp

    app.register_blueprint(register_bp, url_prefix="/register_webhooks")
    app.register_blueprint(stripe_bp, url_prefix="/webhooks")
    app.register_blueprint(sanity_bp, url_prefix="/webhooks")
    app.register_blueprint(cart_bp)
    app.register_blueprint(sync_bp, url_prefix="/sync")

    # =========================================================
    # Health check
    # =========================================================
    @app.get("/health")
    def health():
        app.logger.info("Health check endpoint called")
        return {"ok": True}, 200

    return app


def get_services(app=None) -> dict:
    from flask import current_app
    return (app or current_app).extensions[EXTENSION]
