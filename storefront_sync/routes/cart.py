# storefront_sync/routes/cart.py
from flask import Blueprint, request

from .. import get_services

bp = Blueprint("cart", __name__)


def _reply(result: dict):
    return result, (400 if result.get("error") else 200)


def _body() -> dict:
    return request.get_json(silent=True) or {}


@bp.get("/cart")
def get_cart():
    cart = get_services()["cart"].get_cart(request.args.get("userId", ""))
    return {"cart": cart}, 200


@bp.post("/cart/items")
def add_item():
    body = _body()
    return _reply(get_services()["cart"].add_item(body.get("productId"), body.get("userId")))


@bp.patch("/cart/<cart_id>/items/<item_key>")
def update_quantity(cart_id, item_key):
    return _reply(get_services()["cart"].update_quantity(cart_id, item_key, _body().get("quantity")))


@bp.delete("/cart/<cart_id>/items/<item_key>")
def remove_item(cart_id, item_key):
    return _reply(get_services()["cart"].remove_item(cart_id, item_key))


@bp.post("/cart/<cart_id>/checkout")
def checkout(cart_id):
    return _reply(get_services()["cart"].checkout(cart_id))


@bp.post("/checkout/buy-now")
def buy_now():
    return _reply(get_services()["cart"].buy_now(_body().get("priceId")))
