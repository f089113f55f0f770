from storefront_sync.services.optimistic_cart import (
    OptimisticCart, AddItem, RemoveItem, UpdateQuantity, Reset, apply_action, PLACEHOLDER_NAME,
)


def server_cart(*lines):
    return {
        "_id": "cart-u1",
        "userId": "u1",
        "items": [{"_key": key, "quantity": qty, "product": {"_id": pid, "name": pid.title()}}
                  for key, pid, qty in lines],
    }


def test_add_to_empty_projection_builds_placeholder_cart():
    view = apply_action(None, AddItem("p1"))
    assert view["items"][0]["product"]["_id"] == "p1"
    assert view["items"][0]["product"]["name"] == PLACEHOLDER_NAME
    assert view["items"][0]["quantity"] == 1


def test_add_existing_product_increments():
    view = apply_action(server_cart(("k1", "p1", 1)), AddItem("p1"))
    assert [i["quantity"] for i in view["items"]] == [2]


def test_add_new_product_appends_placeholder():
    view = apply_action(server_cart(("k1", "p1", 1)), AddItem("p2"))
    assert [i["product"]["_id"] for i in view["items"]] == ["p1", "p2"]
    assert view["items"][1]["placeholder"] is True


def test_update_to_zero_removes_line():
    view = apply_action(server_cart(("k1", "p1", 3), ("k2", "p2", 1)), UpdateQuantity("k1", 0))
    assert [i["_key"] for i in view["items"]] == ["k2"]


def test_reducer_does_not_mutate_input():
    cart = server_cart(("k1", "p1", 1))
    apply_action(cart, UpdateQuantity("k1", 7))
    assert cart["items"][0]["quantity"] == 1


def test_remove_on_empty_projection_stays_empty():
    assert apply_action(None, RemoveItem("k1")) is None


def test_overlay_folds_over_snapshot():
    cart = OptimisticCart(server_cart(("k1", "p1", 1)))
    cart.dispatch(AddItem("p1"))
    cart.dispatch(AddItem("p2"))

    assert len(cart.pending) == 2
    assert [i["quantity"] for i in cart.view["items"]] == [2, 1]
    # snapshot untouched until the server answers
    assert [i["quantity"] for i in cart.snapshot["items"]] == [1]


def test_receive_replaces_overlay_wholesale():
    cart = OptimisticCart(server_cart(("k1", "p1", 1)))
    cart.dispatch(AddItem("p1"))

    # a stale response that has not seen the add yet wins over the optimistic view
    view = cart.receive(server_cart(("k1", "p1", 1)))

    assert cart.pending == ()
    assert view["items"][0]["quantity"] == 1


def test_reset_drops_pending_actions():
    cart = OptimisticCart(server_cart(("k1", "p1", 1)))
    cart.dispatch(RemoveItem("k1"))
    assert cart.view["items"] == []

    cart.dispatch(Reset())
    assert cart.view["items"][0]["_key"] == "k1"


def test_timestamps_strictly_increase_with_a_stalled_clock():
    cart = OptimisticCart(clock=lambda: 100.0)
    cart.dispatch(AddItem("p1"))
    first = cart.optimistic_timestamp
    cart.dispatch(AddItem("p1"))
    assert cart.optimistic_timestamp > first
