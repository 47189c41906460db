import os
import re

import pytest
from filelock import FileLock, Timeout

from conftest import ref
from storefront.schemas.cart import EMPTY_CART_EPOCH, Cart, CartItem, CartItemKey
from storefront.services.cart_service import CartItemNotFound, CartService
from storefront.services.local_cart_cache import LocalCartCache, load_or_create_device_id

HOODIE = CartItemKey("hoodie-1", "M", "black")
TEE = CartItemKey("tee-1", "M", "white")
CAP = CartItemKey("cap-1", "OS", "red")


def test_add_item_appends_and_totals(cart_service, clock):
    cart = cart_service.add_item("u1", ref("hoodie-1"), 2, "M", "black")
    assert len(cart.items) == 1
    assert cart.total_items == 2
    assert cart.total_price == 2000
    assert cart.updated_at == clock()

    cart = cart_service.add_item("u1", ref("tee-1"), 1, "M", "white")
    assert [it.key for it in cart.items] == [HOODIE, TEE]
    assert cart.total_items == 3
    assert cart.total_price == 2300


def test_add_existing_key_increments_and_refreshes_price(cart_service, clock):
    cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    clock.advance(10)
    cart = cart_service.add_item("u1", ref("hoodie-1", price=1200), 2, "M", "black")
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.items[0].unit_price == 1200
    assert cart.total_price == 3600


def test_same_product_other_variant_is_separate_line(cart_service):
    cart_service.add_item("u1", ref("tee-1"), 1, "M", "white")
    cart = cart_service.add_item("u1", ref("tee-1"), 1, "S", "white")
    assert len(cart.items) == 2


def test_add_rejects_non_positive_quantity(cart_service):
    with pytest.raises(ValueError):
        cart_service.add_item("u1", ref("hoodie-1"), 0, "M", "black")
    assert cart_service.get_cart("u1").is_empty


def test_set_quantity_updates_and_zero_removes(cart_service):
    cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    cart_service.add_item("u1", ref("tee-1"), 1, "M", "white")

    cart = cart_service.set_quantity("u1", HOODIE, 4)
    assert cart.find(HOODIE).quantity == 4
    assert cart.total_items == 5

    cart = cart_service.set_quantity("u1", HOODIE, 0)
    assert cart.find(HOODIE) is None
    assert cart.total_items == 1
    assert cart.total_price == 300


def test_set_quantity_on_missing_item_raises(cart_service):
    with pytest.raises(CartItemNotFound):
        cart_service.set_quantity("u1", HOODIE, 2)


def test_remove_missing_item_is_noop(cart_service, clock):
    cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    before = cart_service.get_cart("u1")
    clock.advance(30)
    after = cart_service.remove_item("u1", TEE)
    assert after.same_content(before)
    assert after.updated_at == before.updated_at


def test_clear_empties_and_stamps(cart_service, clock):
    cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    clock.advance(5)
    cart = cart_service.clear("u1")
    assert cart.is_empty
    assert cart.total_items == 0
    assert cart.total_price == 0
    assert cart.updated_at == clock()


def test_item_count_and_has_item(cart_service):
    cart_service.add_item("u1", ref("hoodie-1"), 2, "M", "black")
    assert cart_service.item_count("u1") == 2
    assert cart_service.has_item("u1", HOODIE)
    assert not cart_service.has_item("u1", TEE)


def test_totals_are_recomputed_not_trusted(cart_service):
    cart = cart_service.add_item("u1", ref("hoodie-1"), 2, "M", "black")
    raw = cart.model_dump()
    raw["total_items"] = 99
    raw["total_price"] = 1
    reloaded = Cart.model_validate(raw)
    assert (reloaded.total_items, reloaded.total_price) == (2, 2000)
    again = Cart.model_validate(reloaded.model_dump())
    assert (again.total_items, again.total_price) == (2, 2000)


def test_mutations_write_through_to_cache(cart_service, cache):
    cart_service.add_item("u1", ref("hoodie-1"), 2, "M", "black")
    other_reader = LocalCartCache(cache.directory)
    cart = other_reader.get("u1")
    assert cart.find(HOODIE).quantity == 2


def test_fresh_cart_is_empty_with_epoch_timestamp(cache):
    cart = cache.get("nobody")
    assert cart.is_empty
    assert cart.updated_at == EMPTY_CART_EPOCH


def test_corrupt_cache_file_yields_empty_cart(cart_service, cache):
    cart_service.add_item("u1", ref("hoodie-1"), 2, "M", "black")
    path = [
        os.path.join(cache.directory, f)
        for f in os.listdir(cache.directory)
        if f.endswith(".json")
    ][0]
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("{not json")
    cart = cache.get("u1")
    assert cart.is_empty


def test_device_id_is_stable(tmp_path):
    first = load_or_create_device_id(str(tmp_path))
    second = load_or_create_device_id(str(tmp_path))
    assert first == second
    assert re.match(r"^device_\d+_[a-z0-9]{9}$", first)


def _guest(key, qty, price, clock):
    return CartItem(
        product_id=key.product_id,
        size=key.size,
        color=key.color,
        quantity=qty,
        unit_price=price,
        updated_at=clock(),
    )


def test_merge_guest_cart_adds_each_line_in_one_write(cart_service, cache, clock, monkeypatch):
    cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    clock.advance(30)

    puts = []
    real_put = LocalCartCache.put

    def counting_put(self, *args, **kwargs):
        puts.append(args[0])
        return real_put(self, *args, **kwargs)

    monkeypatch.setattr(LocalCartCache, "put", counting_put)

    cart = cart_service.merge_guest_cart(
        "u1", [_guest(HOODIE, 2, 1100, clock), _guest(CAP, 1, 150, clock)]
    )
    assert puts == ["u1"]
    assert {it.key: (it.quantity, it.unit_price) for it in cart.items} == {
        HOODIE: (3, 1100),
        CAP: (1, 150),
    }
    assert cart.total_items == 4
    assert cart.total_price == 3 * 1100 + 150
    assert cart.updated_at == clock()
    assert cache.get("u1").same_content(cart)


def test_merge_empty_guest_cart_changes_nothing(cart_service, clock):
    before = cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    clock.advance(30)
    after = cart_service.merge_guest_cart("u1", [])
    assert after.same_content(before)
    assert after.updated_at == before.updated_at


def test_put_if_unchanged_refuses_after_concurrent_edit(cart_service, cache, clock):
    seen = cart_service.add_item("u1", ref("hoodie-1"), 1, "M", "black")
    clock.advance(1)
    cart_service.add_item("u1", ref("tee-1"), 1, "M", "white")

    stale = seen.rebuild([], updated_at=clock())
    assert cache.put_if_unchanged("u1", stale, seen.updated_at) is False
    assert cart_service.has_item("u1", TEE)

    current = cache.get("u1")
    assert cache.put_if_unchanged("u1", stale, current.updated_at) is True
    assert cache.get("u1").is_empty


def test_put_if_unchanged_on_missing_file_expects_epoch(cache, clock):
    cart = Cart(user_id="u9", updated_at=clock())
    assert cache.put_if_unchanged("u9", cart, clock()) is False
    assert cache.put_if_unchanged("u9", cart, EMPTY_CART_EPOCH) is True
    assert cache.get("u9").updated_at == clock()


def test_locked_cart_is_not_overwritten_by_mutations(tmp_path, clock):
    cache = LocalCartCache(str(tmp_path / "locked"), lock_timeout=0.1)
    svc = CartService(cache, clock)
    svc.add_item("u1", ref("hoodie-1"), 2, "M", "black")

    holder = FileLock(cache._path("u1") + ".lock")
    with holder:
        # readers still get an answer
        assert cache.get("u1").is_empty
        with pytest.raises(Timeout):
            svc.add_item("u1", ref("tee-1"), 1, "M", "white")
        with pytest.raises(Timeout):
            svc.clear("u1")

    cart = cache.get("u1")
    assert cart.find(HOODIE).quantity == 2
    assert cart.find(TEE) is None
