"""
Tests for cart operations.
"""
from decimal import Decimal

import pytest

from storefront.exceptions import CartError
from storefront.models.cart import CartItem
from storefront.services import cart_service

from tests.factories import create_test_cart_item, create_test_product, create_test_user


def test_add_increments_existing_line(db_session):
    user = create_test_user(db_session)
    product = create_test_product(db_session, quantity=10)
    db_session.commit()

    cart_service.add_to_cart(db_session, user, product.id, 2)
    item = cart_service.add_to_cart(db_session, user, product.id, 3)

    assert item.quantity == 5


def test_add_beyond_stock_rejected(db_session):
    user = create_test_user(db_session)
    product = create_test_product(db_session, quantity=2)
    db_session.commit()

    with pytest.raises(CartError) as exc_info:
        cart_service.add_to_cart(db_session, user, product.id, 3)

    assert exc_info.value.status_code == 400


def test_add_inactive_product_is_404(db_session):
    user = create_test_user(db_session)
    product = create_test_product(db_session, is_active=False)
    db_session.commit()

    with pytest.raises(CartError) as exc_info:
        cart_service.add_to_cart(db_session, user, product.id)

    assert exc_info.value.status_code == 404


def test_add_merges_line_inserted_by_concurrent_request(db_session, monkeypatch):
    user = create_test_user(db_session)
    product = create_test_product(db_session, quantity=10)
    # Another tab already committed this line after our lookup ran
    create_test_cart_item(db_session, user, product, quantity=2)
    db_session.commit()

    real_find = cart_service._find_line
    calls = []

    def stale_find(db, user_id, product_id):
        calls.append(product_id)
        if len(calls) == 1:
            return None
        return real_find(db, user_id, product_id)

    monkeypatch.setattr(cart_service, "_find_line", stale_find)

    item = cart_service.add_to_cart(db_session, user, product.id, 3)

    assert len(calls) == 2
    assert item.quantity == 5
    assert db_session.query(CartItem).filter(CartItem.user_id == user.id).count() == 1


def test_concurrent_add_still_checks_stock(db_session, monkeypatch):
    user = create_test_user(db_session)
    product = create_test_product(db_session, quantity=4)
    create_test_cart_item(db_session, user, product, quantity=3)
    db_session.commit()

    real_find = cart_service._find_line
    calls = []

    def stale_find(db, user_id, product_id):
        calls.append(product_id)
        return None if len(calls) == 1 else real_find(db, user_id, product_id)

    monkeypatch.setattr(cart_service, "_find_line", stale_find)

    with pytest.raises(CartError) as exc_info:
        cart_service.add_to_cart(db_session, user, product.id, 2)

    assert exc_info.value.status_code == 400
    db_session.rollback()
    line = db_session.query(CartItem).filter(CartItem.user_id == user.id).one()
    assert line.quantity == 3


def test_set_quantity_last_write_wins(db_session):
    user = create_test_user(db_session)
    product = create_test_product(db_session, quantity=10)
    create_test_cart_item(db_session, user, product, quantity=4)
    db_session.commit()

    item = cart_service.set_cart_quantity(db_session, user, product.id, 1)

    assert item.quantity == 1


def test_cart_hides_inactive_products_and_prices_by_client_type(db_session):
    user = create_test_user(db_session, role="wholesale")
    active = create_test_product(
        db_session, price_retail=Decimal("100.00"), price_wholesale=Decimal("80.00")
    )
    hidden = create_test_product(db_session, is_active=False)
    create_test_cart_item(db_session, user, active, quantity=2)
    create_test_cart_item(db_session, user, hidden, quantity=1)
    db_session.commit()

    items, total = cart_service.get_cart(db_session, user)

    assert [item.product_id for item in items] == [active.id]
    assert total == Decimal("160.00")


def test_remove_and_clear(db_session):
    user = create_test_user(db_session)
    first = create_test_product(db_session)
    second = create_test_product(db_session)
    create_test_cart_item(db_session, user, first)
    create_test_cart_item(db_session, user, second)
    db_session.commit()

    assert cart_service.remove_from_cart(db_session, user, first.id) is True
    assert cart_service.remove_from_cart(db_session, user, first.id) is False
    assert cart_service.clear_cart(db_session, user) == 1
