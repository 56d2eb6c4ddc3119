"""
Cart Service

Per-user cart lines keyed by (user, product). Adding increments the line,
setting a quantity overwrites it (last write wins).
"""
from decimal import Decimal
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from storefront.exceptions import CartError
from storefront.models.cart import CartItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.logging_config import get_logger

logger = get_logger(__name__)


def client_type_for(user: User) -> str:
    return "wholesale" if user.is_wholesale else "retail"


def get_cart(db: Session, user: User) -> Tuple[List[CartItem], Decimal]:
    """
    Return the user's cart lines for active products, with the cart total.

    Lines whose product was deactivated are hidden but not deleted.
    """
    items = (
        db.query(CartItem)
        .options(joinedload(CartItem.product))
        .join(Product, CartItem.product_id == Product.id)
        .filter(CartItem.user_id == user.id, Product.is_active.is_(True))
        .order_by(CartItem.added_at, CartItem.id)
        .all()
    )
    client_type = client_type_for(user)
    total = sum(
        (Decimal(item.product.price_for(client_type)) * item.quantity for item in items),
        Decimal("0"),
    )
    return items, total


def _get_sellable_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None or not product.is_active:
        raise CartError("Товар не знайдено", 404)
    return product


def _find_line(db: Session, user_id: int, product_id: int) -> Optional[CartItem]:
    return (
        db.query(CartItem)
        .filter(CartItem.user_id == user_id, CartItem.product_id == product_id)
        .first()
    )


def _check_stock(product: Product, quantity: int) -> None:
    if quantity > product.quantity:
        raise CartError(
            f'Недостатньо товару "{product.name}" на складі (доступно: {product.quantity})',
            400,
        )


def add_to_cart(db: Session, user: User, product_id: int, quantity: int = 1) -> CartItem:
    """
    Add ``quantity`` of a product; an existing line is incremented.

    When another request inserts the same line between our lookup and our
    insert, the unique constraint fires; we roll back and increment the
    line that won instead.
    """
    product = _get_sellable_product(db, product_id)

    item = _find_line(db, user.id, product_id)
    new_quantity = quantity + (item.quantity if item else 0)
    _check_stock(product, new_quantity)

    if item is not None:
        item.quantity = new_quantity
        db.commit()
        db.refresh(item)
        return item

    item = CartItem(
        user_id=user.id,
        product_id=product_id,
        quantity=new_quantity,
        added_at=datetime.utcnow(),
    )
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            f"Concurrent add for product {product_id}, merging into existing cart line",
            extra={"user_id": user.id, "product_id": product_id},
        )
        item = _find_line(db, user.id, product_id)
        if item is None:
            raise
        new_quantity = item.quantity + quantity
        _check_stock(product, new_quantity)
        item.quantity = new_quantity
        db.commit()
    db.refresh(item)
    return item


def set_cart_quantity(db: Session, user: User, product_id: int, quantity: int) -> CartItem:
    """Overwrite the quantity of an existing line."""
    product = _get_sellable_product(db, product_id)
    item = _find_line(db, user.id, product_id)
    if item is None:
        raise CartError("Товару немає в кошику", 404)
    _check_stock(product, quantity)
    item.quantity = quantity
    db.commit()
    db.refresh(item)
    return item


def remove_from_cart(db: Session, user: User, product_id: int) -> bool:
    deleted = (
        db.query(CartItem)
        .filter(CartItem.user_id == user.id, CartItem.product_id == product_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


def clear_cart(db: Session, user: User) -> int:
    deleted = (
        db.query(CartItem)
        .filter(CartItem.user_id == user.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
