"""
Order Service

Checkout (cart → order), re-order, order queries and the back-office
edits that do not change status (line items, manager comment, contact
details, anonymization).
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import desc, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from storefront.core.config import settings
from storefront.core.status_config import (
    ChangeSource,
    ClientType,
    EDITABLE_ORDER_STATUSES,
    OrderStatus,
)
from storefront.exceptions import InsufficientStockError, OrderError
from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.order import CheckoutRequest, OrderItemEdit
from storefront.services.cart_service import client_type_for
from storefront.services.event_service import (
    enqueue_order_created_notification,
    record_status_history,
)
from storefront.services.order_status import lock_order
from storefront.logging_config import get_logger

logger = get_logger(__name__)

MONEY = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(value).quantize(MONEY)


def generate_order_number(db: Session, now: Optional[datetime] = None) -> str:
    """Generate next order number in format YYYYMMDD-NNNN (per-day sequence)"""
    prefix = (now or datetime.utcnow()).strftime("%Y%m%d")
    last = (
        db.query(Order.order_number)
        .filter(Order.order_number.like(f"{prefix}-%"))
        .order_by(desc(Order.order_number))
        .first()
    )
    next_num = int(last[0].split("-")[1]) + 1 if last else 1
    return f"{prefix}-{next_num:04d}"


def _reserve_stock(db: Session, product: Product, quantity: int) -> None:
    """Conditional decrement; raises if the product can't cover ``quantity``."""
    updated = (
        db.query(Product)
        .filter(
            Product.id == product.id,
            Product.is_active.is_(True),
            Product.quantity >= quantity,
        )
        .update({Product.quantity: Product.quantity - quantity}, synchronize_session=False)
    )
    if not updated:
        raise InsufficientStockError(
            product.name, requested=quantity, available=product.quantity
        )


def _release_stock(db: Session, product_id: Optional[int], quantity: int) -> None:
    if product_id is None or quantity <= 0:
        return
    db.query(Product).filter(Product.id == product_id).update(
        {Product.quantity: Product.quantity + quantity}, synchronize_session=False
    )


def _recalculate_totals(order: Order) -> None:
    subtotal = sum((Decimal(item.subtotal) for item in order.items), Decimal("0"))
    order.items_count = sum(item.quantity for item in order.items)
    order.total_amount = _money(
        subtotal - Decimal(order.discount_amount or 0) + Decimal(order.delivery_cost or 0)
    )


# ============================================================================
# CHECKOUT
# ============================================================================

def _check_wholesale_rules(product: Product, quantity: int) -> None:
    """Enforce a product's wholesale minimum quantity and pack multiple."""
    if product.wholesale_min_quantity and quantity < product.wholesale_min_quantity:
        raise OrderError(
            f'Мінімальна кількість для "{product.name}": {product.wholesale_min_quantity} шт.',
            400,
        )
    if product.wholesale_multiplicity and quantity % product.wholesale_multiplicity != 0:
        raise OrderError(
            f'"{product.name}" замовляється кратно {product.wholesale_multiplicity} шт.',
            400,
        )


def place_order(db: Session, user: User, checkout: CheckoutRequest) -> Order:
    """
    Convert the user's cart into an order.

    One transaction: stock is decremented per line with a conditional
    UPDATE, the order, its items and the initial history row are written,
    the cart is cleared and a manager notification is queued. Any failure
    rolls everything back and leaves the cart untouched.
    """
    client_type = client_type_for(user)
    try:
        cart_items = (
            db.query(CartItem)
            .options(joinedload(CartItem.product))
            .filter(CartItem.user_id == user.id)
            .order_by(CartItem.added_at, CartItem.id)
            .all()
        )
        if not cart_items:
            raise OrderError("Кошик порожній", 400)

        lines: List[Tuple[Product, Decimal, int]] = []
        for item in cart_items:
            product = item.product
            if not product.is_active:
                raise InsufficientStockError(product.name, requested=item.quantity, available=0)
            lines.append((product, _money(product.price_for(client_type)), item.quantity))

        items_total = sum((price * qty for _, price, qty in lines), Decimal("0"))

        min_amount = settings.wholesale_min_order_amount
        if client_type == ClientType.WHOLESALE.value and min_amount > 0 and items_total < min_amount:
            raise OrderError(
                f"Мінімальна сума замовлення: {min_amount:.2f} ₴. Ваша сума: {items_total:.2f} ₴",
                400,
            )

        if client_type == ClientType.WHOLESALE.value:
            for product, _, qty in lines:
                _check_wholesale_rules(product, qty)

        for product, _, qty in lines:
            _reserve_stock(db, product, qty)

        discount = Decimal("0")
        delivery_cost = Decimal("0")
        order = Order(
            order_number=generate_order_number(db),
            user_id=user.id,
            status=OrderStatus.NEW_ORDER.value,
            client_type=client_type,
            total_amount=_money(items_total - discount + delivery_cost),
            discount_amount=discount,
            delivery_cost=delivery_cost,
            items_count=sum(qty for _, _, qty in lines),
            contact_name=checkout.contact_name,
            contact_phone=checkout.contact_phone,
            contact_email=checkout.contact_email,
            delivery_method=checkout.delivery_method.value,
            delivery_city=checkout.delivery_city,
            delivery_city_ref=checkout.delivery_city_ref,
            delivery_warehouse=checkout.delivery_warehouse,
            delivery_warehouse_ref=checkout.delivery_warehouse_ref,
            delivery_address=checkout.delivery_address,
            payment_method=checkout.payment_method.value,
            payment_status="pending",
            comment=checkout.comment,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        for product, price, qty in lines:
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    product_code=product.code,
                    product_name=product.name,
                    price_at_order=price,
                    quantity=qty,
                    subtotal=_money(price * qty),
                )
            )
        db.add(order)
        db.flush()

        record_status_history(
            db,
            order_id=order.id,
            old_status=None,
            new_status=OrderStatus.NEW_ORDER.value,
            change_source=ChangeSource.CLIENT_ACTION.value,
            changed_by=user.id,
            comment="Замовлення створено",
        )
        db.query(CartItem).filter(CartItem.user_id == user.id).delete(synchronize_session=False)
        enqueue_order_created_notification(db, order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        f"Order {order.order_number} placed",
        extra={"order_number": order.order_number, "user_id": user.id, "total": str(order.total_amount)},
    )
    return order


@dataclass
class ReorderResult:
    added_count: int = 0
    failed_items: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.failed_items:
            return f"Додано {self.added_count} товарів до кошика"
        return (
            f"Додано {self.added_count} товарів до кошика. "
            f"Недоступні: {', '.join(self.failed_items)}"
        )


def reorder(db: Session, user: User, order_id: int) -> ReorderResult:
    """Re-add the items of one of the user's orders to the cart."""
    order = get_order_for_user(db, order_id, user)
    result = ReorderResult()

    try:
        for item in order.items:
            product = (
                db.query(Product).filter(Product.id == item.product_id).first()
                if item.product_id is not None
                else None
            )
            if product is None or not product.is_active or product.quantity <= 0:
                result.failed_items.append(item.product_name)
                continue

            cart_item = (
                db.query(CartItem)
                .filter(CartItem.user_id == user.id, CartItem.product_id == product.id)
                .first()
            )
            wanted = item.quantity + (cart_item.quantity if cart_item else 0)
            quantity = min(wanted, product.quantity)
            if cart_item is None:
                db.add(CartItem(
                    user_id=user.id,
                    product_id=product.id,
                    quantity=quantity,
                    added_at=datetime.utcnow(),
                ))
            else:
                cart_item.quantity = quantity
            result.added_count += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


# ============================================================================
# QUERIES
# ============================================================================

def _detail_query(db: Session):
    return db.query(Order).options(
        selectinload(Order.items),
        selectinload(Order.status_history),
    )


def get_order(db: Session, order_id: int) -> Order:
    order = _detail_query(db).filter(Order.id == order_id).first()
    if order is None:
        raise OrderError("Замовлення не знайдено", 404)
    return order


def get_order_for_user(db: Session, order_id: int, user: User) -> Order:
    """Client view: only the user's own orders are visible."""
    order = _detail_query(db).filter(Order.id == order_id, Order.user_id == user.id).first()
    if order is None:
        raise OrderError("Замовлення не знайдено", 404)
    return order


def list_orders(
    db: Session,
    *,
    user_id: Optional[int] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    offset: int = 0,
    limit: int = 20,
) -> Tuple[List[Order], int]:
    """Filtered, newest-first page of orders plus the total count."""
    query = db.query(Order)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if status:
        query = query.filter(Order.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.order_number.ilike(pattern),
                Order.contact_name.ilike(pattern),
                Order.contact_phone.ilike(pattern),
            )
        )
    if date_from:
        query = query.filter(Order.created_at >= date_from)
    if date_to:
        query = query.filter(Order.created_at <= date_to)

    total = query.count()
    orders = (
        query.order_by(desc(Order.created_at), desc(Order.id))
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total


# ============================================================================
# BACK-OFFICE EDITS
# ============================================================================

def edit_order_items(
    db: Session,
    order_id: int,
    edits: Iterable[OrderItemEdit],
    *,
    discount_amount: Optional[Decimal] = None,
    delivery_cost: Optional[Decimal] = None,
) -> Order:
    """
    Add, re-quantify or remove order lines while the order is editable.

    Stock follows every change; totals are recomputed. Editing does not
    change status, so no history row is written.
    """
    try:
        order = lock_order(db, order_id)
        if order is None:
            raise OrderError("Замовлення не знайдено", 404)
        if order.status not in {s.value for s in EDITABLE_ORDER_STATUSES}:
            raise OrderError(
                'Редагування позицій можливе тільки для замовлень у статусах "Нове" або "В обробці"',
                400,
            )

        lines = {item.product_id: item for item in order.items if item.product_id is not None}
        for edit in edits:
            line = lines.get(edit.product_id)
            if line is not None:
                delta = edit.quantity - line.quantity
                if delta > 0:
                    product = db.query(Product).filter(Product.id == line.product_id).first()
                    if product is None:
                        raise OrderError("Товар не знайдено", 404)
                    _reserve_stock(db, product, delta)
                elif delta < 0:
                    _release_stock(db, line.product_id, -delta)

                if edit.quantity == 0:
                    order.items.remove(line)
                    del lines[edit.product_id]
                else:
                    line.quantity = edit.quantity
                    line.subtotal = _money(Decimal(line.price_at_order) * edit.quantity)
            elif edit.quantity > 0:
                product = db.query(Product).filter(Product.id == edit.product_id).first()
                if product is None or not product.is_active:
                    raise OrderError("Товар не знайдено", 404)
                _reserve_stock(db, product, edit.quantity)
                price = _money(product.price_for(order.client_type))
                new_line = OrderItem(
                    product_id=product.id,
                    product_code=product.code,
                    product_name=product.name,
                    price_at_order=price,
                    quantity=edit.quantity,
                    subtotal=_money(price * edit.quantity),
                )
                order.items.append(new_line)
                lines[product.id] = new_line

        if not order.items:
            raise OrderError("Замовлення не може бути порожнім", 400)

        if discount_amount is not None:
            order.discount_amount = _money(discount_amount)
        if delivery_cost is not None:
            order.delivery_cost = _money(delivery_cost)
        _recalculate_totals(order)
        order.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Order {order.order_number}: items edited", extra={"order_number": order.order_number})
    return get_order(db, order_id)


def set_manager_comment(db: Session, order_id: int, comment: str) -> Order:
    order = lock_order(db, order_id)
    if order is None:
        raise OrderError("Замовлення не знайдено", 404)
    order.manager_comment = comment
    order.updated_at = datetime.utcnow()
    db.commit()
    return get_order(db, order_id)


def update_contact(
    db: Session,
    order_id: int,
    *,
    contact_name: Optional[str] = None,
    contact_phone: Optional[str] = None,
    contact_email: Optional[str] = None,
) -> Order:
    """Contact details are mutable only until the order is anonymized."""
    order = lock_order(db, order_id)
    if order is None:
        raise OrderError("Замовлення не знайдено", 404)
    if order.is_anonymized:
        db.rollback()
        raise OrderError("Контактні дані анонімізованого замовлення не можна змінювати", 400)

    if contact_name is not None:
        order.contact_name = contact_name
    if contact_phone is not None:
        order.contact_phone = contact_phone
    if contact_email is not None:
        order.contact_email = contact_email
    order.updated_at = datetime.utcnow()
    db.commit()
    return get_order(db, order_id)


def anonymize_order(db: Session, order_id: int) -> Order:
    """Erase personal contact data; the order itself is kept."""
    order = lock_order(db, order_id)
    if order is None:
        raise OrderError("Замовлення не знайдено", 404)
    if order.is_anonymized:
        db.rollback()
        raise OrderError("Замовлення вже анонімізовано", 400)

    order.contact_name = None
    order.contact_phone = None
    order.contact_email = None
    order.delivery_address = None
    order.anonymized_at = datetime.utcnow()
    order.updated_at = order.anonymized_at
    db.commit()
    logger.info(f"Order {order.order_number} anonymized", extra={"order_number": order.order_number})
    return get_order(db, order_id)
