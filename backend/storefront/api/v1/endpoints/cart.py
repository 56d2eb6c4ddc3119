"""
Cart Endpoints

The authenticated client's shopping cart. Prices are shown for the
client's type (retail or wholesale).
"""
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from storefront.api.v1.deps import get_current_user
from storefront.core.limiter import limiter
from storefront.db.session import get_db
from storefront.models.cart import CartItem
from storefront.models.user import User
from storefront.schemas.cart import CartItemAdd, CartItemResponse, CartItemUpdate, CartResponse
from storefront.schemas.common import ApiResponse, MessageResponse
from storefront.services import cart_service

router = APIRouter(prefix="/cart", tags=["Cart"])


def _cart_payload(items: List[CartItem], total: Decimal, client_type: str) -> CartResponse:
    lines = []
    for item in items:
        price = Decimal(item.product.price_for(client_type))
        lines.append(CartItemResponse(
            product_id=item.product_id,
            product_code=item.product.code,
            product_name=item.product.name,
            quantity=item.quantity,
            unit_price=price,
            subtotal=price * item.quantity,
            available=item.product.quantity,
            added_at=item.added_at,
        ))
    return CartResponse(
        items=lines,
        items_count=sum(line.quantity for line in lines),
        total=total,
    )


def _current_cart(db: Session, user: User) -> CartResponse:
    items, total = cart_service.get_cart(db, user)
    return _cart_payload(items, total, cart_service.client_type_for(user))


@router.get("", response_model=ApiResponse[CartResponse])
async def get_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=_current_cart(db, current_user))


@router.post("", response_model=ApiResponse[CartResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")  # type: ignore
async def add_to_cart(
    request: Request,
    payload: CartItemAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add a product; an existing line is incremented."""
    cart_service.add_to_cart(db, current_user, payload.product_id, payload.quantity)
    return ApiResponse(data=_current_cart(db, current_user))


@router.patch("/{product_id}", response_model=ApiResponse[CartResponse])
async def update_cart_item(
    product_id: int,
    payload: CartItemUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart_service.set_cart_quantity(db, current_user, product_id, payload.quantity)
    return ApiResponse(data=_current_cart(db, current_user))


@router.delete("/{product_id}", response_model=ApiResponse[CartResponse])
async def remove_cart_item(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart_service.remove_from_cart(db, current_user, product_id)
    return ApiResponse(data=_current_cart(db, current_user))


@router.delete("", response_model=ApiResponse[MessageResponse])
async def clear_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    removed = cart_service.clear_cart(db, current_user)
    return ApiResponse(data=MessageResponse(message=f"Видалено позицій: {removed}"))
