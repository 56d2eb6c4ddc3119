"""
Client Order Endpoints

Checkout, order history, client cancellation, reorder and online payment.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from storefront.api.v1.deps import get_current_user, get_pagination_params
from storefront.core.limiter import limiter
from storefront.core.status_config import OrderStatus, PaymentStatus, TriggerRole
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.common import ApiResponse, ListResponse, PaginationMeta, PaginationParams
from storefront.schemas.order import (
    CheckoutRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ReorderResponse,
)
from storefront.schemas.payment import PaymentInitRequest, PaymentInitResponse, PaymentStatusResponse
from storefront.services import order_service, payment_service
from storefront.services.order_status import change_order_status
from storefront.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=ApiResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")  # type: ignore
def create_order(
    request: Request,
    checkout: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Place an order from the current cart.

    Stock is reserved, prices are snapshotted for the client type and the
    cart is emptied, all in one transaction.
    """
    order = order_service.place_order(db, current_user, checkout)
    return ApiResponse(data=OrderResponse.model_validate(order_service.get_order(db, order.id)))


@router.get("", response_model=ApiResponse[ListResponse[OrderListResponse]])
async def list_my_orders(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    orders, total = order_service.list_orders(
        db,
        user_id=current_user.id,
        status=status_filter.value if status_filter else None,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    return ApiResponse(data=ListResponse(
        items=[OrderListResponse.model_validate(o) for o in orders],
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(orders),
        ),
    ))


@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
async def get_my_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=OrderResponse.model_validate(order_service.get_order_for_user(db, order_id, current_user)))


@router.put("/{order_id}/status", response_model=ApiResponse[OrderResponse])
def cancel_my_order(
    order_id: int,
    update: OrderStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Clients may only cancel their own orders, and only before fulfilment."""
    if update.status != OrderStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Клієнт може лише скасувати замовлення",
        )
    order = change_order_status(
        db,
        order_id,
        OrderStatus.CANCELLED.value,
        TriggerRole.CLIENT.value,
        actor_id=current_user.id,
        comment=update.comment or "Скасовано клієнтом",
    )
    return ApiResponse(data=OrderResponse.model_validate(order_service.get_order(db, order.id)))


@router.post("/{order_id}/reorder", response_model=ApiResponse[ReorderResponse])
def reorder(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = order_service.reorder(db, current_user, order_id)
    return ApiResponse(data=ReorderResponse(
        added_count=result.added_count,
        failed_items=result.failed_items,
        message=result.message,
    ))


@router.post("/{order_id}/pay", response_model=ApiResponse[PaymentInitResponse])
@limiter.limit("10/minute")  # type: ignore
def pay_for_order(
    request: Request,
    order_id: int,
    payload: PaymentInitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a provider invoice and return the URL to send the client to."""
    initiated = payment_service.initiate_payment(db, order_id, payload.provider.value, current_user)
    return ApiResponse(data=PaymentInitResponse(
        redirect_url=initiated.redirect_url,
        payment_id=initiated.payment_id,
        provider=initiated.provider,
    ))


@router.get("/{order_id}/payment", response_model=ApiResponse[PaymentStatusResponse])
async def get_my_payment_status(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payment = payment_service.get_payment_status(db, order_id, current_user)
    if payment is None:
        return ApiResponse(data=PaymentStatusResponse(order_id=order_id, status=PaymentStatus.PENDING.value))
    return ApiResponse(data=PaymentStatusResponse.model_validate(payment))
