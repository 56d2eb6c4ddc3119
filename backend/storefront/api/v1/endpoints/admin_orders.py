"""
Back-office Order Endpoints (admin and manager)

Order search, status changes, item edits, notes, contact maintenance,
anonymization and Nova Poshta TTN creation.
"""
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from storefront.api.v1.deps import get_current_staff_user, get_pagination_params
from storefront.core.status_config import OrderStatus, TriggerRole
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.common import ApiResponse, ListResponse, PaginationMeta, PaginationParams
from storefront.schemas.order import (
    ContactUpdate,
    ManagerCommentUpdate,
    OrderItemsUpdate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from storefront.schemas.shipment import ShipmentCreate, ShipmentResponse
from storefront.services import order_service
from storefront.services.order_status import change_order_status
from storefront.services.shipment_service import create_shipment

router = APIRouter(prefix="/admin/orders", tags=["Admin - Orders"])


def _detail(db: Session, order_id: int) -> ApiResponse[OrderResponse]:
    return ApiResponse(data=OrderResponse.model_validate(order_service.get_order(db, order_id)))


@router.get("", response_model=ApiResponse[ListResponse[OrderListResponse]])
async def list_orders(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100, description="Order number, name or phone"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    orders, total = order_service.list_orders(
        db,
        status=status_filter.value if status_filter else None,
        search=search,
        date_from=date_from,
        date_to=date_to,
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
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    return _detail(db, order_id)


@router.put("/{order_id}/status", response_model=ApiResponse[OrderResponse])
def update_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    """
    Move an order along its lifecycle.

    Allowed for staff:
    - any forward step of new_order → processing → confirmed → paid → shipped → completed
    - cancel from any non-terminal status
    - shipped/completed → returned
    """
    change_order_status(
        db,
        order_id,
        update.status.value,
        TriggerRole.ADMIN.value,
        actor_id=current_user.id,
        comment=update.comment,
    )
    return _detail(db, order_id)


@router.put("/{order_id}/items", response_model=ApiResponse[OrderResponse])
def update_order_items(
    order_id: int,
    update: OrderItemsUpdate,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    """Quantity 0 removes a line; unknown products are added."""
    order_service.edit_order_items(
        db,
        order_id,
        update.items,
        discount_amount=update.discount_amount,
        delivery_cost=update.delivery_cost,
    )
    return _detail(db, order_id)


@router.put("/{order_id}/comment", response_model=ApiResponse[OrderResponse])
def update_manager_comment(
    order_id: int,
    update: ManagerCommentUpdate,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    order_service.set_manager_comment(db, order_id, update.manager_comment)
    return _detail(db, order_id)


@router.patch("/{order_id}/contact", response_model=ApiResponse[OrderResponse])
def update_order_contact(
    order_id: int,
    update: ContactUpdate,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    order_service.update_contact(
        db,
        order_id,
        contact_name=update.contact_name,
        contact_phone=update.contact_phone,
        contact_email=update.contact_email,
    )
    return _detail(db, order_id)


@router.post("/{order_id}/anonymize", response_model=ApiResponse[OrderResponse])
def anonymize_order(
    order_id: int,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    order_service.anonymize_order(db, order_id)
    return _detail(db, order_id)


@router.post(
    "/{order_id}/ttn",
    response_model=ApiResponse[ShipmentResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_order_ttn(
    order_id: int,
    payload: ShipmentCreate,
    current_user: User = Depends(get_current_staff_user),
    db: Session = Depends(get_db),
):
    """Create a Nova Poshta internet document; an order gets at most one."""
    document = create_shipment(db, order_id, payload)
    return ApiResponse(data=ShipmentResponse(
        tracking_number=document.int_doc_number,
        ref=document.ref or None,
        cost_on_site=document.cost_on_site,
        estimated_delivery_date=document.estimated_delivery_date or None,
    ))
