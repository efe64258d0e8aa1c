# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import CurrentUser, get_current_user, require_admin
from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import OrderCreatedOut, OrderDetailOut, OrderStatusUpdate
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


@router.post("", response_model=OrderCreatedOut, status_code=201)
def create_order(
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_service),
):
    """
    Turns the caller's cart into a pending order.
    Stock is reserved and the cart emptied in the same transaction.
    """
    try:
        return svc.create_order_from_cart(user.id)
    except StorefrontError as e:
        raise http_error(e)


@router.get("", response_model=List[OrderDetailOut])
def list_orders(
    admin: CurrentUser = Depends(require_admin),
    svc: OrderService = Depends(get_service),
):
    return svc.list_orders()


@router.get("/user", response_model=List[OrderDetailOut])
def list_my_orders(
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_service),
):
    return svc.list_user_orders(user.id)


@router.get("/{order_id}", response_model=OrderDetailOut)
def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_service),
):
    """
    Order details with lines and payments (owner or admin).
    """
    try:
        return svc.get_order(order_id, user.id, is_admin=user.is_admin)
    except (StorefrontError, PermissionError) as e:
        raise http_error(e)


@router.put("/{order_id}/status", response_model=OrderDetailOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.update_status(order_id, payload.status)
    except StorefrontError as e:
        raise http_error(e)
