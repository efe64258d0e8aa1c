# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import CurrentUser, get_current_user
from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import CartItemIn, CartItemUpdate, CartOut
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


@router.get("", response_model=CartOut)
def get_cart(
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_service),
):
    return svc.get_cart(user.id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: CartItemIn,
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.add_product(user.id, payload.product_id, payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.put("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: CartItemUpdate,
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.update_quantity(user.id, item_id, payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.remove_item(user.id, item_id)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("", response_model=CartOut)
def clear_cart(
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_service),
):
    return svc.clear_cart(user.id)
