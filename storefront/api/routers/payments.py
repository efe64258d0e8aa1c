# storefront/api/routers/payments.py
from typing import List

from fastapi import APIRouter, Depends

from storefront.api.deps import CurrentUser, get_current_user, get_payment_service, require_admin
from storefront.api.errors import http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import PaymentDetailOut, PaymentOut
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/user", response_model=List[PaymentOut])
def list_my_payments(
    user: CurrentUser = Depends(get_current_user),
    svc: PaymentService = Depends(get_payment_service),
):
    return svc.list_user_payments(user.id)


@router.get("/{payment_id}", response_model=PaymentDetailOut)
def get_payment(
    payment_id: int,
    admin: CurrentUser = Depends(require_admin),
    svc: PaymentService = Depends(get_payment_service),
):
    try:
        return svc.get_payment(payment_id)
    except StorefrontError as e:
        raise http_error(e)
