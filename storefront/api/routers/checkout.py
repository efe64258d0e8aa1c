# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends, Query

from storefront.api.deps import CurrentUser, get_current_user, get_payment_service
from storefront.api.errors import http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    PaymentCaptureIn,
    PaymentCaptureOut,
    PaymentInitiateIn,
    PaymentInitiatedOut,
    PaymentStatusOut,
)
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/payment", response_model=PaymentInitiatedOut)
def initiate_payment(
    payload: PaymentInitiateIn,
    user: CurrentUser = Depends(get_current_user),
    svc: PaymentService = Depends(get_payment_service),
):
    """
    Opens a PayPal payment session for a pending order; the buyer continues at approvalUrl.
    """
    try:
        return svc.initiate_payment(payload.order_id, user.id)
    except StorefrontError as e:
        raise http_error(e, "Error initiating PayPal payment")


@router.get("/payment/status", response_model=PaymentStatusOut)
def verify_payment_status(
    transaction_id: str = Query(..., alias="transactionId", min_length=1),
    svc: PaymentService = Depends(get_payment_service),
):
    try:
        return svc.reconcile_payment(transaction_id)
    except StorefrontError as e:
        raise http_error(e, "Error verifying PayPal payment status")


@router.post("/payment/capture", response_model=PaymentCaptureOut)
def capture_payment(
    payload: PaymentCaptureIn,
    user: CurrentUser = Depends(get_current_user),
    svc: PaymentService = Depends(get_payment_service),
):
    """
    Captures the approved payment. Calling it again after success returns the same result.
    """
    try:
        return svc.capture_payment(payload.transaction_id, user_id=user.id)
    except StorefrontError as e:
        raise http_error(e, "Error capturing PayPal payment")
