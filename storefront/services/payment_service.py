# storefront/services/payment_service.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.errors import (
    DuplicatePaymentError,
    GatewayDeclinedError,
    GatewayError,
    GatewayNotFoundError,
    InvalidOrderStateError,
    InvalidPaymentStateError,
    OrderNotFoundError,
    PaymentInProgressError,
    PaymentNotFoundError,
)
from storefront.domain.statuses import (
    AWAITING_BUYER_PROVIDER_STATUSES,
    PAID_ORDER_STATUSES,
    OrderStatus,
    PaymentStatus,
    map_provider_status,
)
from storefront.gateway.port import PaymentGateway
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import order_to_dict, payment_to_dict
from storefront.utils.logging import get_logger
from storefront.utils.settings import (
    PAYMENT_ABANDON_AFTER_SECONDS,
    PAYMENT_CURRENCY,
    PAYMENT_LOCK_TTL_SECONDS,
)

logger = get_logger(__name__)


class PaymentService:
    """
    Payment intents against the external provider.

    Payment.status is the durable signal of every flow here: capture and
    reconciliation both end in _apply_settlement, which moves a pending
    payment (and, on success, its order) in one commit.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        lock_service: LockService,
        notification_service: NotificationService | None = None,
    ):
        self.db = db
        self.repo = PaymentRepo(db)
        self.orders = OrderRepo(db)
        self.gateway = gateway
        self.lock_service = lock_service
        self.notification_service = notification_service or NotificationService()

    # =====================================================
    # INITIATION
    # =====================================================
    def initiate_payment(self, order_id: int, user_id: int) -> Dict[str, Any]:
        """
        Use Case: start a provider payment session for a pending order.

        The order row stays locked from the duplicate check until the new
        payment is committed; the partial unique index on payments catches
        whatever still slips through. No row is written if the provider fails.
        """
        order = self.orders.get_order_for_update(order_id)

        if not order or order.user_id != user_id:
            self.db.rollback()
            raise OrderNotFoundError(order_id)

        if order.status != OrderStatus.PENDING.value:
            self.db.rollback()
            raise InvalidOrderStateError(f"Cannot process payment for order with status: {order.status}")

        if self.repo.get_active_for_order(order_id):
            self.db.rollback()
            raise DuplicatePaymentError(order_id)

        try:
            remote = self.gateway.create(
                amount=order.total_price,
                currency=PAYMENT_CURRENCY,
                reference_id=str(order.id),
            )
        except GatewayError as e:
            logger.error(f"Provider rejected payment session for order {order_id}: {e}")
            self.db.rollback()
            raise

        payment = PaymentModel(
            order_id=order.id,
            user_id=user_id,
            amount=order.total_price,
            currency=PAYMENT_CURRENCY,
            status=PaymentStatus.PENDING.value,
            transaction_id=remote.transaction_id,
        )

        try:
            self.repo.add_payment(payment)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(
                f"Concurrent payment for order {order_id}, provider session "
                f"{remote.transaction_id} left unused"
            )
            raise DuplicatePaymentError(order_id)

        logger.info(f"Payment {payment.id} ({remote.transaction_id}) initiated for order {order_id}")

        return {
            "payment_id": payment.id,
            "transaction_id": remote.transaction_id,
            "approval_url": remote.approval_url,
        }

    # =====================================================
    # CAPTURE
    # =====================================================
    def capture_payment(self, transaction_id: str, user_id: int | None = None) -> Dict[str, Any]:
        """
        Use Case: capture an approved payment.

        Idempotent: a completed payment is returned as is, without calling
        the provider. A redis lock on the transaction keeps two concurrent
        captures from both reaching the provider.
        """
        payment = self._get_by_transaction(transaction_id, user_id)

        if payment.status == PaymentStatus.COMPLETED.value:
            logger.info(f"Payment {payment.id} already completed, capture is a no-op")
            return self._capture_result(payment)

        owner = uuid4().hex
        if not self.lock_service.acquire_payment_lock(transaction_id, owner, PAYMENT_LOCK_TTL_SECONDS):
            raise PaymentInProgressError(transaction_id)

        try:
            # state may have moved while we waited for the lock
            self.db.refresh(payment)

            if payment.status == PaymentStatus.COMPLETED.value:
                return self._capture_result(payment)

            if payment.status == PaymentStatus.FAILED.value:
                raise InvalidPaymentStateError(
                    "Payment has already failed, start a new payment for this order"
                )

            order = self.orders.get_order(payment.order_id)
            if order.status != OrderStatus.PENDING.value:
                raise InvalidOrderStateError(
                    f"Cannot capture payment for order with status: {order.status}"
                )

            try:
                provider_status = self.gateway.capture(transaction_id)
            except GatewayDeclinedError as e:
                logger.warning(f"Capture of {transaction_id} declined by provider: {e.issue}")
                self._apply_settlement(payment, PaymentStatus.FAILED.value)
                raise
            except GatewayError as e:
                # outcome unknown: stays pending, the reconciliation sweep resolves it
                logger.error(f"Capture of {transaction_id} failed, payment left pending: {e}")
                self.db.rollback()
                raise

            outcome = (
                PaymentStatus.COMPLETED.value
                if map_provider_status(provider_status) == PaymentStatus.COMPLETED.value
                else PaymentStatus.FAILED.value
            )
            logger.info(f"Capture of {transaction_id} returned {provider_status}")

            self._apply_settlement(payment, outcome)

            return self._capture_result(payment)

        finally:
            self.lock_service.release_payment_lock(transaction_id, owner)

    # =====================================================
    # RECONCILIATION
    # =====================================================
    def reconcile_payment(self, transaction_id: str, abandoned: bool = False) -> Dict[str, Any]:
        """
        Use Case: re-read the provider status and repair local drift.

        A provider that no longer knows the order fails the payment. With
        abandoned=True a session still waiting for the buyer fails too.
        """
        payment = self._get_by_transaction(transaction_id)

        try:
            provider_status = self.gateway.get(transaction_id)
        except GatewayNotFoundError as e:
            # expired or deleted at the provider, it can never complete
            logger.warning(f"Provider has no order {transaction_id} ({e.issue}), failing payment {payment.id}")
            provider_status = e.issue
            outcome = PaymentStatus.FAILED.value
        except GatewayError as e:
            logger.error(f"Status check of {transaction_id} failed: {e}")
            self.db.rollback()
            raise
        else:
            outcome = map_provider_status(provider_status)
            if abandoned and provider_status.upper() in AWAITING_BUYER_PROVIDER_STATUSES:
                logger.info(f"Payment {payment.id} abandoned by the buyer at {provider_status}")
                outcome = PaymentStatus.FAILED.value

        self._apply_settlement(payment, outcome)

        return {
            "payment_id": payment.id,
            "transaction_id": payment.transaction_id,
            "status": payment.status,
            "paypal_status": provider_status,
            "order": order_to_dict(payment.order),
            "needs_review": self._needs_review(payment),
        }

    def reconcile_stale_payments(
        self,
        older_than_seconds: int,
        abandon_after_seconds: int = PAYMENT_ABANDON_AFTER_SECONDS,
    ) -> int:
        """
        Reconcile every payment still pending after older_than_seconds.
        Those older than abandon_after_seconds that never got past the buyer
        are failed, which frees their order for a new payment.
        Returns how many of them changed status.
        """
        now = datetime.now(timezone.utc)
        stale = self.repo.list_pending_created_before(now - timedelta(seconds=older_than_seconds))
        abandoned = {
            p.id
            for p in self.repo.list_pending_created_before(now - timedelta(seconds=abandon_after_seconds))
        }

        logger.info(f"Found {len(stale)} pending payments to reconcile, {len(abandoned)} past the abandon age")

        changed = 0
        for payment in stale:
            payment_id = payment.id
            transaction_id = payment.transaction_id
            try:
                result = self.reconcile_payment(transaction_id, abandoned=payment_id in abandoned)
            except GatewayError as e:
                logger.warning(f"Reconciliation of {transaction_id} skipped: {e}")
                continue
            if result["status"] != PaymentStatus.PENDING.value:
                changed += 1

        return changed

    # =====================================================
    # QUERIES
    # =====================================================
    def get_payment(self, payment_id: int) -> Dict[str, Any]:
        payment = self.repo.get_payment(payment_id)

        if not payment:
            raise PaymentNotFoundError(payment_id)

        data = payment_to_dict(payment)
        data["order"] = order_to_dict(payment.order)
        return data

    def list_user_payments(self, user_id: int) -> List[Dict[str, Any]]:
        return [payment_to_dict(p) for p in self.repo.list_user_payments(user_id)]

    # =====================================================
    # SETTLEMENT
    # =====================================================
    def _apply_settlement(self, payment: PaymentModel, outcome: str) -> bool:
        """
        Move a pending payment to outcome; on completed also pending -> paid
        for its order. Both writes share one commit. completed and failed
        are terminal, drift reported against them is only logged.

        Returns True if this call changed the payment.
        """
        if outcome == payment.status or outcome == PaymentStatus.PENDING.value:
            return False

        if payment.status != PaymentStatus.PENDING.value:
            logger.error(
                f"Payment {payment.id} is {payment.status} but provider reports {outcome}, "
                f"left unchanged for manual review"
            )
            return False

        try:
            rowcount = self.repo.set_status(payment.id, PaymentStatus.PENDING.value, outcome)

            if rowcount == 0:
                # another request settled it first
                self.db.rollback()
                logger.info(f"Payment {payment.id} was settled concurrently as {payment.status}")
                return False

            if outcome == PaymentStatus.COMPLETED.value and self.orders.mark_paid(payment.order_id) == 0:
                logger.error(
                    f"Payment {payment.id} completed but order {payment.order_id} "
                    f"is no longer pending"
                )

            self.db.commit()

        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment {payment.id} settled as {outcome}")

        if outcome == PaymentStatus.COMPLETED.value:
            self.notification_service.send_payment_notification(
                payment.user_id, payment.order_id, payment.id
            )

        return True

    def _get_by_transaction(self, transaction_id: str, user_id: int | None = None) -> PaymentModel:
        payment = self.repo.get_by_transaction_id(transaction_id, user_id=user_id)
        if not payment:
            raise PaymentNotFoundError(transaction_id)
        return payment

    @staticmethod
    def _needs_review(payment: PaymentModel) -> bool:
        """Money was taken but the order is not (or no longer) paid, e.g. cancelled mid-capture."""
        return (
            payment.status == PaymentStatus.COMPLETED.value
            and payment.order.status not in PAID_ORDER_STATUSES
        )

    def _capture_result(self, payment: PaymentModel) -> Dict[str, Any]:
        return {
            "payment_id": payment.id,
            "transaction_id": payment.transaction_id,
            "status": payment.status,
            "order": order_to_dict(payment.order),
            "needs_review": self._needs_review(payment),
        }
