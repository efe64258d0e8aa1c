# storefront/tasks/reconcile.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.gateway import get_gateway
from storefront.services.lock_service import LockService
from storefront.services.payment_service import PaymentService
from storefront.utils.logging import get_logger
from storefront.utils.settings import PAYMENT_ABANDON_AFTER_SECONDS, PAYMENT_RECONCILE_AFTER_SECONDS

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.reconcile.reconcile_pending_payments_task")
def reconcile_pending_payments_task(
    older_than_seconds: int = PAYMENT_RECONCILE_AFTER_SECONDS,
    abandon_after_seconds: int = PAYMENT_ABANDON_AFTER_SECONDS,
):
    """
    Periodic read-repair: every payment still pending after older_than_seconds
    is checked against the provider; sessions the buyer abandoned are failed,
    so none stays ambiguous for good.
    """
    logger.info("Reconcile pending payments task started")

    db = SessionLocal()
    try:
        service = PaymentService(
            db=db,
            gateway=get_gateway(),
            lock_service=LockService(),
        )
        changed = service.reconcile_stale_payments(older_than_seconds, abandon_after_seconds)

        logger.info(f"Reconciled pending payments, {changed} changed status")

        return {"changed": changed}

    finally:
        db.close()
