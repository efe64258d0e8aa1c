# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Customer notifications, processed asynchronously by Celery.
    Called after commit; a broker outage must not undo an order or a payment.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int):
        try:
            send_order_notification_task.delay(user_id, order_id)
        except Exception as e:
            logger.warning(f"Failed to enqueue order notification for order {order_id}: {e}")

    @staticmethod
    def send_payment_notification(user_id: int, order_id: int, payment_id: int):
        try:
            send_payment_notification_task.delay(user_id, order_id, payment_id)
        except Exception as e:
            logger.warning(f"Failed to enqueue payment notification for payment {payment_id}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int):
    """
    Celery task - a real system would send an email/SMS/push here.
    For now it only logs.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: Order {order_id} was placed and awaits payment")
    return {"user_id": user_id, "order_id": order_id, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_payment_notification_task")
def send_payment_notification_task(user_id: int, order_id: int, payment_id: int):
    logger.info(f"[NOTIFICATION] User {user_id}: Payment {payment_id} for order {order_id} completed")
    return {"user_id": user_id, "order_id": order_id, "payment_id": payment_id, "status": "sent"}
