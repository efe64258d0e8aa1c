"""Settlement rules and the periodic reconciliation of stale payments."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.data.database import SessionLocal
from storefront.data.models import OrderModel, PaymentModel
from storefront.domain.errors import GatewayError
from storefront.domain.statuses import map_provider_status
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService
from storefront.tasks.reconcile import reconcile_pending_payments_task


@pytest.fixture()
def service(db, gateway, locks):
    return PaymentService(db=db, gateway=gateway, lock_service=locks)


@pytest.fixture()
def place_order(db, make_product, fill_cart):
    def _place(user_id=1):
        product_id = make_product(stock=10)
        fill_cart(user_id, product_id, 1)
        return OrderService(db).create_order_from_cart(user_id)["order"]["id"]

    return _place


def _age(db, transaction_id, minutes):
    payment = db.query(PaymentModel).filter_by(transaction_id=transaction_id).one()
    payment.created_at = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    db.commit()


def _status(db, transaction_id):
    db.expire_all()
    return db.query(PaymentModel).filter_by(transaction_id=transaction_id).one().status


class TestProviderStatusMapping:
    @pytest.mark.parametrize(
        "provider_status,expected",
        [
            ("COMPLETED", "completed"),
            ("completed", "completed"),
            ("CREATED", "pending"),
            ("SAVED", "pending"),
            ("APPROVED", "pending"),
            ("PAYER_ACTION_REQUIRED", "pending"),
            ("VOIDED", "failed"),
            ("SOMETHING_NEW", "failed"),
            (None, "failed"),
        ],
    )
    def test_mapping(self, provider_status, expected):
        assert map_provider_status(provider_status) == expected


class TestSettlement:
    def test_one_active_payment_per_order_is_enforced_by_the_database(self, db, place_order):
        order_id = place_order()
        db.add(PaymentModel(order_id=order_id, user_id=1, amount=10, currency="USD", status="pending", transaction_id="A"))
        db.commit()

        db.add(PaymentModel(order_id=order_id, user_id=1, amount=10, currency="USD", status="completed", transaction_id="B"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_failed_payments_do_not_count_as_active(self, db, place_order):
        order_id = place_order()
        db.add(PaymentModel(order_id=order_id, user_id=1, amount=10, currency="USD", status="failed", transaction_id="A"))
        db.add(PaymentModel(order_id=order_id, user_id=1, amount=10, currency="USD", status="failed", transaction_id="B"))
        db.add(PaymentModel(order_id=order_id, user_id=1, amount=10, currency="USD", status="pending", transaction_id="C"))
        db.commit()

        assert db.query(PaymentModel).filter_by(order_id=order_id).count() == 3

    def test_failed_payment_is_terminal(self, db, service, gateway, place_order):
        order_id = place_order()
        transaction_id = service.initiate_payment(order_id, 1)["transaction_id"]
        gateway.set_status(transaction_id, "VOIDED")
        service.reconcile_payment(transaction_id)

        gateway.set_status(transaction_id, "COMPLETED")
        result = service.reconcile_payment(transaction_id)

        assert result["status"] == "failed"
        assert result["order"]["status"] == "pending"

    def test_completion_notifies_the_customer(self, db, gateway, locks, place_order):
        sent = []

        class RecordingNotifications:
            def send_payment_notification(self, user_id, order_id, payment_id):
                sent.append((user_id, order_id, payment_id))

        service = PaymentService(db, gateway, locks, notification_service=RecordingNotifications())
        order_id = place_order()
        initiated = service.initiate_payment(order_id, 1)

        service.capture_payment(initiated["transaction_id"], user_id=1)
        service.capture_payment(initiated["transaction_id"], user_id=1)

        assert sent == [(1, order_id, initiated["payment_id"])]


class TestReconcileStalePayments:
    def test_only_old_pending_payments_are_checked(self, db, service, gateway, place_order):
        old = service.initiate_payment(place_order(), 1)["transaction_id"]
        fresh = service.initiate_payment(place_order(), 1)["transaction_id"]
        _age(db, old, minutes=30)
        gateway.set_status(old, "COMPLETED")
        gateway.set_status(fresh, "COMPLETED")

        changed = service.reconcile_stale_payments(older_than_seconds=900)

        assert changed == 1
        assert _status(db, old) == "completed"
        assert _status(db, fresh) == "pending"

    def test_provider_errors_skip_one_payment_only(self, db, service, gateway, place_order):
        first = service.initiate_payment(place_order(), 1)["transaction_id"]
        second = service.initiate_payment(place_order(), 1)["transaction_id"]
        third = service.initiate_payment(place_order(), 1)["transaction_id"]
        for transaction_id in (first, second, third):
            _age(db, transaction_id, minutes=30)
        gateway.set_status(first, "VOIDED")
        gateway.set_status(third, "COMPLETED")
        gateway.fail_next("get", GatewayError("timeout"))

        changed = service.reconcile_stale_payments(older_than_seconds=900)

        # the injected failure hits the first lookup
        assert changed == 1
        assert _status(db, first) == "pending"
        assert _status(db, second) == "pending"
        assert _status(db, third) == "completed"

    def test_task_reports_changed_count(self, db, service, gateway, place_order):
        order_id = place_order()
        transaction_id = service.initiate_payment(order_id, 1)["transaction_id"]
        _age(db, transaction_id, minutes=30)
        gateway.set_status(transaction_id, "COMPLETED")

        result = reconcile_pending_payments_task(older_than_seconds=60)

        assert result == {"changed": 1}
        db.expire_all()
        assert db.get(OrderModel, order_id).status == "paid"


class TestAbandonedPayments:
    def test_session_never_approved_fails_after_abandon_age(self, db, service, gateway, place_order):
        order_id = place_order()
        transaction_id = service.initiate_payment(order_id, 1)["transaction_id"]
        _age(db, transaction_id, minutes=3 * 24 * 60)

        changed = service.reconcile_stale_payments(older_than_seconds=900, abandon_after_seconds=3 * 60 * 60)

        assert changed == 1
        assert _status(db, transaction_id) == "failed"
        assert service.initiate_payment(order_id, 1)["transaction_id"] != transaction_id

    def test_session_younger_than_abandon_age_stays_pending(self, db, service, gateway, place_order):
        transaction_id = service.initiate_payment(place_order(), 1)["transaction_id"]
        _age(db, transaction_id, minutes=30)

        changed = service.reconcile_stale_payments(older_than_seconds=900, abandon_after_seconds=3 * 60 * 60)

        assert changed == 0
        assert _status(db, transaction_id) == "pending"

    def test_approved_session_is_left_for_capture(self, db, service, gateway, place_order):
        transaction_id = service.initiate_payment(place_order(), 1)["transaction_id"]
        gateway.approve(transaction_id)
        _age(db, transaction_id, minutes=4 * 60)

        service.reconcile_stale_payments(older_than_seconds=900, abandon_after_seconds=3 * 60 * 60)

        assert _status(db, transaction_id) == "pending"

    def test_order_gone_at_provider_fails_payment(self, db, service, gateway, place_order):
        order_id = place_order()
        transaction_id = service.initiate_payment(order_id, 1)["transaction_id"]
        _age(db, transaction_id, minutes=30)
        gateway.expire(transaction_id)

        changed = service.reconcile_stale_payments(older_than_seconds=900)

        assert changed == 1
        assert _status(db, transaction_id) == "failed"
        db.expire_all()
        assert db.get(OrderModel, order_id).status == "pending"


class TestConcurrentSettlement:
    def test_payment_settled_by_another_request_transitions_once(self, db, gateway, locks, place_order, monkeypatch):
        sent = []

        class RecordingNotifications:
            def send_payment_notification(self, user_id, order_id, payment_id):
                sent.append(payment_id)

        notes = RecordingNotifications()
        service = PaymentService(db, gateway, locks, notification_service=notes)
        order_id = place_order()
        initiated = service.initiate_payment(order_id, 1)
        transaction_id = initiated["transaction_id"]

        other_db = SessionLocal()
        other = PaymentService(other_db, gateway, locks, notification_service=notes)
        real_get = gateway.get

        def get_while_capture_completes(tid):
            # the buyer's capture lands while the status check is in flight
            other.capture_payment(tid, user_id=1)
            return real_get(tid)

        monkeypatch.setattr(gateway, "get", get_while_capture_completes)
        try:
            result = service.reconcile_payment(transaction_id)
        finally:
            other_db.close()

        assert result["status"] == "completed"
        assert result["order"]["status"] == "paid"
        assert sent == [initiated["payment_id"]]
        assert len(gateway.calls_to("capture")) == 1
