# storefront/repos/payment_repo.py
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.statuses import PaymentStatus


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: int) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id)

    def get_by_transaction_id(self, transaction_id: str, user_id: int | None = None) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.transaction_id == transaction_id)
        if user_id is not None:
            stmt = stmt.where(PaymentModel.user_id == user_id)
        return self.db.execute(stmt.execution_options(populate_existing=True)).scalar_one_or_none()

    def get_active_for_order(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(
                PaymentModel.order_id == order_id,
                PaymentModel.status != PaymentStatus.FAILED.value,
            )
        ).scalars().first()

    def list_user_payments(self, user_id: int) -> list[PaymentModel]:
        return (
            self.db.execute(
                select(PaymentModel)
                .where(PaymentModel.user_id == user_id)
                .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
            )
            .scalars()
            .all()
        )

    def list_pending_created_before(self, cutoff: datetime) -> list[PaymentModel]:
        return (
            self.db.execute(
                select(PaymentModel)
                .where(
                    PaymentModel.status == PaymentStatus.PENDING.value,
                    PaymentModel.created_at < cutoff,
                )
                .order_by(PaymentModel.id)
            )
            .scalars()
            .all()
        )

    def set_status(self, payment_id: int, old_status: str, new_status: str) -> int:
        result = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status == old_status)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
