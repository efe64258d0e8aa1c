# storefront/repos/order_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.statuses import OrderStatus


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_order_for_update(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_orders(self) -> list[OrderModel]:
        return (
            self.db.execute(
                select(OrderModel).order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            )
            .scalars()
            .all()
        )

    def list_user_orders(self, user_id: int) -> list[OrderModel]:
        return (
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            )
            .scalars()
            .all()
        )

    def set_status(self, order_id: int, old_status: str, new_status: str) -> int:
        # guarded on the status we read, like a version check
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == old_status)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def mark_paid(self, order_id: int) -> int:
        return self.set_status(order_id, OrderStatus.PENDING.value, OrderStatus.PAID.value)
