# storefront/api/deps.py
from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.gateway import PaymentGateway, get_gateway
from storefront.services.lock_service import LockService
from storefront.services.payment_service import PaymentService


class CurrentUser(BaseModel):
    """Identity forwarded by the authenticating proxy in front of the service."""

    id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(
    x_user_id: int | None = Header(default=None),
    x_user_role: str = Header(default="user"),
) -> CurrentUser:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return CurrentUser(id=x_user_id, role=x_user_role)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_payment_gateway() -> PaymentGateway:
    return get_gateway()


def get_lock_service() -> LockService:
    return LockService()


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    lock_service: LockService = Depends(get_lock_service),
) -> PaymentService:
    return PaymentService(db=db, gateway=gateway, lock_service=lock_service)
