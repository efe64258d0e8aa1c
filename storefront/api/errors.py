# storefront/api/errors.py
from fastapi import HTTPException

from storefront.domain.errors import GatewayError, NotFoundError, PaymentInProgressError


def http_error(e: Exception, gateway_detail: str = "Payment provider error") -> HTTPException:
    """Map a domain exception to its HTTP response; provider details never leave the service."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, PaymentInProgressError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, GatewayError):
        return HTTPException(status_code=500, detail=gateway_detail)
    return HTTPException(status_code=400, detail=str(e))
