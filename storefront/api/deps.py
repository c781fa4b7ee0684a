from datetime import datetime
from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from storefront.core.errors import (
    BackendContractError,
    BookingBusy,
    CheckoutValidationError,
    ConfirmationMismatch,
    CouponRejected,
    InvalidTransition,
    PaymentAttemptError,
    PaymentAttemptNotFound,
    RentalBackendError,
)
from storefront.schemas.checkout import CheckoutSession
from storefront.services.busy_guard import BusyGuard, busy_guard
from storefront.services.coupon_service import CouponValidator, default_validator
from storefront.services.rental_backend import RentalBackendClient, backend_client

bearer = HTTPBearer(auto_error=False)

# Everything the service layer raises on purpose; anything else is a bug and becomes a 500.
DOMAIN_ERRORS = (
    ValueError,
    BookingBusy,
    PaymentAttemptError,
    RentalBackendError,
    ConfirmationMismatch,
)

# Backend client errors we pass through as-is; everything else is a 502.
_PASSTHROUGH_STATUSES = {400, 401, 403, 404, 409}


def http_error(e: Exception) -> HTTPException:
    if isinstance(e, ConfirmationMismatch):
        return HTTPException(status_code=502, detail={
            "code": e.code, "message": str(e), "retryable": True,
            "attemptId": e.attempt_id, "orderId": e.order_id, "paymentId": e.payment_id,
        })
    if isinstance(e, BackendContractError):
        return HTTPException(status_code=502, detail={"code": e.code, "message": str(e), "retryable": False})
    if isinstance(e, RentalBackendError):
        status = e.status_code if e.status_code in _PASSTHROUGH_STATUSES else 502
        return HTTPException(status_code=status, detail={
            "code": e.code, "message": str(e), "retryable": status == 502,
        })
    if isinstance(e, PaymentAttemptNotFound):
        return HTTPException(status_code=404, detail={"code": e.code, "message": str(e)})
    if isinstance(e, CouponRejected):
        return HTTPException(status_code=400, detail={"code": e.code, "reason": e.reason, "message": e.reason})
    if isinstance(e, (InvalidTransition, BookingBusy, PaymentAttemptError)):
        return HTTPException(status_code=409, detail={"code": e.code, "message": str(e)})
    if isinstance(e, CheckoutValidationError):
        return HTTPException(status_code=400, detail={"code": e.code, "message": str(e)})
    return HTTPException(status_code=400, detail={"code": "BAD_REQUEST", "message": str(e)})


def get_backend(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> RentalBackendClient:
    # Authentication lives upstream; we only forward the caller's token.
    return backend_client(creds.credentials if creds else None)


def get_coupon_validator() -> CouponValidator:
    return default_validator()


def get_guard() -> BusyGuard:
    return busy_guard


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def checkout_session(request: Request) -> CheckoutSession:
    try:
        return CheckoutSession.from_query(request.query_params)
    except CheckoutValidationError as e:
        raise http_error(e)
