import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import (
    DOMAIN_ERRORS,
    checkout_session,
    get_backend,
    get_clock,
    get_coupon_validator,
    get_guard,
    http_error,
)
from storefront.core.errors import RentalBackendError
from storefront.db.session import get_db
from storefront.models.payment import PaymentAttempt
from storefront.schemas.checkout import CheckoutQuoteOut, CheckoutSession
from storefront.schemas.payments import CheckoutSubmitOut, PaymentAttemptOut, WidgetOutcomeIn
from storefront.services.booking_service import BookingLifecycleManager
from storefront.services.busy_guard import BusyGuard
from storefront.services.checkout_service import CheckoutService, apply_coupon_code, quote, remove_coupon_code
from storefront.services.coupon_service import CouponValidator
from storefront.services.payment_gateway import PaymentGatewayAdapter, PaymentState, attempt_out, outcome_from_widget
from storefront.services.rental_backend import RentalBackendClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])


@router.get("/public/checkout/quote", response_model=CheckoutQuoteOut)
def get_quote(session: CheckoutSession = Depends(checkout_session),
              validator: CouponValidator = Depends(get_coupon_validator)):
    return quote(session, validator)


@router.post("/public/checkout/coupon", response_model=CheckoutQuoteOut)
def post_coupon(code: str = Query(default=""),
                session: CheckoutSession = Depends(checkout_session),
                validator: CouponValidator = Depends(get_coupon_validator)):
    try:
        return apply_coupon_code(session, code, validator)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.delete("/public/checkout/coupon", response_model=CheckoutQuoteOut)
def delete_coupon(session: CheckoutSession = Depends(checkout_session),
                  validator: CouponValidator = Depends(get_coupon_validator)):
    return remove_coupon_code(session, validator)


@router.post("/checkout/bookings", response_model=CheckoutSubmitOut)
def submit_checkout(customerId: int | None = None,
                    session: CheckoutSession = Depends(checkout_session),
                    db: Session = Depends(get_db),
                    backend: RentalBackendClient = Depends(get_backend),
                    validator: CouponValidator = Depends(get_coupon_validator),
                    guard: BusyGuard = Depends(get_guard),
                    clock=Depends(get_clock)):
    try:
        return CheckoutService(db, backend, validator, guard, clock=clock).submit(session, customerId)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


def _with_booking(attempt: PaymentAttempt, lifecycle: BookingLifecycleManager) -> PaymentAttemptOut:
    if attempt.state != PaymentState.CONFIRMED.value:
        return attempt_out(attempt)
    try:
        booking = lifecycle.refresh_after_payment(attempt.booking_db_id, attempt.customer_id)
    except RentalBackendError as e:
        # The payment is confirmed either way; the list view picks the booking up on its next load.
        logger.warning("could not refresh booking %s after payment: %s", attempt.booking_db_id, e)
        booking = None
    return attempt_out(attempt, booking=booking)


@router.get("/checkout/payments/{attempt_id}", response_model=PaymentAttemptOut)
def get_payment(attempt_id: str, db: Session = Depends(get_db),
                backend: RentalBackendClient = Depends(get_backend)):
    try:
        return attempt_out(PaymentGatewayAdapter(db, backend).get(attempt_id))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/checkout/payments/{attempt_id}/widget-opened", response_model=PaymentAttemptOut)
def widget_opened(attempt_id: str, db: Session = Depends(get_db),
                  backend: RentalBackendClient = Depends(get_backend),
                  guard: BusyGuard = Depends(get_guard)):
    try:
        return attempt_out(PaymentGatewayAdapter(db, backend, guard).mark_widget_open(attempt_id))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/checkout/payments/{attempt_id}/outcome", response_model=PaymentAttemptOut)
def widget_outcome(attempt_id: str, body: WidgetOutcomeIn, db: Session = Depends(get_db),
                   backend: RentalBackendClient = Depends(get_backend),
                   guard: BusyGuard = Depends(get_guard)):
    try:
        attempt = PaymentGatewayAdapter(db, backend, guard).resolve(attempt_id, outcome_from_widget(body))
        return _with_booking(attempt, BookingLifecycleManager(db, backend, guard))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/checkout/payments/{attempt_id}/retry-confirmation", response_model=PaymentAttemptOut)
def retry_confirmation(attempt_id: str, db: Session = Depends(get_db),
                       backend: RentalBackendClient = Depends(get_backend),
                       guard: BusyGuard = Depends(get_guard)):
    try:
        attempt = PaymentGatewayAdapter(db, backend, guard).retry_confirmation(attempt_id)
        return _with_booking(attempt, BookingLifecycleManager(db, backend, guard))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/checkout/payments/{attempt_id}/retry", response_model=PaymentAttemptOut)
def retry_payment(attempt_id: str, db: Session = Depends(get_db),
                  backend: RentalBackendClient = Depends(get_backend),
                  guard: BusyGuard = Depends(get_guard)):
    try:
        return attempt_out(PaymentGatewayAdapter(db, backend, guard).reopen(attempt_id))
    except DOMAIN_ERRORS as e:
        raise http_error(e)
