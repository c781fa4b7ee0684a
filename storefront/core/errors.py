class CheckoutValidationError(ValueError):
    """Raised before any network call when the checkout cannot be submitted."""
    code = "VALIDATION"


class CouponRejected(ValueError):
    code = "COUPON_REJECTED"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidTransition(ValueError):
    code = "INVALID_TRANSITION"

    def __init__(self, current, target, message: str | None = None):
        super().__init__(message or f"Booking cannot move from {current.label} to {target.label}")
        self.current = current
        self.target = target


class CancellationNotPermitted(InvalidTransition):
    code = "CANCELLATION_NOT_PERMITTED"

    def __init__(self, current, target):
        super().__init__(current, target, f"A booking that is {current.label.lower()} can no longer be cancelled")


class BookingBusy(RuntimeError):
    code = "BUSY"

    def __init__(self, key: str):
        super().__init__("Another request for this booking is still in progress")
        self.key = key


class PaymentAttemptError(RuntimeError):
    code = "PAYMENT_ATTEMPT"


class PaymentAttemptNotFound(PaymentAttemptError):
    code = "PAYMENT_ATTEMPT_NOT_FOUND"


class RentalBackendError(RuntimeError):
    """Transport or server failure talking to the rental backend."""
    code = "BACKEND"

    def __init__(self, message: str, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class BackendContractError(RentalBackendError):
    """The backend answered, but not in a shape we can read. Retrying will not help."""
    code = "BACKEND_CONTRACT"


class ConfirmationMismatch(RuntimeError):
    """The gateway reported success but the backend did not confirm the payment.

    The payment may already be captured by the vendor; the booking must not be
    treated as paid and the confirmation should be retried.
    """
    code = "PAYMENT_CONFIRMATION_FAILED"

    def __init__(self, message: str, attempt_id: str, order_id: str, payment_id: str):
        super().__init__(message)
        self.attempt_id = attempt_id
        self.order_id = order_id
        self.payment_id = payment_id
