from pydantic import AliasChoices, BaseModel, Field
from typing import Literal, Optional

from storefront.schemas.booking import Booking


class OrderHandleOut(BaseModel):
    id: str
    amount: int          # minor units, as issued by the gateway
    currency: str = "INR"


class WidgetOptionsOut(BaseModel):
    # Everything the browser needs to open the vendor checkout widget.
    key: str = ""
    name: str = ""
    description: str = ""
    currency: str = "INR"


class PaymentAttemptOut(BaseModel):
    attemptId: str
    bookingId: Optional[str] = None
    bookingDbId: Optional[int] = None
    state: str
    order: OrderHandleOut
    widget: Optional[WidgetOptionsOut] = None
    paymentId: Optional[str] = None
    failureReason: Optional[str] = None
    retryable: bool = False
    booking: Optional[Booking] = None


class WidgetOutcomeIn(BaseModel):
    """What the browser reports when the vendor widget resolves.

    Accepts both our camelCase names and the vendor's razorpay_* handler keys.
    """
    status: Literal["succeeded", "failed", "cancelled"]
    paymentId: Optional[str] = Field(default=None, validation_alias=AliasChoices("paymentId", "razorpay_payment_id"))
    orderId: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderId", "razorpay_order_id"))
    signature: Optional[str] = Field(default=None, validation_alias=AliasChoices("signature", "razorpay_signature"))
    reason: Optional[str] = Field(default=None, validation_alias=AliasChoices("reason", "description"))
    code: Optional[str] = None


class CheckoutSubmitOut(BaseModel):
    booking: Booking
    paymentRequired: bool = False
    payment: Optional[PaymentAttemptOut] = None
    message: str = ""
