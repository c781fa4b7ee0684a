from __future__ import annotations

from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from storefront.core.errors import CheckoutValidationError

PAYMENT_METHODS = ("cod", "online")
PICKUP_MODES = ("self-pickup", "delivery")

# Catalog pages still link with the bike-era parameter names.
_QUERY_ALIASES = {
    "bikeId": "vehicleId",
    "bikeName": "vehicleName",
}


class CheckoutSession(BaseModel):
    """Everything the checkout screen knows, carried in the navigation query string.

    Nothing here is persisted: the session is rebuilt from the query on every
    request and dropped once the booking is created.
    """
    model_config = ConfigDict(extra="ignore")

    vehicleId: str = ""
    vehicleName: str = ""
    packageId: str = ""
    packageName: str = ""
    packagePrice: float = 0
    packageDeposit: float = 0

    startDate: str = ""    # YYYY-MM-DD
    endDate: str = ""
    pickupTime: str = "10:00"
    dropoffTime: str = "19:00"

    pickupMode: str = "self-pickup"
    deliveryAddress: str = ""
    storeName: str = ""
    city: str = ""
    pickupLocationId: Optional[int] = None
    dropLocationId: Optional[int] = None

    couponCode: str = ""
    couponId: int = 0
    couponDiscount: float = 0

    paymentMethod: Optional[str] = None
    termsAccepted: bool = False

    @field_validator("paymentMethod", mode="before")
    @classmethod
    def _payment_method(cls, v):
        if v is None or str(v).strip() == "":
            return None
        v = str(v).strip().lower()
        if v not in PAYMENT_METHODS:
            raise ValueError(f"paymentMethod must be one of {', '.join(PAYMENT_METHODS)}")
        return v

    @field_validator("pickupMode", mode="before")
    @classmethod
    def _pickup_mode(cls, v):
        v = str(v or "").strip().lower()
        return "delivery" if v == "delivery" else "self-pickup"

    @field_validator("couponCode", mode="before")
    @classmethod
    def _coupon_code(cls, v):
        return str(v or "").strip().upper()

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "CheckoutSession":
        data = {}
        for k, v in params.items():
            if v is None or str(v).strip() == "":
                continue
            data[_QUERY_ALIASES.get(k, k)] = v
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ()))
            raise CheckoutValidationError(f"Invalid checkout data ({field}): {first.get('msg')}")

    def to_query(self) -> dict:
        """Encode back into query parameters for the next navigation."""
        out = {}
        for k, v in self.model_dump(exclude_defaults=True).items():
            out[k] = str(v).lower() if isinstance(v, bool) else str(v)
        return out

    @property
    def has_coupon(self) -> bool:
        return bool(self.couponCode)


class PriceBreakdown(BaseModel):
    subtotal: float = 0
    gst: float = 0
    discount: float = 0
    couponDiscount: float = 0
    deposit: float = 0
    payableAmount: float = 0
    total: float = 0
    refundableAmount: float = 0
    savings: float = 0


class CheckoutQuoteOut(BaseModel):
    session: CheckoutSession
    breakdown: PriceBreakdown
    valid: bool
    message: str = ""


class BookingCreateRequest(BaseModel):
    """Payload the rental backend expects on POST /bookings. Every field is always sent."""
    vehicleId: int
    packageId: Optional[int] = None

    startDate: str      # YYYY-MM-DDTHH:MM:00
    endDate: str
    startDate1: str     # YYYY-MM-DD
    endDate1: str

    charges: float
    gst: float
    discount: float = 0
    totalCharges: float
    finalAmount: float
    advanceAmount: float

    totalHours: float
    additionalHours: float = 0

    paymentType: int
    paymentStatus: str

    addressType: str
    address: str = ""
    deliveryType: Optional[str] = None
    pickupLocationId: int = 1
    dropLocationId: int = 1

    couponCode: Optional[str] = None
    couponId: int = 0
    couponAmount: float = 0

    additionalCharges: float = 0
    additionalChargesDetails: Optional[str] = None
    deliveryCharges: float = 0
    km: float = 0
    lateFeeCharges: float = 0
    lateEndDate: Optional[str] = None
    merchantTransactionId: Optional[str] = None
    transactionId: Optional[str] = None
    bookingStatus: int = 1
