from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Protocol

from storefront.core.config import settings
from storefront.core.errors import CouponRejected
from storefront.schemas.checkout import CheckoutSession
from storefront.core.numbers import round_half_up

logger = logging.getLogger(__name__)

EMPTY_CODE_REASON = "Please enter a coupon code"
UNKNOWN_CODE_REASON = "Invalid coupon code"


@dataclass(frozen=True)
class CouponRule:
    code: str
    kind: str          # "percent" | "flat"
    value: float
    coupon_id: int = 0

    @classmethod
    def from_value(cls, code: str, value: float, coupon_id: int = 0) -> "CouponRule":
        # Table convention: below 1 is a fraction of subtotal, otherwise rupees off.
        kind = "percent" if value < 1 else "flat"
        return cls(code=code.upper(), kind=kind, value=float(value), coupon_id=coupon_id)

    def discount_for(self, subtotal: float) -> float:
        if self.kind == "percent":
            return round_half_up(subtotal * self.value)
        return self.value


@dataclass(frozen=True)
class CouponResult:
    code: str
    discountAmount: float
    couponId: int = 0


class CouponValidator(Protocol):
    def resolve(self, code: str, subtotal: float) -> CouponResult:
        """Return the discount for code, or raise CouponRejected."""
        ...


class StaticCouponValidator:
    """Looks codes up in a fixed table (case-insensitive)."""

    def __init__(self, table: Mapping[str, float]):
        self.rules = {
            code.upper(): CouponRule.from_value(code, value, coupon_id=i)
            for i, (code, value) in enumerate(table.items(), start=1)
        }

    def resolve(self, code: str, subtotal: float) -> CouponResult:
        key = (code or "").strip().upper()
        if not key:
            raise CouponRejected(EMPTY_CODE_REASON)
        rule = self.rules.get(key)
        if not rule:
            raise CouponRejected(UNKNOWN_CODE_REASON)
        return CouponResult(code=rule.code, discountAmount=rule.discount_for(subtotal), couponId=rule.coupon_id)


def default_validator() -> CouponValidator:
    return StaticCouponValidator(settings.COUPONS)


def apply_coupon(session: CheckoutSession, code: str, subtotal: float, validator: CouponValidator) -> CouponResult:
    """Apply code to the session, replacing any coupon already applied.

    On rejection the session keeps its previous coupon untouched.
    """
    result = validator.resolve(code, subtotal)
    session.couponCode = result.code
    session.couponId = result.couponId
    session.couponDiscount = result.discountAmount
    logger.info("coupon %s applied for vehicle %s: -%s", result.code, session.vehicleId, result.discountAmount)
    return result


def remove_coupon(session: CheckoutSession) -> CheckoutSession:
    # Safe to call when no coupon is applied.
    session.couponCode = ""
    session.couponId = 0
    session.couponDiscount = 0
    return session
