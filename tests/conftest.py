import json
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.api.deps import get_backend, get_clock, get_coupon_validator, get_guard
from storefront.core.errors import RentalBackendError
from storefront.db.session import Base, get_db
from storefront.main import app
from storefront.models.audit_log import AuditLog  # noqa: F401
from storefront.models.handoff import HandoffBooking  # noqa: F401
from storefront.models.payment import PaymentAttempt  # noqa: F401
from storefront.schemas.checkout import CheckoutSession
from storefront.services.busy_guard import BusyGuard
from storefront.services.coupon_service import StaticCouponValidator

COUPONS = {"OFF10": 0.1, "SAVE20": 0.2, "FIRST50": 50}
# "today" for every test; the sample trip starts a month later
NOW = datetime(2024, 12, 1, 9, 0, 0)


class FakeBackend:
    """In-memory stand-in for the rental backend's booking and payment endpoints."""

    def __init__(self):
        self.bookings: dict[int, dict] = {}
        self.calls: list[tuple] = []
        self.next_id = 100
        self.customer_id = 42
        # created bookings stay out of list responses (backend list lagging behind)
        self.lagging = False
        self.order: dict | None = None
        self.orders: dict[str, int] = {}
        self.confirm_error: RentalBackendError | None = None
        self.confirm_response: dict = {"success": True, "message": "Payment verified"}
        self.list_error: RentalBackendError | None = None
        self.list_as_array = False
        self.hidden: set[int] = set()
        self._clock = datetime(2025, 1, 1, 9, 0, 0)

    def add(self, **fields) -> dict:
        self.next_id += 1
        self._clock += timedelta(minutes=5)
        booking = {
            "id": self.next_id,
            "bookingId": f"VB{self.next_id}",
            "customerId": self.customer_id,
            "vehicleId": 7,
            "bookingStatus": 1,
            "finalAmount": 1050,
            "totalHours": 57,
            "startDate": "2025-01-01T10:00:00",
            "endDate": "2025-01-03T19:00:00",
            "createdAt": self._clock.isoformat(),
        }
        booking.update(fields)
        self.bookings[booking["id"]] = booking
        return booking

    def _find(self, booking_id: int) -> dict:
        if booking_id not in self.bookings:
            raise RentalBackendError("Booking not found", status_code=404)
        return self.bookings[booking_id]

    def create_booking(self, payload: dict) -> dict:
        self.calls.append(("create_booking", payload))
        booking = self.add(**payload)
        if self.lagging:
            self.hidden.add(booking["id"])
        out = dict(booking)
        if payload.get("paymentType") == 2 and self.order:
            self.orders[self.order["id"]] = booking["id"]
            out["razorpayOrderDetails"] = json.dumps(self.order)
        return out

    def get_booking(self, booking_id: int) -> dict:
        self.calls.append(("get_booking", booking_id))
        return dict(self._find(booking_id))

    def _set_status(self, booking_id: int, status: int) -> dict:
        booking = self._find(booking_id)
        booking["bookingStatus"] = status
        return dict(booking)

    def cancel_booking(self, booking_id: int, cancelled_by: str = "USER") -> dict:
        self.calls.append(("cancel_booking", booking_id, cancelled_by))
        return self._set_status(booking_id, 5)

    def accept_booking(self, booking_id: int) -> dict:
        self.calls.append(("accept_booking", booking_id))
        return self._set_status(booking_id, 2)

    def complete_booking(self, booking_id: int) -> dict:
        self.calls.append(("complete_booking", booking_id))
        return self._set_status(booking_id, 4)

    def bookings_by_customer(self, customer_id: int, page: int = 0, size: int = 10, sort_by: str = "latest"):
        self.calls.append(("bookings_by_customer", customer_id, page, size, sort_by))
        if self.list_error:
            raise self.list_error
        rows = [dict(b) for b in self.bookings.values()
                if b.get("customerId") == customer_id and b["id"] not in self.hidden]
        if self.list_as_array:
            return rows
        chunk = rows[page * size:(page + 1) * size]
        return {
            "content": chunk,
            "totalElements": len(rows),
            "totalPages": max(1, -(-len(rows) // size)),
            "number": page,
        }

    def all_bookings_for_user(self):
        self.calls.append(("all_bookings_for_user",))
        return [dict(b) for b in self.bookings.values() if b["id"] not in self.hidden]

    def confirm_gateway_payment(self, *, order_id: str, payment_id: str, signature: str) -> dict:
        self.calls.append(("confirm_gateway_payment", order_id, payment_id, signature))
        if self.confirm_error:
            raise self.confirm_error
        booking_id = self.orders.get(order_id)
        if booking_id is not None and self.confirm_response.get("success") is not False:
            self.bookings[booking_id]["paymentStatus"] = "PAID"
        return dict(self.confirm_response)

    def get_invoice(self, booking_id: int) -> bytes:
        self.calls.append(("get_invoice", booking_id))
        self._find(booking_id)
        return b"%PDF-1.4 invoice " + str(booking_id).encode()

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def guard():
    return BusyGuard()


@pytest.fixture
def validator():
    return StaticCouponValidator(COUPONS)


@pytest.fixture
def checkout_params():
    """Query parameters of a complete checkout: 1000 package, 57h trip, cash on delivery."""
    def make(**overrides):
        params = {
            "vehicleId": "7",
            "vehicleName": "Activa 6G",
            "packageId": "3",
            "packageName": "Weekend",
            "packagePrice": "1000",
            "packageDeposit": "2000",
            "startDate": "2025-01-01",
            "endDate": "2025-01-03",
            "pickupTime": "10:00",
            "dropoffTime": "19:00",
            "storeName": "Baner Store",
            "city": "Pune",
            "paymentMethod": "cod",
            "termsAccepted": "true",
        }
        params.update(overrides)
        return {k: v for k, v in params.items() if v is not None}
    return make


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def session_factory(checkout_params):
    def make(**overrides) -> CheckoutSession:
        return CheckoutSession.from_query(checkout_params(**overrides))
    return make


@pytest.fixture
def client(db, backend, guard, validator):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_guard] = lambda: guard
    app.dependency_overrides[get_coupon_validator] = lambda: validator
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
