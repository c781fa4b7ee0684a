import pytest

from storefront.core.errors import BackendContractError, BookingBusy, CancellationNotPermitted, InvalidTransition
from storefront.models.audit_log import AuditLog
from storefront.schemas.booking import Booking, BookingStatus, format_duration
from storefront.services.booking_service import (
    BookingLifecycleManager,
    can_cancel,
    create_guard_key,
    merge_handoff,
    validate_transition,
)
from storefront.services.handoff_service import HandoffStore


@pytest.fixture
def manager(db, backend, guard):
    return BookingLifecycleManager(db, backend, guard)


@pytest.mark.parametrize("status", [BookingStatus.PENDING, BookingStatus.CONFIRMED])
def test_cancel_allowed(status):
    assert can_cancel(status)
    validate_transition(status, BookingStatus.CANCELLED)


@pytest.mark.parametrize("status", [BookingStatus.ACTIVE, BookingStatus.COMPLETED, BookingStatus.CANCELLED])
def test_cancel_not_permitted(status):
    assert not can_cancel(status)
    with pytest.raises(CancellationNotPermitted):
        validate_transition(status, BookingStatus.CANCELLED)


def test_other_invalid_transitions():
    with pytest.raises(InvalidTransition) as exc:
        validate_transition(BookingStatus.ACTIVE, BookingStatus.CONFIRMED)
    assert not isinstance(exc.value, CancellationNotPermitted)
    with pytest.raises(InvalidTransition):
        validate_transition(BookingStatus.COMPLETED, BookingStatus.ACTIVE)


@pytest.mark.parametrize("raw, expected", [
    (2, BookingStatus.CONFIRMED),
    ("3", BookingStatus.ACTIVE),
    ("cancelled", BookingStatus.CANCELLED),
    ("Completed", BookingStatus.COMPLETED),
    (None, BookingStatus.PENDING),
])
def test_status_parsing(raw, expected):
    assert Booking(bookingStatus=raw).bookingStatus == expected


def test_unknown_status_rejected():
    with pytest.raises(ValueError):
        Booking(bookingStatus="lost")


@pytest.mark.parametrize("hours, text", [
    (0, "N/A"), (1, "1 hour"), (5, "5 hours"), (48, "2 days"), (57, "2d 9h"),
    (0.5, "1 hour"), (2.5, "3 hours"), (47.5, "2 days"), (49.5, "2d 2h"),
])
def test_format_duration(hours, text):
    assert format_duration(hours) == text


def test_cancel_pending_booking(manager, backend, db):
    b = backend.add(bookingStatus=1)
    updated = manager.cancel(b["id"], actor="USER")
    assert updated.bookingStatus == BookingStatus.CANCELLED
    assert backend.called("cancel_booking") == [("cancel_booking", b["id"], "USER")]
    audit = db.query(AuditLog).filter(AuditLog.action == "booking_cancelled").one()
    assert audit.entity_id == b["bookingId"]


def test_cancel_completed_never_reaches_backend(manager, backend):
    b = backend.add(bookingStatus=4)
    with pytest.raises(CancellationNotPermitted):
        manager.cancel(b["id"])
    assert backend.called("cancel_booking") == []
    assert backend.bookings[b["id"]]["bookingStatus"] == 4


def test_accept_and_complete(manager, backend):
    b = backend.add(bookingStatus=1)
    assert manager.accept(b["id"]).bookingStatus == BookingStatus.CONFIRMED
    with pytest.raises(InvalidTransition):
        manager.complete(b["id"])
    backend.bookings[b["id"]]["bookingStatus"] = 3
    assert manager.complete(b["id"]).bookingStatus == BookingStatus.COMPLETED


def test_second_request_while_busy(manager, backend, guard):
    b = backend.add(bookingStatus=1)
    with guard.hold(f"booking:{b['id']}"):
        with pytest.raises(BookingBusy):
            manager.cancel(b["id"])
    assert not guard.is_busy(f"booking:{b['id']}")
    assert manager.cancel(b["id"]).bookingStatus == BookingStatus.CANCELLED


def test_merge_handoff():
    listed = [Booking(id=1, bookingId="VB1"), Booking(id=2, bookingId="VB2")]
    same = Booking(id=2, bookingId="VB2")
    fresh = Booking(id=3, bookingId="VB3")

    items, merged = merge_handoff(listed, 0, same)
    assert not merged and items == listed

    items, merged = merge_handoff(listed, 0, fresh)
    assert merged and [b.bookingId for b in items] == ["VB3", "VB1", "VB2"]

    items, merged = merge_handoff(listed, 1, fresh)
    assert not merged and items == listed


def test_create_writes_handoff(manager, backend, db, session_factory, now):
    from storefront.services.booking_request import build_booking_request
    from storefront.services.pricing_service import calculate_breakdown

    session = session_factory()
    booking, raw = manager.create(build_booking_request(session, calculate_breakdown(session), now=now), customer_id=42)
    assert raw["id"] == booking.id
    slot = HandoffStore(db).peek(42)
    assert slot is not None and slot.same_as(booking)


def test_reconcile_consumes_slot_once(manager, db):
    HandoffStore(db).put(42, Booking(id=9, bookingId="VB9", customerId=42, totalHours=57))

    items, merged = manager.reconcile(42, [], page=1)
    assert not merged
    items, merged = manager.reconcile(42, [], page=0)
    assert merged and items[0].bookingId == "VB9"
    assert items[0].durationDisplay == "2d 9h"
    items, merged = manager.reconcile(42, [], page=0)
    assert not merged and items == []


def test_refresh_after_payment_updates_pending_slot(manager, backend, db):
    b = backend.add(paymentStatus="INITIATED")
    store = HandoffStore(db)
    store.put(42, Booking.model_validate(b))
    backend.bookings[b["id"]]["paymentStatus"] = "PAID"

    refreshed = manager.refresh_after_payment(b["id"], 42)
    assert refreshed.paymentStatus == "PAID"
    assert store.peek(42).paymentStatus == "PAID"


def test_guest_creates_are_keyed_by_vehicle_and_window(manager, backend, guard, session_factory, now):
    from storefront.services.booking_request import build_booking_request
    from storefront.services.pricing_service import calculate_breakdown

    session = session_factory()
    trip = build_booking_request(session, calculate_breakdown(session), now=now)
    other_bike = trip.model_copy(update={"vehicleId": 8})
    assert create_guard_key(trip, None) != create_guard_key(other_bike, None)
    assert create_guard_key(trip, 42) == "create:42"

    with guard.hold(create_guard_key(trip, None)):
        with pytest.raises(BookingBusy):
            manager.create(trip, customer_id=None)
        booking, _ = manager.create(other_bike, customer_id=None)
    assert booking.vehicleId == 8
    assert len(backend.called("create_booking")) == 1


@pytest.mark.parametrize("action", ["get", "cancel"])
def test_unreadable_booking_is_a_contract_error(manager, backend, action):
    b = backend.add(bookingStatus="lost")
    with pytest.raises(BackendContractError) as exc:
        getattr(manager, action)(b["id"])
    assert exc.value.code == "BACKEND_CONTRACT"
