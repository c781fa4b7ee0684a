from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from storefront.api.deps import DOMAIN_ERRORS, get_backend, get_guard, http_error
from storefront.db.session import get_db
from storefront.schemas.booking import Booking, BookingListOut
from storefront.services.booking_list_service import BookingListAggregator
from storefront.services.booking_service import BookingLifecycleManager
from storefront.services.busy_guard import BusyGuard
from storefront.services.rental_backend import RentalBackendClient

router = APIRouter(tags=["bookings"])


@router.get("/bookings", response_model=BookingListOut)
def list_bookings(customerId: int,
                  page: int = Query(default=0),
                  size: int = Query(default=10),
                  sortBy: str = Query(default="latest"),
                  tab: str = Query(default="all"),
                  db: Session = Depends(get_db),
                  backend: RentalBackendClient = Depends(get_backend),
                  guard: BusyGuard = Depends(get_guard)):
    lifecycle = BookingLifecycleManager(db, backend, guard)
    try:
        return BookingListAggregator(backend, lifecycle).list(customerId, page=page, page_size=size,
                                                              sort_by=sortBy, tab=tab)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: int, db: Session = Depends(get_db),
                backend: RentalBackendClient = Depends(get_backend),
                guard: BusyGuard = Depends(get_guard)):
    try:
        return BookingLifecycleManager(db, backend, guard).get(booking_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/bookings/{booking_id}/cancel", response_model=Booking)
def cancel_booking(booking_id: int, cancelledBy: str = Query(default="USER"),
                   db: Session = Depends(get_db),
                   backend: RentalBackendClient = Depends(get_backend),
                   guard: BusyGuard = Depends(get_guard)):
    try:
        return BookingLifecycleManager(db, backend, guard).cancel(booking_id, actor=cancelledBy.strip().upper() or "USER")
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/bookings/{booking_id}/accept", response_model=Booking)
def accept_booking(booking_id: int, db: Session = Depends(get_db),
                   backend: RentalBackendClient = Depends(get_backend),
                   guard: BusyGuard = Depends(get_guard)):
    try:
        return BookingLifecycleManager(db, backend, guard).accept(booking_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/bookings/{booking_id}/complete", response_model=Booking)
def complete_booking(booking_id: int, db: Session = Depends(get_db),
                     backend: RentalBackendClient = Depends(get_backend),
                     guard: BusyGuard = Depends(get_guard)):
    try:
        return BookingLifecycleManager(db, backend, guard).complete(booking_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/bookings/{booking_id}/invoice")
def download_invoice(booking_id: int, backend: RentalBackendClient = Depends(get_backend)):
    try:
        pdf = backend.get_invoice(booking_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return Response(content=pdf, media_type="application/pdf",
                    headers={"Content-Disposition": f'attachment; filename="invoice-{booking_id}.pdf"'})
