from fastapi import APIRouter
from storefront.api.v1.routes.checkout import router as checkout_router
from storefront.api.v1.routes.bookings import router as bookings_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(checkout_router)
api_router.include_router(bookings_router)
