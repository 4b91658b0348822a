from fastapi import APIRouter

# Public: catalogue and availability
from cleanouts.api.v1.public.services import router as public_services_router
from cleanouts.api.v1.public.availability import router as availability_router

# Public: bookings and payments
from cleanouts.api.v1.public.bookings import router as bookings_router
from cleanouts.api.v1.public.payments import router as payments_router

# Public: user profile, notifications & reviews
from cleanouts.api.v1.public.me import router as me_router
from cleanouts.api.v1.public.reviews import router as reviews_router

# Admin
from cleanouts.api.v1.admin.services import router as admin_services_router
from cleanouts.api.v1.admin.bookings import router as admin_bookings_router
from cleanouts.api.v1.admin.users import router as admin_users_router

api_router = APIRouter()

# --- Public: catalogue & availability ---
api_router.include_router(public_services_router)
api_router.include_router(availability_router)

# --- Public: bookings & payments ---
api_router.include_router(bookings_router)
api_router.include_router(payments_router)

# --- Public: profile, notifications & reviews ---
api_router.include_router(me_router)
api_router.include_router(reviews_router)

# --- Admin ---
api_router.include_router(admin_services_router)
api_router.include_router(admin_bookings_router)
api_router.include_router(admin_users_router)
