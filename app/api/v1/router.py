"""
API v1 router setup
Organized into: public (client booking) and dashboard (staff) routes
"""
from fastapi import APIRouter

from app.api.v1.public import booking
from app.api.v1.dashboard import appointments, availability

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (No authentication required)
# ============================================================================
api_v1_router.include_router(
    booking.router,
    prefix="/public",
)

# ============================================================================
# DASHBOARD ROUTES (scoped by X-Business-ID)
# ============================================================================
api_v1_router.include_router(
    appointments.router,
    prefix="/dashboard",
)

api_v1_router.include_router(
    availability.router,
    prefix="/dashboard",
)


@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and route groups"""
    return {
        "version": "1.0",
        "routes": {
            "public": "Availability, slots, bookings, email confirmation, client cancellation",
            "dashboard": "Rule management and appointment lifecycle (X-Business-ID header required)",
        }
    }
