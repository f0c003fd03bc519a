"""Public routes: health and the booking surface."""

from fastapi import APIRouter

from roomledger.api.routes import availability, bookings

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(bookings.router)
router.include_router(availability.router)
