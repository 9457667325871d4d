"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.shipments import router as shipments_router
from app.api.routes.departures import router as departures_router
from app.api.routes.distributions import router as distributions_router

router = APIRouter()

router.include_router(shipments_router, prefix="/shipments", tags=["Shipments"])
router.include_router(departures_router, prefix="/departures", tags=["Departures"])
router.include_router(distributions_router, prefix="/distributions", tags=["Distributions"])
