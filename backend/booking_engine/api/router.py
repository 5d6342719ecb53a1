"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from booking_engine.api.routes import availability, bookings, credits, services

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(services.router)
api_router.include_router(availability.router)
api_router.include_router(bookings.router)
api_router.include_router(credits.router)
