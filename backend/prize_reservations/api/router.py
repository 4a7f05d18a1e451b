"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from prize_reservations.api.routes import checkout, qcm, tickets

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(tickets.router)
api_router.include_router(qcm.router)
api_router.include_router(checkout.router)
