"""
Ticket reservation endpoints: reserve, release, inspect.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from prize_reservations.api.dependencies import (
    get_checkout_service,
    get_client_ip,
    get_current_user_id,
    get_optional_user_id,
)
from prize_reservations.core.logging import get_logger
from prize_reservations.schemas.reservation import (
    CompetitionRequest,
    Reservation,
    ReserveRequest,
    ReserveResponse,
    TicketStatusResponse,
)
from prize_reservations.services.checkout_service import CheckoutService

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("/reserve", response_model=ReserveResponse)
async def reserve_tickets_endpoint(
    data: ReserveRequest,
    user_id: str = Depends(get_current_user_id),
    ip: str = Depends(get_client_ip),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """
    Lock tickets for the caller for the reservation window.

    Either a quantity (numbers picked at random from the free pool) or
    explicit ticket numbers. Returns 409 if another buyer holds any of them;
    nothing is left locked in that case.
    """
    result = await checkout.reserve_tickets(
        data.competition_id,
        user_id,
        ip=ip,
        quantity=data.quantity,
        ticket_numbers=data.ticket_numbers,
    )
    return ReserveResponse(
        ticket_numbers=result.ticket_numbers,
        expires_at=result.expires_at,
        ttl=checkout.locks.ttl_seconds,
    )


@router.post("/release")
async def release_tickets_endpoint(
    data: CompetitionRequest,
    user_id: str = Depends(get_current_user_id),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Give held tickets back to the pool. No-op without a reservation."""
    await checkout.release(data.competition_id, user_id)
    return {"success": True}


@router.get("/reservation", response_model=Optional[Reservation])
async def get_reservation_endpoint(
    competition_id: str = Query(..., alias="competitionId", min_length=1),
    user_id: str = Depends(get_current_user_id),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Held ticket numbers and expiry for the countdown, or null."""
    return await checkout.locks.get_reservation(competition_id, user_id)


@router.post("/status", response_model=TicketStatusResponse)
async def ticket_status_endpoint(
    data: CompetitionRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Availability counts plus the caller's reservation, if any."""
    return await checkout.ticket_status(data.competition_id, user_id)
