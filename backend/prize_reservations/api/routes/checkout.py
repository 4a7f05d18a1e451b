"""
Checkout entry point. Payment itself is handled by the order system.
"""

from fastapi import APIRouter, Depends

from prize_reservations.api.dependencies import get_checkout_service, get_client_ip, get_current_user_id
from prize_reservations.schemas.reservation import CheckoutRequest, Reservation
from prize_reservations.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/session", response_model=Reservation)
async def begin_checkout_endpoint(
    data: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    ip: str = Depends(get_client_ip),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """
    Confirm the caller may pay: skill question passed and tickets still held.
    The reservation is extended so it outlives the payment page.
    """
    return await checkout.begin_checkout(
        data.competition_id,
        user_id,
        ip=ip,
        ticket_numbers=data.ticket_numbers,
    )
