"""
Skill-question (QCM) endpoints.
Guests are tracked by IP, authenticated users by user id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from prize_reservations.api.dependencies import (
    get_checkout_service,
    get_client_ip,
    get_identifier,
    get_optional_user_id,
)
from prize_reservations.schemas.skill_question import (
    QuestionStatusResponse,
    ValidateAnswerRequest,
    ValidateAnswerResponse,
)
from prize_reservations.services.checkout_service import CheckoutService

router = APIRouter(prefix="/qcm", tags=["Skill question"])


@router.post("/validate", response_model=ValidateAnswerResponse, response_model_exclude_none=True)
async def validate_answer_endpoint(
    data: ValidateAnswerRequest,
    identifier: str = Depends(get_identifier),
    user_id: Optional[str] = Depends(get_optional_user_id),
    ip: str = Depends(get_client_ip),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """
    Check an answer. Wrong answers count towards the lockout; 429 while
    locked out.
    """
    return await checkout.validate_answer(
        data.competition_id,
        identifier,
        data.answer,
        user_id=user_id,
        ticket_numbers=data.ticket_numbers,
        captcha_token=data.captcha_token,
        ip=ip,
    )


@router.get("/validate", response_model=QuestionStatusResponse)
async def question_status_endpoint(
    competition_id: str = Query(..., alias="competitionId", min_length=1),
    identifier: str = Depends(get_identifier),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Whether the caller passed, or is locked out and for how long."""
    return await checkout.question_status(competition_id, identifier)
