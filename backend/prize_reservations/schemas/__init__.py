from prize_reservations.schemas.reservation import (
    CheckoutRequest, CompetitionRequest, Reservation, ReserveRequest,
    ReserveResponse, ReserveResult, TicketStatusResponse,
)
from prize_reservations.schemas.skill_question import (
    AttemptResult, BlockStatus, QuestionStatusResponse,
    ValidateAnswerRequest, ValidateAnswerResponse,
)

__all__ = [
    "CheckoutRequest", "CompetitionRequest", "Reservation", "ReserveRequest",
    "ReserveResponse", "ReserveResult", "TicketStatusResponse",
    "AttemptResult", "BlockStatus", "QuestionStatusResponse",
    "ValidateAnswerRequest", "ValidateAnswerResponse",
]
