"""
Checkout orchestration: rate limiting, allocation, reservation, skill question.

FLOW
====

  reserve_tickets  -> rate limit -> competition checks -> allocate -> lock
  validate_answer  -> block check -> keep reservation alive -> answer check
  begin_checkout   -> rate limit -> passed check -> keep reservation alive
  complete_order   -> called by the order system once the sale is durable

"Keep reservation alive" means extend() when the reservation still exists, or
recreate it from the client's remembered ticket numbers when it lapsed.

Every store write goes through TicketLockManager / SkillQuestionTracker; this
module owns no state of its own.
"""

from typing import Optional

from prize_reservations.core.exceptions import (
    CompetitionNotFoundError,
    ConflictError,
    ValidationError,
)
from prize_reservations.core.logging import get_logger
from prize_reservations.core.metrics import record_skill_question, reservations_released
from prize_reservations.schemas.reservation import Reservation, ReserveResult, TicketStatusResponse
from prize_reservations.schemas.skill_question import QuestionStatusResponse, ValidateAnswerResponse
from prize_reservations.services.allocation import allocate_ticket_numbers
from prize_reservations.services.captcha import TurnstileVerifier
from prize_reservations.services.interfaces.competitions import Competition, CompetitionDirectory
from prize_reservations.services.rate_limiter import RateLimiter
from prize_reservations.services.skill_question_service import SkillQuestionTracker
from prize_reservations.services.ticket_lock_service import TicketLockManager

logger = get_logger(__name__)

NO_RESERVATION_MESSAGE = "No active ticket reservation found. Please select tickets again."


class CheckoutService:

    def __init__(
        self,
        locks: TicketLockManager,
        tracker: SkillQuestionTracker,
        limiter: RateLimiter,
        competitions: CompetitionDirectory,
        captcha: Optional[TurnstileVerifier] = None,
        max_tickets_per_request: int = 50,
    ):
        self.locks = locks
        self.tracker = tracker
        self.limiter = limiter
        self.competitions = competitions
        self.captcha = captcha
        self.max_tickets_per_request = max_tickets_per_request

    async def _active_competition(self, competition_id: str) -> Competition:
        competition = await self.competitions.get_competition(competition_id)
        if competition is None:
            raise CompetitionNotFoundError()
        if not competition.is_active:
            raise ValidationError("This competition is not currently accepting entries")
        return competition

    async def reserve_tickets(
        self,
        competition_id: str,
        user_id: str,
        ip: str = "unknown",
        quantity: Optional[int] = None,
        ticket_numbers: Optional[list[int]] = None,
    ) -> ReserveResult:
        """Pick (or take the given) ticket numbers and lock them for user_id."""
        await self.limiter.enforce("ticket-reserve", f"{user_id}:{ip}")

        if (quantity is None) == (ticket_numbers is None):
            raise ValidationError("Provide either a quantity or ticket numbers")

        competition = await self._active_competition(competition_id)
        requested = quantity if quantity is not None else len(ticket_numbers)
        if requested < 1 or requested > self.max_tickets_per_request:
            raise ValidationError(
                f"You can reserve between 1 and {self.max_tickets_per_request} tickets at a time"
            )

        owned = await self.competitions.sold_ticket_numbers(competition_id, user_id)
        allowance = competition.max_tickets_per_user - len(owned)
        if requested > allowance:
            if allowance > 0:
                raise ValidationError(
                    f"You can only buy {allowance} more ticket{'' if allowance == 1 else 's'} for this competition."
                )
            raise ValidationError(
                f"You have reached the maximum of {competition.max_tickets_per_user} tickets for this competition."
            )

        sold = await self.competitions.sold_ticket_numbers(competition_id)

        if ticket_numbers is not None:
            out_of_range = [n for n in ticket_numbers if n < 1 or n > competition.total_tickets]
            if out_of_range:
                raise ValidationError(f"Ticket numbers out of range: {sorted(out_of_range)}")
            already_sold = [n for n in ticket_numbers if n in sold]
            if already_sold:
                raise ConflictError(already_sold, "Some tickets are no longer available. Please try again.")
            numbers = sorted(ticket_numbers)
        else:
            locked = await self.locks.list_locked_ticket_numbers(competition_id)
            current = await self.locks.get_reservation(competition_id, user_id)
            own = set(current.ticket_numbers) if current else set()
            numbers = allocate_ticket_numbers(competition.total_tickets, sold | (locked - own), quantity)

        return await self.locks.require_reserve(competition_id, user_id, numbers)

    async def release(self, competition_id: str, user_id: str) -> Optional[Reservation]:
        reservation = await self.locks.release(competition_id, user_id, reason="user_cancelled")
        if reservation:
            reservations_released.labels(reason="user_cancelled").inc()
        return reservation

    async def ticket_status(self, competition_id: str, user_id: Optional[str] = None) -> TicketStatusResponse:
        competition = await self.competitions.get_competition(competition_id)
        if competition is None:
            raise CompetitionNotFoundError()

        sold = await self.competitions.sold_ticket_numbers(competition_id)
        locked = await self.locks.list_locked_ticket_numbers(competition_id)
        unavailable = len(sold | locked)
        reservation = await self.locks.get_reservation(competition_id, user_id) if user_id else None

        return TicketStatusResponse(
            total_tickets=competition.total_tickets,
            available_count=max(0, competition.total_tickets - unavailable),
            unavailable_count=unavailable,
            user_reservation=reservation,
        )

    async def _keep_reservation_alive(
        self, competition_id: str, user_id: str, ticket_numbers: Optional[list[int]]
    ) -> Optional[ReserveResult]:
        result = await self.locks.extend(competition_id, user_id)
        if result is None and ticket_numbers:
            logger.info("reservation_recreated", competition_id=competition_id, user_id=user_id)
            return await self.locks.require_reserve(competition_id, user_id, ticket_numbers)
        if result is None:
            raise ValidationError(NO_RESERVATION_MESSAGE)
        if not result.success:
            # A lapsed lock went to another buyer; the record must not keep pointing at it
            await self.locks.release(competition_id, user_id, reason="extend_conflict")
            reservations_released.labels(reason="extend_conflict").inc()
            raise ConflictError(result.conflicting_tickets)
        return result

    async def validate_answer(
        self,
        competition_id: str,
        identifier: str,
        answer: int,
        user_id: Optional[str] = None,
        ticket_numbers: Optional[list[int]] = None,
        captcha_token: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> ValidateAnswerResponse:
        """
        Check a skill-question answer for identifier (user id, or ip:... for guests).

        Authenticated users must hold a reservation, which is extended so the
        countdown does not run out mid-checkout.
        """
        if captcha_token and self.captcha:
            captcha = await self.captcha.verify(captcha_token, ip)
            if not captcha.success:
                raise ValidationError(captcha.error)

        await self.tracker.require_not_blocked(competition_id, identifier)

        if await self.tracker.has_passed(competition_id, identifier):
            return ValidateAnswerResponse(
                correct=True,
                already_passed=True,
                message="You have already answered correctly.",
            )

        expires_at = None
        if user_id:
            kept = await self._keep_reservation_alive(competition_id, user_id, ticket_numbers)
            expires_at = kept.expires_at

        competition = await self._active_competition(competition_id)

        if answer == competition.question_answer:
            await self.tracker.mark_passed(competition_id, identifier)
            record_skill_question("correct")
            return ValidateAnswerResponse(
                correct=True,
                message="Correct! You can now proceed to checkout.",
                expires_at=expires_at,
            )

        result = await self.tracker.record_attempt(competition_id, identifier)
        if result.blocked:
            record_skill_question("blocked")
            minutes = -(-self.tracker.lockout_seconds // 60)
            return ValidateAnswerResponse(
                correct=False,
                blocked=True,
                block_until=result.block_until,
                attempts_remaining=0,
                message=f"Too many incorrect attempts. Please wait {minutes} minutes before trying again.",
            )

        record_skill_question("incorrect")
        remaining = result.max_attempts - result.attempts
        return ValidateAnswerResponse(
            correct=False,
            blocked=False,
            attempts_remaining=remaining,
            message=f"Incorrect answer. {remaining} attempt{'' if remaining == 1 else 's'} remaining.",
        )

    async def question_status(self, competition_id: str, identifier: str) -> QuestionStatusResponse:
        max_attempts = self.tracker.max_attempts
        if await self.tracker.has_passed(competition_id, identifier):
            return QuestionStatusResponse(passed=True, blocked=False, attempts_remaining=max_attempts)

        status = await self.tracker.check_blocked(competition_id, identifier)
        return QuestionStatusResponse(
            passed=False,
            blocked=status.blocked,
            remaining_time=status.remaining_time if status.blocked else 0,
            attempts_remaining=max(0, max_attempts - status.attempts),
        )

    async def begin_checkout(
        self,
        competition_id: str,
        user_id: str,
        ip: str = "unknown",
        ticket_numbers: Optional[list[int]] = None,
    ) -> Reservation:
        """Gate payment: rate limit, passed skill question, live reservation."""
        await self.limiter.enforce("checkout", f"{user_id}:{ip}")
        await self._active_competition(competition_id)

        if not await self.tracker.has_passed(competition_id, user_id):
            raise ValidationError("Please answer the skill question before checking out")

        await self._keep_reservation_alive(competition_id, user_id, ticket_numbers)
        reservation = await self.locks.get_reservation(competition_id, user_id)
        if reservation is None:
            raise ValidationError(NO_RESERVATION_MESSAGE)
        return reservation

    async def complete_order(self, competition_id: str, user_id: str) -> Optional[Reservation]:
        """
        Drop the locks once the order system has durably recorded the sale.
        Safe to call more than once (webhook retries).
        """
        reservation = await self.locks.release(competition_id, user_id, reason="order_completed")
        if reservation:
            reservations_released.labels(reason="order_completed").inc()
        return reservation
