"""
Tests for checkout orchestration: reserve, skill question, checkout gate.
"""

import pytest
import pytest_asyncio

from prize_reservations.core.exceptions import (
    CompetitionNotFoundError,
    ConflictError,
    LockoutError,
    RateLimitedError,
    ValidationError,
)
from prize_reservations.infrastructure.keys import ticket_lock_key
from prize_reservations.services.captcha import CaptchaResult
from prize_reservations.services.checkout_service import NO_RESERVATION_MESSAGE, CheckoutService

COMP = "comp-1"


class StubCaptcha:
    def __init__(self, success: bool):
        self.success = success
        self.calls = []

    async def verify(self, token, ip=None):
        self.calls.append((token, ip))
        if self.success:
            return CaptchaResult(success=True)
        return CaptchaResult(success=False, error="Captcha verification failed. Please try again.")


@pytest_asyncio.fixture
async def checkout(locks, tracker, limiter, competitions) -> CheckoutService:
    return CheckoutService(locks, tracker, limiter, competitions)


class TestReserveTickets:

    @pytest.mark.asyncio
    async def test_quantity_picks_free_numbers(self, checkout, locks):
        result = await checkout.reserve_tickets(COMP, "alice", quantity=5)

        assert result.success is True
        assert len(result.ticket_numbers) == 5
        assert all(1 <= n <= 100 for n in result.ticket_numbers)
        assert await locks.list_locked_ticket_numbers(COMP) == set(result.ticket_numbers)

    @pytest.mark.asyncio
    async def test_quantity_avoids_sold_and_locked(self, checkout, competitions, locks):
        competitions.mark_sold(COMP, "carol", range(1, 50))
        await locks.reserve(COMP, "bob", list(range(50, 96)))

        result = await checkout.reserve_tickets(COMP, "alice", quantity=5)

        assert result.ticket_numbers == [96, 97, 98, 99, 100]

    @pytest.mark.asyncio
    async def test_quantity_may_reuse_own_locks(self, checkout, locks):
        """The caller's current hold counts as free when re-picking."""
        await locks.reserve(COMP, "alice", list(range(1, 96)))
        await locks.reserve(COMP, "bob", [96, 97, 98, 99, 100])

        result = await checkout.reserve_tickets(COMP, "alice", quantity=3)

        assert result.success is True
        assert all(n <= 95 for n in result.ticket_numbers)

    @pytest.mark.asyncio
    async def test_explicit_numbers(self, checkout):
        result = await checkout.reserve_tickets(COMP, "alice", ticket_numbers=[9, 4])
        assert result.ticket_numbers == [4, 9]

    @pytest.mark.asyncio
    async def test_explicit_numbers_held_by_other_conflict(self, checkout):
        await checkout.reserve_tickets(COMP, "alice", ticket_numbers=[4])

        with pytest.raises(ConflictError) as exc_info:
            await checkout.reserve_tickets(COMP, "bob", ticket_numbers=[3, 4])
        assert exc_info.value.conflicting_tickets == [4]

    @pytest.mark.asyncio
    async def test_explicit_numbers_already_sold(self, checkout, competitions, store):
        competitions.mark_sold(COMP, "carol", [7])

        with pytest.raises(ConflictError) as exc_info:
            await checkout.reserve_tickets(COMP, "alice", ticket_numbers=[6, 7])
        assert exc_info.value.conflicting_tickets == [7]
        assert await store.get(ticket_lock_key(COMP, 6)) is None

    @pytest.mark.asyncio
    async def test_out_of_range_numbers(self, checkout):
        with pytest.raises(ValidationError):
            await checkout.reserve_tickets(COMP, "alice", ticket_numbers=[101])

    @pytest.mark.asyncio
    async def test_requires_exactly_one_selection(self, checkout):
        with pytest.raises(ValidationError):
            await checkout.reserve_tickets(COMP, "alice")
        with pytest.raises(ValidationError):
            await checkout.reserve_tickets(COMP, "alice", quantity=1, ticket_numbers=[1])

    @pytest.mark.asyncio
    async def test_per_user_allowance(self, checkout, competitions):
        competitions.mark_sold(COMP, "alice", range(1, 19))

        with pytest.raises(ValidationError) as exc_info:
            await checkout.reserve_tickets(COMP, "alice", quantity=3)
        assert "2 more tickets" in exc_info.value.message

        competitions.mark_sold(COMP, "alice", [19, 20])
        with pytest.raises(ValidationError) as exc_info:
            await checkout.reserve_tickets(COMP, "alice", quantity=1)
        assert "maximum of 20" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_per_request_bound(self, locks, tracker, limiter, competitions):
        checkout = CheckoutService(locks, tracker, limiter, competitions, max_tickets_per_request=3)

        with pytest.raises(ValidationError):
            await checkout.reserve_tickets(COMP, "alice", quantity=4)

    @pytest.mark.asyncio
    async def test_unknown_and_inactive_competitions(self, checkout):
        with pytest.raises(CompetitionNotFoundError):
            await checkout.reserve_tickets("missing", "alice", quantity=1)
        with pytest.raises(ValidationError):
            await checkout.reserve_tickets("comp-closed", "alice", quantity=1)

    @pytest.mark.asyncio
    async def test_rate_limited_after_ten_calls(self, checkout):
        for n in range(1, 11):
            await checkout.reserve_tickets(COMP, "alice", ip="1.2.3.4", ticket_numbers=[n])

        with pytest.raises(RateLimitedError):
            await checkout.reserve_tickets(COMP, "alice", ip="1.2.3.4", ticket_numbers=[11])

        # Different IP is a different identifier
        result = await checkout.reserve_tickets(COMP, "alice", ip="5.6.7.8", ticket_numbers=[11])
        assert result.success is True


class TestTicketStatus:

    @pytest.mark.asyncio
    async def test_counts_sold_and_locked(self, checkout, competitions, locks):
        competitions.mark_sold(COMP, "carol", [1, 2])
        await locks.reserve(COMP, "alice", [2, 3, 4])

        status = await checkout.ticket_status(COMP, "alice")

        assert status.total_tickets == 100
        assert status.unavailable_count == 4
        assert status.available_count == 96
        assert status.user_reservation.ticket_numbers == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_unknown_competition(self, checkout):
        with pytest.raises(CompetitionNotFoundError):
            await checkout.ticket_status("missing")


class TestValidateAnswer:

    @pytest.mark.asyncio
    async def test_correct_answer_passes_and_extends(self, checkout, locks):
        await locks.reserve(COMP, "alice", [1, 2])

        response = await checkout.validate_answer(COMP, "alice", 2, user_id="alice")

        assert response.correct is True
        assert response.expires_at is not None
        assert await checkout.tracker.has_passed(COMP, "alice") is True

    @pytest.mark.asyncio
    async def test_already_passed_short_circuits(self, checkout, locks):
        await locks.reserve(COMP, "alice", [1])
        await checkout.validate_answer(COMP, "alice", 2, user_id="alice")

        response = await checkout.validate_answer(COMP, "alice", 0, user_id="alice")

        assert response.correct is True
        assert response.already_passed is True

    @pytest.mark.asyncio
    async def test_incorrect_answers_then_block(self, checkout, locks):
        await locks.reserve(COMP, "alice", [1])

        first = await checkout.validate_answer(COMP, "alice", 0, user_id="alice")
        second = await checkout.validate_answer(COMP, "alice", 0, user_id="alice")
        third = await checkout.validate_answer(COMP, "alice", 0, user_id="alice")

        assert first.message == "Incorrect answer. 2 attempts remaining."
        assert second.message == "Incorrect answer. 1 attempt remaining."
        assert third.blocked is True
        assert third.message == "Too many incorrect attempts. Please wait 15 minutes before trying again."

        with pytest.raises(LockoutError):
            await checkout.validate_answer(COMP, "alice", 2, user_id="alice")

    @pytest.mark.asyncio
    async def test_guest_tracked_by_identifier_without_reservation(self, checkout):
        response = await checkout.validate_answer(COMP, "ip:1.2.3.4", 0)

        assert response.correct is False
        assert response.attempts_remaining == 2

    @pytest.mark.asyncio
    async def test_user_without_reservation_rejected(self, checkout):
        with pytest.raises(ValidationError) as exc_info:
            await checkout.validate_answer(COMP, "alice", 2, user_id="alice")
        assert exc_info.value.message == NO_RESERVATION_MESSAGE

    @pytest.mark.asyncio
    async def test_lapsed_reservation_recreated_from_client_numbers(self, checkout, locks):
        response = await checkout.validate_answer(COMP, "alice", 2, user_id="alice", ticket_numbers=[8, 9])

        assert response.correct is True
        assert (await locks.get_reservation(COMP, "alice")).ticket_numbers == [8, 9]

    @pytest.mark.asyncio
    async def test_extend_conflict_releases_reservation(self, checkout, locks, store):
        """A lapsed lock taken by someone else fails the answer and drops the hold."""
        await locks.reserve(COMP, "alice", [1, 2])
        await store.delete(ticket_lock_key(COMP, 2))
        await locks.reserve(COMP, "bob", [2])

        with pytest.raises(ConflictError) as exc_info:
            await checkout.validate_answer(COMP, "alice", 2, user_id="alice")

        assert exc_info.value.conflicting_tickets == [2]
        assert await locks.get_reservation(COMP, "alice") is None
        assert await locks.list_locked_ticket_numbers(COMP) == {2}

    @pytest.mark.asyncio
    async def test_failed_captcha(self, locks, tracker, limiter, competitions):
        captcha = StubCaptcha(success=False)
        checkout = CheckoutService(locks, tracker, limiter, competitions, captcha=captcha)

        with pytest.raises(ValidationError):
            await checkout.validate_answer(COMP, "ip:1.2.3.4", 2, captcha_token="tok", ip="1.2.3.4")
        assert captcha.calls == [("tok", "1.2.3.4")]
        assert await tracker.attempts(COMP, "ip:1.2.3.4") == 0

    @pytest.mark.asyncio
    async def test_question_status(self, checkout):
        await checkout.validate_answer(COMP, "ip:1.2.3.4", 0)

        status = await checkout.question_status(COMP, "ip:1.2.3.4")

        assert status.passed is False
        assert status.blocked is False
        assert status.attempts_remaining == 2


class TestBeginCheckout:

    @pytest.mark.asyncio
    async def test_requires_passed_question(self, checkout, locks):
        await locks.reserve(COMP, "alice", [1])

        with pytest.raises(ValidationError):
            await checkout.begin_checkout(COMP, "alice")

    @pytest.mark.asyncio
    async def test_returns_extended_reservation(self, checkout, locks):
        await locks.reserve(COMP, "alice", [1, 2])
        await checkout.validate_answer(COMP, "alice", 2, user_id="alice")

        reservation = await checkout.begin_checkout(COMP, "alice")

        assert reservation.ticket_numbers == [1, 2]

    @pytest.mark.asyncio
    async def test_checkout_rate_limited(self, checkout, locks):
        await locks.reserve(COMP, "alice", [1])
        await checkout.validate_answer(COMP, "alice", 2, user_id="alice")
        for _ in range(5):
            await checkout.begin_checkout(COMP, "alice")

        with pytest.raises(RateLimitedError):
            await checkout.begin_checkout(COMP, "alice")


class TestCompleteOrder:

    @pytest.mark.asyncio
    async def test_releases_locks_and_is_repeatable(self, checkout, locks, competitions):
        await locks.reserve(COMP, "alice", [1, 2])
        competitions.mark_sold(COMP, "alice", [1, 2])

        released = await checkout.complete_order(COMP, "alice")

        assert released.ticket_numbers == [1, 2]
        assert await locks.list_locked_ticket_numbers(COMP) == set()
        assert await checkout.complete_order(COMP, "alice") is None
