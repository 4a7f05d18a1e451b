"""
Skill-question attempt throttling.

Per (competition, user) the store holds three independent TTL keys:

  qcm-attempts  counter, TTL = lockout window, set on the first increment
  qcm-block     present while the user is locked out, TTL = lockout window
  qcm-passed    present once the user answered correctly, TTL ~1 hour

State machine:
  Unanswered --correct--> Passed
  Unanswered --incorrect, count < max--> Unanswered(count + 1)
  Unanswered --incorrect, count = max--> Blocked
  Blocked / Passed --TTL expiry--> Unanswered

A blocked user's further submissions do not increment anything, so they
cannot extend their own block.
"""

import time
from typing import Callable

from prize_reservations.core.exceptions import LockoutError
from prize_reservations.core.logging import get_logger
from prize_reservations.infrastructure.keys import qcm_attempts_key, qcm_block_key, qcm_passed_key
from prize_reservations.infrastructure.store import KeyValueStore
from prize_reservations.schemas.skill_question import AttemptResult, BlockStatus

logger = get_logger(__name__)


class SkillQuestionTracker:

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: int = 3,
        lockout_seconds: int = 900,
        passed_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.passed_ttl_seconds = passed_ttl_seconds
        self.clock = clock

    async def record_attempt(self, competition_id: str, user_id: str) -> AttemptResult:
        """Count one incorrect answer, blocking the user once max_attempts is reached."""
        attempts_key = qcm_attempts_key(competition_id, user_id)
        block_key = qcm_block_key(competition_id, user_id)

        if await self.store.exists(block_key):
            return AttemptResult(attempts=self.max_attempts, max_attempts=self.max_attempts, blocked=True)

        attempts = await self.store.increment(attempts_key)
        if attempts == 1:
            await self.store.expire(attempts_key, self.lockout_seconds)

        if attempts >= self.max_attempts:
            await self.store.set(block_key, "1", self.lockout_seconds)
            block_until = int(self.clock() * 1000) + self.lockout_seconds * 1000
            logger.warning(
                "skill_question_blocked",
                competition_id=competition_id,
                user_id=user_id,
                attempts=attempts,
                block_until=block_until,
            )
            return AttemptResult(
                attempts=attempts,
                max_attempts=self.max_attempts,
                blocked=True,
                block_until=block_until,
            )

        return AttemptResult(attempts=attempts, max_attempts=self.max_attempts, blocked=False)

    async def check_blocked(self, competition_id: str, user_id: str) -> BlockStatus:
        """
        Read-only block check.

        remaining_time is the block flag's real TTL when the backend reports
        one, otherwise the full lockout window.
        """
        block_key = qcm_block_key(competition_id, user_id)

        if await self.store.exists(block_key):
            remaining = await self.store.ttl(block_key)
            return BlockStatus(
                blocked=True,
                remaining_time=remaining if remaining is not None else self.lockout_seconds,
                attempts=self.max_attempts,
            )

        return BlockStatus(
            blocked=False,
            remaining_time=0,
            attempts=await self.attempts(competition_id, user_id),
        )

    async def require_not_blocked(self, competition_id: str, user_id: str) -> BlockStatus:
        status = await self.check_blocked(competition_id, user_id)
        if status.blocked:
            raise LockoutError(status.remaining_time)
        return status

    async def attempts(self, competition_id: str, user_id: str) -> int:
        value = await self.store.get(qcm_attempts_key(competition_id, user_id))
        try:
            return int(value) if value is not None else 0
        except ValueError:
            return 0

    async def mark_passed(self, competition_id: str, user_id: str) -> None:
        await self.store.set(qcm_passed_key(competition_id, user_id), "1", self.passed_ttl_seconds)
        logger.info("skill_question_passed", competition_id=competition_id, user_id=user_id)

    async def has_passed(self, competition_id: str, user_id: str) -> bool:
        return await self.store.exists(qcm_passed_key(competition_id, user_id))
