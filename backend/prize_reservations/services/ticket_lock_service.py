"""
Ticket lock manager with race-safe, TTL-bounded reservations.

CONCURRENCY STRATEGY: Per-ticket SET NX with all-or-nothing rollback
====================================================================

Problem:
  Two buyers check out the same ticket number at the same time.
  Both see it free, both get sold it. Result: double booking.

Solution:
  Every ticket number has its own lock key, ticket-lock:{competition}:{number},
  whose value is the owner id. A reservation acquires its numbers one by one:

  1. Lock already ours        -> remember it (idempotent retry)
  2. Lock held by someone else -> conflict, never stolen
  3. No lock                   -> SET NX EX (lock and TTL in one command).
                                  Lost the race: re-read the owner, ours ->
                                  remember it, else conflict

  If anything conflicts, every lock created by THIS call is deleted before
  returning (locks held from an earlier call are left alone and keep their
  old TTL, so they still expire together with the reservation that lists
  them). Only when every number is held are the remembered locks refreshed
  and reservation:{competition}:{user} written with the same TTL.

  A remembered lock can lapse before its refresh. It is then re-acquired with
  SET NX EX; if another buyer got there first the call conflicts late, and the
  existing reservation record is pushed to the same TTL as the locks that were
  already refreshed.

  Correctness depends solely on the atomic SET NX. The GET before it only
  saves a write when we already own the lock.

  This approach:
  - No global mutex over a competition; unrelated tickets never contend
  - "A reservation is all-or-nothing" is the only multi-key invariant
  - Abandoned reservations heal themselves when their TTL lapses; no
    in-process timer, so correctness survives a crashed application

  Rollback and release use one pipeline. Its deletes are not atomic as a set;
  the worst case is a stray lock that expires on its own TTL.

Alternatives considered:
  - A Lua script acquiring all numbers at once: atomic, but the Upstash REST
    backend and the local backend would need separate script handling.
  - One lock per competition: serializes every checkout for popular draws.
"""

import asyncio
import time
from typing import Callable, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from prize_reservations.core.exceptions import ConflictError, StoreUnavailableError, ValidationError
from prize_reservations.core.logging import get_logger
from prize_reservations.core.metrics import (
    lock_rollbacks,
    record_reservation_attempt,
    reservation_latency,
)
from prize_reservations.infrastructure.keys import (
    TICKET_LOCK_PREFIX,
    reservation_key,
    ticket_lock_key,
    ticket_lock_pattern,
)
from prize_reservations.infrastructure.store import KeyValueStore
from prize_reservations.schemas.reservation import Reservation, ReserveResult

logger = get_logger(__name__)

DEFAULT_RESERVATION_TTL = 600


def validate_ticket_numbers(ticket_numbers: Iterable[int]) -> list[int]:
    numbers = list(ticket_numbers)
    if not numbers:
        raise ValidationError("At least one ticket number is required")
    for n in numbers:
        if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
            raise ValidationError(f"Invalid ticket number: {n!r}")
    if len(set(numbers)) != len(numbers):
        raise ValidationError("Ticket numbers must be unique")
    return numbers


class TicketLockManager:
    """Per-ticket locks plus one reservation record per (competition, user)."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_RESERVATION_TTL,
        scan_page_size: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.scan_page_size = scan_page_size
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def reserve(self, competition_id: str, user_id: str, ticket_numbers: Iterable[int]) -> ReserveResult:
        """
        Lock every requested number for user_id, or none of them.

        Returns success with expires_at (epoch ms), or failure listing the
        conflicting numbers. Store errors roll back and propagate.
        """
        numbers = validate_ticket_numbers(ticket_numbers)
        start = time.perf_counter()

        created: list[str] = []  # lock keys this call created; the only ones rolled back
        held: dict[int, str] = {}  # already ours, refreshed only once everything is acquired
        conflicting: list[int] = []

        try:
            for number in numbers:
                lock_key = ticket_lock_key(competition_id, number)

                owner = await self.store.get(lock_key)
                if owner == user_id:
                    held[number] = lock_key
                    continue
                if owner is not None:
                    conflicting.append(number)
                    continue

                if await self.store.set_if_not_exists(lock_key, user_id, self.ttl_seconds):
                    created.append(lock_key)
                    continue

                # Lost the race between GET and SET NX
                if await self.store.get(lock_key) == user_id:
                    held[number] = lock_key
                else:
                    conflicting.append(number)

            if not conflicting:
                refreshed, conflicting = await self._refresh_held(user_id, held, created)
                if conflicting and refreshed:
                    await self.store.expire(reservation_key(competition_id, user_id), self.ttl_seconds)

            if conflicting:
                await self._rollback(competition_id, user_id, created)
                record_reservation_attempt("conflict")
                logger.info(
                    "reservation_conflict",
                    competition_id=competition_id,
                    user_id=user_id,
                    requested=len(numbers),
                    conflicting=conflicting,
                )
                return ReserveResult(success=False, conflicting_tickets=conflicting)

            reservation = await self._write_reservation(competition_id, user_id, numbers)

        except StoreUnavailableError:
            record_reservation_attempt("error")
            try:
                await self._rollback(competition_id, user_id, created)
            except StoreUnavailableError as rollback_error:
                logger.error(
                    "reservation_rollback_failed",
                    competition_id=competition_id,
                    user_id=user_id,
                    stranded_locks=len(created),
                    error=str(rollback_error),
                )
            raise
        finally:
            reservation_latency.observe(time.perf_counter() - start)

        record_reservation_attempt("success")
        logger.info(
            "tickets_reserved",
            competition_id=competition_id,
            user_id=user_id,
            ticket_count=len(numbers),
            newly_locked=len(created),
            expires_at=reservation.expires_at,
        )
        return ReserveResult(
            success=True,
            expires_at=reservation.expires_at,
            ticket_numbers=reservation.ticket_numbers,
        )

    async def require_reserve(self, competition_id: str, user_id: str, ticket_numbers: Iterable[int]) -> ReserveResult:
        """reserve(), raising ConflictError instead of returning a failed result."""
        result = await self.reserve(competition_id, user_id, ticket_numbers)
        if not result.success:
            raise ConflictError(result.conflicting_tickets)
        return result

    async def _refresh_held(
        self, user_id: str, held: dict[int, str], created: list[str]
    ) -> tuple[int, list[int]]:
        """
        Restart the TTL of locks we already owned. A lock that lapsed since it
        was read is re-acquired and added to created.

        Returns (number refreshed, numbers lost to another buyer).
        """
        refreshed = 0
        lost: list[int] = []
        for number, lock_key in held.items():
            if await self.store.expire(lock_key, self.ttl_seconds):
                refreshed += 1
            elif await self.store.set_if_not_exists(lock_key, user_id, self.ttl_seconds):
                created.append(lock_key)
            elif await self.store.get(lock_key) != user_id:
                lost.append(number)
        return refreshed, lost

    async def _rollback(self, competition_id: str, user_id: str, lock_keys: list[str]) -> None:
        if not lock_keys:
            return
        batch = self.store.pipeline()
        for lock_key in lock_keys:
            batch.delete(lock_key)
        await batch.execute()
        lock_rollbacks.inc(len(lock_keys))
        logger.info(
            "reservation_rolled_back",
            competition_id=competition_id,
            user_id=user_id,
            released=len(lock_keys),
        )

    async def _write_reservation(self, competition_id: str, user_id: str, numbers: list[int]) -> Reservation:
        reserved_at = self._now_ms()
        reservation = Reservation(
            user_id=user_id,
            competition_id=competition_id,
            ticket_numbers=sorted(numbers),
            reserved_at=reserved_at,
            expires_at=reserved_at + self.ttl_seconds * 1000,
        )

        # Numbers dropped from an earlier reservation must not keep a lock
        # that no reservation points to.
        previous = await self.get_reservation(competition_id, user_id)
        dropped = set(previous.ticket_numbers) - set(numbers) if previous else set()
        owners = await self.lock_owners(competition_id, sorted(dropped))

        batch = self.store.pipeline()
        batch.set(
            reservation_key(competition_id, user_id),
            reservation.model_dump_json(by_alias=True),
            self.ttl_seconds,
        )
        for number, owner in owners.items():
            if owner == user_id:
                batch.delete(ticket_lock_key(competition_id, number))
        await batch.execute()
        return reservation

    async def release(self, competition_id: str, user_id: str, reason: str = "user_cancelled") -> Optional[Reservation]:
        """
        Delete the reservation and its locks. Safe to repeat and safe after expiry.

        Only locks still owned by user_id are deleted, so a lock that lapsed and
        was taken by another buyer is left alone. Returns the released
        reservation, or None when there was nothing to release.
        """
        reservation = await self.get_reservation(competition_id, user_id)
        if reservation is None:
            return None

        owners = await self.lock_owners(competition_id, reservation.ticket_numbers)

        batch = self.store.pipeline()
        batch.delete(reservation_key(competition_id, user_id))
        for number, owner in owners.items():
            if owner == user_id:
                batch.delete(ticket_lock_key(competition_id, number))
        await batch.execute()

        logger.info(
            "reservation_released",
            competition_id=competition_id,
            user_id=user_id,
            ticket_numbers=reservation.ticket_numbers,
            reason=reason,
        )
        return reservation

    async def extend(self, competition_id: str, user_id: str) -> Optional[ReserveResult]:
        """
        Restart the TTL of an existing reservation.

        Re-runs reserve() over the held numbers, which also re-acquires any
        lock that lapsed in the meantime. None when there is no reservation.
        """
        reservation = await self.get_reservation(competition_id, user_id)
        if reservation is None:
            return None
        return await self.reserve(competition_id, user_id, reservation.ticket_numbers)

    async def get_reservation(self, competition_id: str, user_id: str) -> Optional[Reservation]:
        data = await self.store.get(reservation_key(competition_id, user_id))
        if not data:
            return None
        try:
            return Reservation.model_validate_json(data)
        except PydanticValidationError:
            logger.error("reservation_record_invalid", competition_id=competition_id, user_id=user_id)
            return None

    async def is_locked(self, competition_id: str, ticket_number: int, excluding_user_id: Optional[str] = None) -> bool:
        owner = await self.store.get(ticket_lock_key(competition_id, ticket_number))
        if owner is None:
            return False
        if excluding_user_id is not None and owner == excluding_user_id:
            return False
        return True

    async def list_locked_ticket_numbers(self, competition_id: str) -> set[int]:
        """
        Snapshot of locked numbers via cursor SCAN.

        Advisory only: locks may appear or expire mid-scan. Final conflict
        detection always happens in reserve().
        """
        pattern = ticket_lock_pattern(competition_id)
        prefix = f"{TICKET_LOCK_PREFIX}:{competition_id}:"
        locked: set[int] = set()

        cursor = 0
        while True:
            cursor, keys = await self.store.scan(cursor, pattern, self.scan_page_size)
            for key in keys:
                suffix = key[len(prefix):] if key.startswith(prefix) else ""
                if suffix.isdigit():
                    locked.add(int(suffix))
            if cursor == 0:
                break

        return locked

    async def lock_owners(self, competition_id: str, ticket_numbers: Iterable[int]) -> dict[int, Optional[str]]:
        """Current owner per ticket number (None when free)."""
        numbers = list(ticket_numbers)
        owners = await asyncio.gather(
            *(self.store.get(ticket_lock_key(competition_id, n)) for n in numbers)
        )
        return dict(zip(numbers, owners))
