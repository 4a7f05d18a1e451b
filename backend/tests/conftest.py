"""
Pytest fixtures for the store, services, and HTTP client.

Every test gets its own in-process fake Redis server, so no state leaks
between tests and no Redis instance is needed.
"""

from typing import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from prize_reservations.core.config import Settings
from prize_reservations.infrastructure.store import RedisStore
from prize_reservations.main import create_app
from prize_reservations.services.interfaces.competitions import Competition
from prize_reservations.services.interfaces.memory_competitions import InMemoryCompetitionDirectory
from prize_reservations.services.rate_limiter import RateLimiter
from prize_reservations.services.skill_question_service import SkillQuestionTracker
from prize_reservations.services.ticket_lock_service import TicketLockManager

COMPETITION_ID = "comp-1"


class FakeClock:
    """Controllable time source for sliding windows."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def store(redis_server) -> AsyncGenerator[RedisStore, None]:
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield RedisStore(client)
    await client.aclose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def locks(store) -> TicketLockManager:
    return TicketLockManager(store, ttl_seconds=600)


@pytest.fixture
def tracker(store, clock) -> SkillQuestionTracker:
    return SkillQuestionTracker(store, max_attempts=3, lockout_seconds=900, passed_ttl_seconds=3600, clock=clock)


@pytest.fixture
def limiter(store, clock) -> RateLimiter:
    return RateLimiter(store, Settings().RATE_LIMITS, clock=clock)


@pytest.fixture
def competition() -> Competition:
    """100 tickets, correct answer 2."""
    return Competition(
        id=COMPETITION_ID,
        status="ACTIVE",
        total_tickets=100,
        max_tickets_per_user=20,
        question_answer=2,
    )


@pytest.fixture
def competitions(competition) -> InMemoryCompetitionDirectory:
    closed = Competition(
        id="comp-closed",
        status="DRAWN",
        total_tickets=10,
        max_tickets_per_user=5,
        question_answer=1,
    )
    return InMemoryCompetitionDirectory([competition, closed])


@pytest_asyncio.fixture
async def client(store, competitions) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app wired to the fake store."""
    app = create_app(store=store, competitions=competitions, settings=Settings())
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def user_a() -> dict:
    return {"X-User-Id": "user-a"}


@pytest.fixture
def user_b() -> dict:
    return {"X-User-Id": "user-b"}
