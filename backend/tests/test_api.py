"""
HTTP-level tests for the reservation API.
"""

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient

from prize_reservations.core.config import Settings
from prize_reservations.infrastructure.store import RedisStore
from prize_reservations.main import create_app, default_competitions

COMP = "comp-1"


class TestReserveEndpoint:

    @pytest.mark.asyncio
    async def test_reserve_by_quantity(self, client, user_a):
        response = await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "quantity": 3},
            headers=user_a,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert len(data["ticketNumbers"]) == 3
        assert data["ttl"] == 600
        assert data["expiresAt"] > 0

    @pytest.mark.asyncio
    async def test_reserve_requires_user(self, client):
        response = await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "quantity": 1},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_conflict_returns_409_with_tickets(self, client, user_a, user_b):
        await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [5, 6]},
            headers=user_a,
        )

        response = await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [1, 6]},
            headers=user_b,
        )

        assert response.status_code == 409
        assert response.json()["conflictingTickets"] == [6]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"competitionId": COMP},
            {"competitionId": COMP, "quantity": 0},
            {"competitionId": COMP, "quantity": 51},
            {"competitionId": COMP, "ticketNumbers": []},
            {"competitionId": COMP, "ticketNumbers": [1, 1]},
            {"competitionId": COMP, "ticketNumbers": [0]},
            {"competitionId": COMP, "quantity": 1, "ticketNumbers": [1]},
        ],
    )
    async def test_invalid_body_returns_400(self, client, user_a, body):
        response = await client.post("/api/v1/tickets/reserve", json=body, headers=user_a)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request data"}

    @pytest.mark.asyncio
    async def test_unknown_competition_returns_404(self, client, user_a):
        response = await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": "missing", "quantity": 1},
            headers=user_a,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_rate_limit_returns_429(self, client, user_a):
        for n in range(1, 11):
            response = await client.post(
                "/api/v1/tickets/reserve",
                json={"competitionId": COMP, "ticketNumbers": [n]},
                headers=user_a,
            )
            assert response.status_code == 200

        response = await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [11]},
            headers=user_a,
        )

        assert response.status_code == 429
        assert response.json()["bucket"] == "ticket-reserve"
        assert "Retry-After" in response.headers


class TestReservationLifecycle:

    @pytest.mark.asyncio
    async def test_get_then_release(self, client, user_a):
        await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [3, 1]},
            headers=user_a,
        )

        response = await client.get(
            "/api/v1/tickets/reservation", params={"competitionId": COMP}, headers=user_a
        )
        assert response.status_code == 200
        assert response.json()["ticketNumbers"] == [1, 3]
        assert response.json()["userId"] == "user-a"

        response = await client.post(
            "/api/v1/tickets/release", json={"competitionId": COMP}, headers=user_a
        )
        assert response.json() == {"success": True}

        response = await client.get(
            "/api/v1/tickets/reservation", params={"competitionId": COMP}, headers=user_a
        )
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_status_counts(self, client, user_a, user_b):
        await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [1, 2]},
            headers=user_a,
        )

        response = await client.post(
            "/api/v1/tickets/status", json={"competitionId": COMP}, headers=user_b
        )

        data = response.json()
        assert data["totalTickets"] == 100
        assert data["availableCount"] == 98
        assert data["unavailableCount"] == 2
        assert data["userReservation"] is None


class TestSkillQuestionEndpoints:

    @pytest.mark.asyncio
    async def test_guest_wrong_answers_then_locked_out(self, client):
        for expected in (2, 1):
            response = await client.post(
                "/api/v1/qcm/validate", json={"competitionId": COMP, "answer": 0}
            )
            assert response.status_code == 200
            assert response.json()["attemptsRemaining"] == expected

        response = await client.post("/api/v1/qcm/validate", json={"competitionId": COMP, "answer": 0})
        assert response.json()["blocked"] is True
        assert "blockUntil" in response.json()

        response = await client.post("/api/v1/qcm/validate", json={"competitionId": COMP, "answer": 2})
        assert response.status_code == 429
        assert response.json()["blocked"] is True
        assert 0 < response.json()["remainingTime"] <= 900

        response = await client.get("/api/v1/qcm/validate", params={"competitionId": COMP})
        assert response.json()["blocked"] is True
        assert response.json()["attemptsRemaining"] == 0

    @pytest.mark.asyncio
    async def test_user_answers_and_checks_out(self, client, user_a):
        await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [10]},
            headers=user_a,
        )

        response = await client.post(
            "/api/v1/qcm/validate", json={"competitionId": COMP, "answer": 2}, headers=user_a
        )
        assert response.status_code == 200
        assert response.json()["correct"] is True
        assert "expiresAt" in response.json()

        response = await client.get(
            "/api/v1/qcm/validate", params={"competitionId": COMP}, headers=user_a
        )
        assert response.json()["passed"] is True

        response = await client.post(
            "/api/v1/checkout/session", json={"competitionId": COMP}, headers=user_a
        )
        assert response.status_code == 200
        assert response.json()["ticketNumbers"] == [10]

    @pytest.mark.asyncio
    async def test_user_without_reservation_gets_400(self, client, user_a):
        response = await client.post(
            "/api/v1/qcm/validate", json={"competitionId": COMP, "answer": 2}, headers=user_a
        )

        assert response.status_code == 400
        assert "No active ticket reservation" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_answer_out_of_range(self, client):
        response = await client.post("/api/v1/qcm/validate", json={"competitionId": COMP, "answer": 7})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_checkout_requires_passed_question(self, client, user_a):
        await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "ticketNumbers": [10]},
            headers=user_a,
        )

        response = await client.post(
            "/api/v1/checkout/session", json={"competitionId": COMP}, headers=user_a
        )
        assert response.status_code == 400


class TestGlobalRateLimit:

    @pytest.mark.asyncio
    async def test_headers_on_api_responses(self, client, user_a):
        response = await client.post(
            "/api/v1/tickets/status", json={"competitionId": COMP}, headers=user_a
        )

        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_anonymous_ceiling(self, client):
        for _ in range(30):
            response = await client.post("/api/v1/tickets/status", json={"competitionId": COMP})
            assert response.status_code == 200

        response = await client.post("/api/v1/tickets/status", json={"competitionId": COMP})

        assert response.status_code == 429
        assert "resetAt" in response.json()

    @pytest.mark.asyncio
    async def test_health_not_limited(self, client):
        for _ in range(35):
            response = await client.get("/health")
        assert response.status_code == 200


class TestOperationalEndpoints:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["store"] == "connected"

    @pytest.mark.asyncio
    async def test_metrics(self, client, user_a):
        await client.post(
            "/api/v1/tickets/reserve",
            json={"competitionId": COMP, "quantity": 1},
            headers=user_a,
        )

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "reservation_attempts_total" in response.text

    @pytest.mark.asyncio
    async def test_store_down(self, competitions, user_a):
        """Store failures surface as 503, never as a successful reservation."""
        server = fakeredis.FakeServer()
        server.connected = False
        store = RedisStore(fakeredis.FakeAsyncRedis(server=server, decode_responses=True))
        app = create_app(store=store, competitions=competitions, settings=Settings())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            health = await ac.get("/health")
            reserve = await ac.post(
                "/api/v1/tickets/reserve",
                json={"competitionId": COMP, "quantity": 1},
                headers=user_a,
            )

        assert health.json()["status"] == "degraded"
        assert reserve.status_code == 503


@pytest.mark.asyncio
async def test_demo_competition_seeded_from_settings():
    directory = default_competitions(Settings(DEMO_COMPETITION_ID="demo", DEMO_COMPETITION_TICKETS=10))
    competition = await directory.get_competition("demo")

    assert competition.is_active
    assert competition.total_tickets == 10
    assert await default_competitions(Settings(DEMO_COMPETITION_ID="")).get_competition("demo") is None
