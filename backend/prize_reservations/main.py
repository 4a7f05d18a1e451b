"""
Prize Reservations API - Main Application Entry Point

Race-safe checkout holds for prize competitions:
- Per-ticket distributed locks with all-or-nothing reservations
- Skill-question attempt throttling with TTL lockouts
- Sliding-window rate limiting on sensitive endpoints
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prize_reservations.api.errors import register_exception_handlers
from prize_reservations.api.middleware import GlobalRateLimitMiddleware, RequestLoggingMiddleware
from prize_reservations.api.router import api_router
from prize_reservations.core.config import Settings, get_settings
from prize_reservations.core.exceptions import StoreUnavailableError
from prize_reservations.core.logging import get_logger, setup_logging
from prize_reservations.core.metrics import metrics_endpoint
from prize_reservations.infrastructure.redis_client import create_store
from prize_reservations.infrastructure.store import KeyValueStore
from prize_reservations.services.captcha import TurnstileVerifier
from prize_reservations.services.checkout_service import CheckoutService
from prize_reservations.services.interfaces.competitions import Competition, CompetitionDirectory
from prize_reservations.services.interfaces.memory_competitions import InMemoryCompetitionDirectory
from prize_reservations.services.rate_limiter import RateLimiter
from prize_reservations.services.skill_question_service import SkillQuestionTracker
from prize_reservations.services.ticket_lock_service import TicketLockManager


def build_services(app: FastAPI, store: KeyValueStore, competitions: CompetitionDirectory, settings: Settings) -> None:
    """Wire every component to one explicit store handle."""
    limiter = RateLimiter(store, settings.RATE_LIMITS)
    locks = TicketLockManager(
        store,
        ttl_seconds=settings.TICKET_RESERVATION_TTL,
        scan_page_size=settings.LOCK_SCAN_PAGE_SIZE,
    )
    tracker = SkillQuestionTracker(
        store,
        max_attempts=settings.MAX_QCM_ATTEMPTS,
        lockout_seconds=settings.QCM_LOCKOUT_SECONDS,
        passed_ttl_seconds=settings.QCM_PASSED_TTL,
    )

    app.state.store = store
    app.state.rate_limiter = limiter
    app.state.checkout = CheckoutService(
        locks,
        tracker,
        limiter,
        competitions,
        captcha=TurnstileVerifier(settings.TURNSTILE_SECRET_KEY),
        max_tickets_per_request=settings.MAX_TICKETS_PER_REQUEST,
    )


def default_competitions(settings: Settings) -> InMemoryCompetitionDirectory:
    directory = InMemoryCompetitionDirectory()
    if settings.DEMO_COMPETITION_ID:
        directory.add(
            Competition(
                id=settings.DEMO_COMPETITION_ID,
                status="ACTIVE",
                total_tickets=settings.DEMO_COMPETITION_TICKETS,
                max_tickets_per_user=settings.DEMO_COMPETITION_TICKETS,
                question_answer=settings.DEMO_COMPETITION_ANSWER,
            )
        )
    return directory


def create_app(
    store: Optional[KeyValueStore] = None,
    competitions: Optional[CompetitionDirectory] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if competitions is None:
        competitions = default_competitions(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle: startup and shutdown hooks."""
        setup_logging(settings)
        logger = get_logger(__name__)

        logger.info(
            "application_starting",
            app=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            store_backend=settings.STORE_BACKEND,
        )

        active_store = store or create_store(settings)
        build_services(app, active_store, competitions, settings)
        logger.info("store_ready")

        yield

        if store is None:
            await active_store.close()
        logger.info("application_shutdown")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Race-safe ticket reservations and skill-question throttling for prize competitions",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Injected stores are usable before startup (tests drive the app without a lifespan)
    if store is not None:
        build_services(app, store, competitions, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GlobalRateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for Docker and load balancers."""
        store_ok = True
        try:
            await app.state.store.exists("health:ping")
        except StoreUnavailableError:
            store_ok = False
        return {
            "status": "healthy" if store_ok else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "store": "connected" if store_ok else "unavailable",
        }

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        return metrics_endpoint()

    return app


app = create_app()
