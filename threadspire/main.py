"""
ThreadSpire API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP), unless disabled
  2. Create tables if not present
  3. Connect to Redis (rate limiter; realtime relay when enabled)
  4. Expose Prometheus /metrics endpoint

``create_app`` accepts pre-built collaborators so tests can run the whole
app against SQLite with a stubbed rate limiter and mailer.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import IntegrityError

from threadspire.clients.mailer import Mailer
from threadspire.clients.redis_client import RateLimiter, init_redis
from threadspire.config import Settings
from threadspire.database import Backend
from threadspire.errors import ThreadSpireError
from threadspire.realtime import RedisChangeRelay
from threadspire.routers import auth, bookmarks, collections, drafts, reactions, realtime, threads, users
from threadspire.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[Backend] = None,
    rate_limiter: Optional[RateLimiter] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    settings = settings or Settings()
    backend = backend or Backend(settings)

    if settings.tracing_enabled:
        setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown of all external connections."""
        logger.info("Starting ThreadSpire API (env=%s)", settings.environment)
        await backend.init_schema()

        redis = None
        relay = None
        if app.state.rate_limiter is None or settings.realtime_redis_relay:
            redis = await init_redis(settings)
        if app.state.rate_limiter is None:
            app.state.rate_limiter = RateLimiter(
                redis, settings.rate_limit_window, settings.rate_limit_max
            )
        if settings.realtime_redis_relay:
            relay = RedisChangeRelay(redis, settings.realtime_channel)
            backend.changes.relay = relay
            relay.start(backend.changes)

        logger.info("All services connected. API ready.")
        yield

        logger.info("Shutting down...")
        if relay is not None:
            await relay.stop()
            backend.changes.relay = None
        if redis is not None:
            await redis.aclose()
        await backend.dispose()

    app = FastAPI(
        title="ThreadSpire API",
        description="Publish, remix, react to and bookmark multi-segment threads.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend
    app.state.rate_limiter = rate_limiter
    app.state.mailer = mailer or Mailer(settings)

    # ── Error handlers ─────────────────────────────────────────────────────
    @app.exception_handler(ThreadSpireError)
    async def handle_service_error(request: Request, exc: ThreadSpireError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("Constraint violation on %s: %s", request.url.path, exc.orig)
        return JSONResponse(status_code=409, content={"error": "Conflicting change, try again"})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "Invalid request"))
        return JSONResponse(status_code=400, content={"error": message})

    # ── Routers ────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(auth.user_router, prefix="/api/user", tags=["Auth"])
    app.include_router(threads.router, prefix="/api/threads", tags=["Threads"])
    app.include_router(reactions.router, prefix="/api/threads", tags=["Reactions"])
    app.include_router(bookmarks.router, prefix="/api", tags=["Bookmarks"])
    app.include_router(drafts.router, prefix="/api/drafts", tags=["Drafts"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(collections.router, prefix="/api/collections", tags=["Collections"])
    app.include_router(realtime.router, prefix="/ws", tags=["Realtime"])

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    if settings.tracing_enabled:
        instrument_app(app)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.service_name}

    return app
