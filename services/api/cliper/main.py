"""
Cliper API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create tables if not present (TiDB)
  3. Initialise media storage (MinIO bucket, or in-memory)
  4. Expose Prometheus /metrics endpoint and the /ws real-time channel
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from starlette.concurrency import run_in_threadpool

from cliper.config import settings
from cliper.database import engine, init_db, ping_db
from cliper.errors import register_error_handlers
from cliper.realtime import ConnectionManager
from cliper.realtime import router as realtime_router
from cliper.schemas import HealthResponse
from cliper.telemetry import setup_tracing, instrument_app
from cliper.clients.storage_client import get_storage, init_storage
from cliper.routers import auth, follows, notifications, posts, users

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of external connections."""
    logger.info("Starting Cliper API (env=%s)", settings.environment)

    await init_db()
    await run_in_threadpool(init_storage)   # boto3 is not async

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Cliper API",
        description="Photo sharing: follows, likes, comments and real-time notifications.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.connections = ConnectionManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    # ── Routers ────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(follows.router, prefix="/api/follows", tags=["Follows"])
    app.include_router(posts.router, prefix="/api/posts", tags=["Posts"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
    app.include_router(realtime_router, tags=["Real-time"])

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    @app.get("/api/health", response_model=HealthResponse, tags=["Health"])
    async def health():
        db_ok = await ping_db()
        try:
            storage_ok = await run_in_threadpool(get_storage().ping)
        except RuntimeError:
            storage_ok = False
        return HealthResponse(
            status="OK" if db_ok and storage_ok else "DEGRADED",
            message="Cliper API is running",
            database="Connected" if db_ok else "Unavailable",
            storage="Connected" if storage_ok else "Unavailable",
        )

    # ── OTel FastAPI instrumentation ───────────────────────────────────────
    instrument_app(app, engine)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cliper.main:app", host="0.0.0.0", port=settings.port)
