"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from repoviz.api import health, jobs, stats
from repoviz.config import Settings, settings
from repoviz.core.logging import setup_logging
from repoviz.core.redis import connect_redis
from repoviz.middleware.error_handlers import register_error_handlers
from repoviz.middleware.request_context import tracing_middleware
from repoviz.repositories.generation_counter import RedisGenerationCounter
from repoviz.repositories.rate_limit_store import RedisRateLimitStore
from repoviz.services.job_gateway import JobGateway
from repoviz.services.rate_limiter import RateLimiter
from repoviz.services.render_client import build_render_client
from repoviz.services.token_cipher import build_token_cipher

logger = logging.getLogger(__name__)


def build_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_settings.LOG_FORMAT, app_settings.LOG_LEVEL)

        # Fatal before anything is served: never forward credentials unencrypted
        token_cipher = build_token_cipher(app_settings.SECRET_KEY)

        redis_client = await connect_redis(app_settings.redis_dsn)
        rate_limit_store = RedisRateLimitStore(redis_client, app_settings.RATE_LIMIT_KEY_PREFIX)
        rate_limiter = RateLimiter(
            rate_limit_store,
            quota=app_settings.RATE_LIMIT_QUOTA,
            window_seconds=app_settings.RATE_LIMIT_WINDOW_SECONDS,
            fail_open=app_settings.RATE_LIMIT_FAIL_OPEN,
        )
        gateway = JobGateway(
            render_client=build_render_client(
                app_settings.RENDER_BACKEND_URL,
                timeout=app_settings.RENDER_BACKEND_TIMEOUT_SECONDS,
            ),
            rate_limiter=rate_limiter,
            token_cipher=token_cipher,
            generation_counter=RedisGenerationCounter(redis_client, app_settings.GENERATION_COUNTER_KEY),
        )

        app.state.rate_limit_store = rate_limit_store
        app.state.gateway = gateway
        logger.info(
            f"{app_settings.APP_NAME} ready: quota={app_settings.RATE_LIMIT_QUOTA}/"
            f"{app_settings.RATE_LIMIT_WINDOW_SECONDS}s fail_open={app_settings.RATE_LIMIT_FAIL_OPEN}"
        )
        try:
            yield
        finally:
            await gateway.aclose()
            await redis_client.aclose()
            logger.info("Shutdown complete")

    return lifespan


def create_app(app_settings: Settings = settings) -> FastAPI:
    app = FastAPI(
        title="Repository Visualization Gateway",
        description="Admission, credential protection and job tracking for repository history videos",
        version=app_settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=build_lifespan(app_settings),
    )
    app.state.settings = app_settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Retry-After", "X-RateLimit-Remaining"],
    )
    app.middleware("http")(tracing_middleware)
    register_error_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(jobs.router)
    app.include_router(stats.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Repository Visualization Gateway",
            "version": app_settings.APP_VERSION,
            "docs": "/api/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("repoviz.main:app", host="0.0.0.0", port=8000, reload=True)
