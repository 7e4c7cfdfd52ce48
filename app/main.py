# app/main.py
"""
FastAPI application for the UBGHub directory API.

Startup opens the Postgres pool and the Redis client; shutdown cancels any
sign-in still open in a browser session, then closes Redis and the pool.
"""

import time
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.features.directory.api.router import router as directory_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import auth, health, sitemap
from app.services.redis_client import fast_redis
from app.services.session_registry import session_registry

# Setup logging before creating the app
setup_logging(log_level=settings.log_level, json_output=not settings.debug)
logger = get_logger(__name__)


def _cancel_open_sign_ins() -> None:
    cancelled = session_registry.close_all()
    logger.info("Browser sessions dropped", pending_sign_ins_cancelled=cancelled)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    # Callbacks unwind in reverse: sessions first, then Redis, then the pool
    async with AsyncExitStack() as resources:
        try:
            await db_pool.initialize()
            resources.push_async_callback(db_pool.close)

            await fast_redis.initialize()
            resources.push_async_callback(fast_redis.close)
        except Exception as e:
            logger.error("Startup failed", error=str(e), error_type=type(e).__name__)
            raise

        resources.callback(_cancel_open_sign_ins)
        logger.info("Application ready", site=settings.SITE_BASE_URL)

        yield

        logger.info("Application shutting down")


app = FastAPI(
    title="UBGHub Directory",
    description="Browse, search and up-vote UBGHub sites",
    version="0.1.0",
    lifespan=lifespan,
)

# Last added runs first: the request id is bound before CORS and routing
app.add_middleware(
    CORSMiddleware,
    allowed_origins=settings.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
)
app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(directory_router)
app.include_router(auth.router)
app.include_router(sitemap.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
        request_id=getattr(request.state, "request_id", None),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
