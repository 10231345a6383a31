"""
FastAPI application with New Relic APM, CORS, lifespan-managed matcher, and all routers.
"""
import logging
import os

# New Relic must be initialized BEFORE any other imports that it instruments.
if os.getenv("NEW_RELIC_LICENSE_KEY"):
    import newrelic.agent
    newrelic.agent.initialize("newrelic.ini")

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ridematch.config import get_settings
from ridematch.database import AsyncSessionLocal, engine
from ridematch.exceptions import MatchingError
from ridematch.redis_client import get_redis, close_redis
from ridematch.routers import drivers, junctions, requests, rides, schedules
from ridematch.services.matcher import MatchingCycleRunner, RideMatcher
from ridematch.services.notifications import RedisNotificationSink

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s [%s]", settings.app_name, settings.env)
    redis = await get_redis()  # warm up connection pool

    runner = None
    if settings.matcher_enabled:
        matcher = RideMatcher(AsyncSessionLocal, RedisNotificationSink(redis), settings=settings)
        runner = MatchingCycleRunner(matcher, redis)
        runner.start()
    app.state.matcher = runner

    yield

    if runner is not None:
        await runner.stop()
    await close_redis()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Ride matching and seat allocation for shared KEKE and private CAR / BUS rides",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors carry their own HTTP status
@app.exception_handler(MatchingError)
async def matching_error_handler(request: Request, exc: MatchingError):
    logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Global error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url, exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Health check (no auth)
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok"}


# Register routers
app.include_router(requests.router)
app.include_router(rides.router)
app.include_router(schedules.router)
app.include_router(drivers.router)
app.include_router(junctions.router)
