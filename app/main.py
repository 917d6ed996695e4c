# app/main.py

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.clients.commerce import commerce_client
from app.core.config import settings as config
from app.core.events import RedisEventPublisher, event_bus
from app.core.exceptions import PointsError
from app.core.logging_config import setup_logging
from app.core.redis import close_redis_client, redis_client
from app.routers.v1.api import api_router as api_v1_router
from app.routers.webhooks import orders_router
from app.services.points_events import register_points_event_handlers
from app.services.points_expiration import process_expirations

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()


# --- Error handlers ---

async def points_error_handler(request: Request, exc: PointsError):
    """Maps points-domain errors to 4xx responses."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "detail": exc.message, "details": exc.details},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a points validation error: 400, same body shape."""
    return JSONResponse(
        status_code=400,
        content={"code": "VALIDATION_ERROR", "detail": "Invalid request.", "details": {"errors": jsonable_encoder(exc.errors())}},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Last-resort handler: logs the traceback and hides it from the client.
    """
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error."},
    )


def register_event_handlers():
    register_points_event_handlers(event_bus)
    RedisEventPublisher(redis_client).register(event_bus)


# --- Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    register_event_handlers()
    logger.info("Points event handlers registered.")

    # Only one worker runs the scheduler
    is_main_worker = await redis_client.set("points_scheduler_lock", "1", ex=60, nx=True)

    if is_main_worker:
        logger.info("This is the main worker. Starting the scheduler...")
        if not scheduler.running:
            scheduler.add_job(
                process_expirations, 'cron',
                hour=config.POINTS_EXPIRATION_CRON_HOUR,
                minute=config.POINTS_EXPIRATION_CRON_MINUTE,
                timezone=config.SCHEDULER_TIMEZONE,
                id="expire_points",
                replace_existing=True,
            )
            scheduler.start()
            logger.info("Scheduler started with background jobs.")
    else:
        logger.info("This is a secondary worker. Skipping scheduler setup.")

    yield

    if is_main_worker:
        logger.info("Main worker shutting down...")
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shut down.")
        await redis_client.delete("points_scheduler_lock")
    else:
        logger.info("Secondary worker shutting down.")

    await commerce_client.close()
    event_bus.clear()
    await close_redis_client()


app = FastAPI(
    title="Live Commerce Points Service",
    description="Points ledger, earning and expiration for the live shopping platform",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(PointsError, points_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(api_v1_router)
app.include_router(orders_router, prefix="/internal/webhooks", tags=["Webhooks"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "ok"}
