"""
Application entry point with database pool and HTTP client lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from hirebuddy.config import settings
from hirebuddy.db.pool import db_pool
from hirebuddy.features.email_outreach.api.router import router as outreach_router
from hirebuddy.features.email_outreach.clients.mail_transport import mail_transport_client
from hirebuddy.infrastructure.observability.logging import (
    get_logger,
    log_request,
    setup_logging,
    start_request_context,
)

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup; close the pool and HTTP clients on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
    except Exception as e:
        logger.error("Failed to initialize database pool", error=str(e))
        raise

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await mail_transport_client.close()
    except Exception as e:
        logger.error("Error closing email API client", error=str(e))
        shutdown_errors.append(f"Email API: {e}")

    # Close database pool last (may have active connections)
    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="HireBuddy Outreach",
    description="Email outreach and conversation tracking for job seekers",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(outreach_router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag the request's log context and log the response with timing."""
    request_id = start_request_context(request.method, request.url.path)
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    response.headers["X-Request-ID"] = request_id
    log_request(status_code=response.status_code, duration_ms=round(process_time, 2))
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
