"""
FastAPI Application

Main entry point for the CRM Autopilot API.
Handles application lifecycle and router mounting.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from src.config import settings
from src.core.automation_core import AutomationCore
from src.utils.observability import configure_logging
from src.api.routes import health_router, progression_router, calendar_router, qualification_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle: startup and shutdown events.

    Startup:
    - Initialize the automation core (connects to MongoDB, creates indexes)
    - Optionally start the auto-progression engine

    Shutdown:
    - Stop the engine, letting an in-flight pass finish
    - Disconnect from MongoDB
    """
    configure_logging()
    logger.info("Starting CRM Autopilot API server...")

    core = AutomationCore()
    await core.initialize()
    app.state.core = core

    if settings.progression_autostart:
        await core.engine.start(settings.progression_interval_minutes)

    logger.info("API server ready")

    yield

    logger.info("Shutting down API server...")
    await core.shutdown()
    logger.info("Shutdown complete")


app = FastAPI(
    title="CRM Autopilot API",
    description="Lead scoring, qualification, auto-scheduling and rule-driven pipeline progression",
    version="0.4.0",
    lifespan=lifespan
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": f"Internal error: {exc}"})


app.include_router(health_router)
app.include_router(progression_router)
app.include_router(calendar_router)
app.include_router(qualification_router)
