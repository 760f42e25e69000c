"""
Health and Readiness Endpoints

Kubernetes-compatible health checks for load balancers and orchestration.
"""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from src.config import settings
from src.repositories import db_manager

router = APIRouter(tags=["Health"])

# API version - single source of truth
API_VERSION = "0.4.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": "crm-autopilot",
        "version": API_VERSION,
        "environment": settings.environment
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check - checks if service can handle requests.

    Verifies:
    - Automation core is initialized
    - MongoDB answers a ping

    Returns 200 if ready, 503 if not ready.
    """
    core = getattr(request.app.state, "core", None)
    if core is None or not core.is_ready:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "Automation core not initialized"}
        )

    if not await db_manager.ping():
        logger.error("Readiness check failed: MongoDB unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "MongoDB unreachable"}
        )

    return {
        "status": "ready",
        "mongodb": "connected",
        "engine": "running" if core.engine.is_running else "stopped"
    }


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "CRM Autopilot API",
        "version": API_VERSION,
        "endpoints": {
            "health": "/health",
            "ready": "/ready",
            "progression": "/progression/stats",
            "calendar": "/calendar/free-slots",
            "qualification": "/qualification/leads",
            "lead_score": "/leads/{lead_id}/score"
        }
    }
