"""
FastAPI Dependencies

Accessors for the automation components stored on ``app.state``.
"""

from fastapi import Request, HTTPException, status

from src.core.automation_core import AutomationCore
from src.core.progression_engine import AutoProgressionEngine
from src.services.calendar_service import CalendarService
from src.services.lead_scorer import LeadScoringService
from src.services.qualification_detector import QualifiedLeadDetector


def get_core(request: Request) -> AutomationCore:
    """
    Return the initialized automation core.

    Raises:
        HTTPException: 503 while the core is not initialized
    """
    core = getattr(request.app.state, "core", None)
    if core is None or not core.is_ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Automation core not initialized"
        )
    return core


def get_engine(request: Request) -> AutoProgressionEngine:
    return get_core(request).engine


def get_calendar_service(request: Request) -> CalendarService:
    return get_core(request).calendar


def get_detector(request: Request) -> QualifiedLeadDetector:
    return get_core(request).detector


def get_scoring_service(request: Request) -> LeadScoringService:
    return get_core(request).scoring
