"""Services package."""
from src.services.lead_scorer import LeadScorer, LeadScoringService
from src.services.qualification_detector import QualifiedLeadDetector, QUALIFICATION_CUTOFF
from src.services.slot_finder import SlotFinder, find_free_slots_in_day
from src.services.calendar_service import CalendarService
from src.services.action_executors import ActionExecutors, DefaultActionExecutors

__all__ = [
    "LeadScorer",
    "LeadScoringService",
    "QualifiedLeadDetector",
    "QUALIFICATION_CUTOFF",
    "SlotFinder",
    "find_free_slots_in_day",
    "CalendarService",
    "ActionExecutors",
    "DefaultActionExecutors",
]
