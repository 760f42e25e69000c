"""
Repositories Layer
Data persistence and query operations for the CRM automation core.
"""
from .connection import db_manager, get_database, DatabaseManager
from .leads import LeadRepository
from .rules import ProgressionRuleRepository
from .calendar_events import CalendarEventRepository
from .base import BaseRepository

__all__ = [
    "db_manager",
    "get_database",
    "DatabaseManager",
    "LeadRepository",
    "ProgressionRuleRepository",
    "CalendarEventRepository",
    "BaseRepository",
]
