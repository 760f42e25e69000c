"""
Action Executors

Side effects a progression rule can trigger. The engine depends only on the
ActionExecutors protocol; delivery channels (email, task tracker, dialer
scripts) are external, so the default implementation acknowledges those
through the log and performs the assignment and scheduling writes itself.
"""
import datetime as dt
from typing import Any, Dict, Optional, Protocol

from src.config import get_settings
from src.core.errors import ActionExecutionError
from src.models.lead import Lead
from src.models.progression import (
    AssignToUserAction,
    CreateTaskAction,
    PersonalizeScriptAction,
    ScheduleCallAction,
    SendEmailAction,
)
from src.repositories.leads import LeadRepository
from src.services.calendar_service import CalendarService
from src.utils.observability import logger, log_business_event


class ActionExecutors(Protocol):
    """
    Contract for rule action side effects.

    Each method returns a result payload on success or raises
    (ActionExecutionError or any other exception) on failure.
    """

    async def schedule_call(self, lead: Lead, action: ScheduleCallAction) -> Dict[str, Any]:
        ...

    async def send_email(self, lead: Lead, action: SendEmailAction) -> Dict[str, Any]:
        ...

    async def create_task(self, lead: Lead, action: CreateTaskAction) -> Dict[str, Any]:
        ...

    async def assign_to_user(self, lead: Lead, action: AssignToUserAction) -> Dict[str, Any]:
        ...

    async def personalize_script(self, lead: Lead, action: PersonalizeScriptAction) -> Dict[str, Any]:
        ...


class DefaultActionExecutors:
    """
    Repository-backed executors.

    Usage:
        executors = DefaultActionExecutors(lead_repo, calendar_service)
        engine = AutoProgressionEngine(..., executors=executors)
    """

    def __init__(
        self,
        lead_repo: LeadRepository,
        calendar_service: CalendarService,
        default_assignee: Optional[str] = None
    ):
        self.lead_repo = lead_repo
        self.calendar_service = calendar_service
        self.default_assignee = default_assignee or get_settings().default_assignee

    async def schedule_call(self, lead: Lead, action: ScheduleCallAction) -> Dict[str, Any]:
        user_id = action.user_id or lead.assigned_to or self.default_assignee
        if not user_id:
            raise ActionExecutionError(action.type, "no assignee for lead and no default assignee")

        earliest = dt.datetime.now(dt.UTC) + dt.timedelta(hours=action.delay_hours)
        result = await self.calendar_service.auto_schedule(lead.id, user_id, now=earliest)
        if not result.success:
            raise ActionExecutionError(action.type, result.reason or result.error or "not scheduled")

        return {
            "call_scheduled": True,
            "event_id": result.event_id,
            "start_time": result.event.start_time.isoformat() if result.event else None,
            "user_id": user_id,
        }

    async def send_email(self, lead: Lead, action: SendEmailAction) -> Dict[str, Any]:
        logger.info(f"📧 Email '{action.template}' queued for lead {lead.id}")
        return {"email_sent": True, "template": action.template}

    async def create_task(self, lead: Lead, action: CreateTaskAction) -> Dict[str, Any]:
        due_at = None
        if action.due_in_hours is not None:
            due_at = (dt.datetime.now(dt.UTC) + dt.timedelta(hours=action.due_in_hours)).isoformat()

        logger.info(f"📋 Task '{action.task_type}' created for lead {lead.id}")
        return {"task_created": True, "task_type": action.task_type, "due_at": due_at}

    async def assign_to_user(self, lead: Lead, action: AssignToUserAction) -> Dict[str, Any]:
        if not await self.lead_repo.assign(lead.id, action.user_id, automated=True):
            raise ActionExecutionError(action.type, f"lead {lead.id} not found")

        log_business_event(
            "lead_assigned",
            lead.id,
            assigned_to=action.user_id,
            previous_assignee=lead.assigned_to,
        )
        return {"assigned_to": action.user_id, "previous_assignee": lead.assigned_to}

    async def personalize_script(self, lead: Lead, action: PersonalizeScriptAction) -> Dict[str, Any]:
        logger.info(f"📝 Script personalized for lead {lead.id} (strategy={action.strategy})")
        return {"script_personalized": True, "strategy": action.strategy}
