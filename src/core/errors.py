"""
Exception taxonomy for the automation core.

Expected outcomes (constraint rejection, no free slot, unsatisfied trigger)
are returned as results, not raised. These exceptions cover the failures
that callers have to handle.
"""


class ProgressionError(Exception):
    """Base class for automation-core errors."""
    pass


class LeadNotFoundError(ProgressionError):
    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


class RuleNotFoundError(ProgressionError):
    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Progression rule {rule_id} not found")


class ActionExecutionError(ProgressionError):
    """An action collaborator could not complete its side effect."""

    def __init__(self, action_type: str, message: str):
        self.action_type = action_type
        super().__init__(f"{action_type} failed: {message}")


class SchedulingConflictError(ProgressionError):
    """The requested window overlaps an existing booking for the assignee."""

    def __init__(self, user_id: str, conflicting_event_id: str | None = None):
        self.user_id = user_id
        self.conflicting_event_id = conflicting_event_id
        super().__init__(
            f"Time window conflicts with event {conflicting_event_id} for user {user_id}"
        )


class QualificationError(ProgressionError):
    """Qualification candidates could not be loaded."""
    pass
