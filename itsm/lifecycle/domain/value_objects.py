"""
Lifecycle Value Objects
========================

Immutable value objects and stateless domain services for the lifecycle.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from itsm.config import TicketPriority, TicketStatus, PRIORITY_ESCALATION_ORDER
from itsm.lifecycle.domain.entities import SLAPolicy


# Calling layers may plug in a stricter graph; the engine itself accepts any move.
TransitionPolicy = Callable[[TicketStatus, TicketStatus], bool]


def allow_any_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return True


@dataclass(frozen=True)
class TicketNumberFormat:
    """
    Renders counter values as human-readable ticket numbers.

    The year comes from the generation time; the counter itself never
    resets, so numbers do not restart at 1 on January 1st.
    """

    prefix: str = "TCKT"
    width: int = 6

    def render(self, year: int, sequence: int) -> str:
        return f"{self.prefix}-{year:04d}-{sequence:0{self.width}d}"


class SLACalculator:
    """
    Pure functions for SLA calculations.
    """

    @staticmethod
    def due_dates(policy: SLAPolicy, applied_at: datetime) -> Tuple[datetime, datetime]:
        """
        Compute (response_due, resolution_due) anchored at `applied_at`.

        The anchor is the moment the policy is applied, not the ticket's
        creation time.
        """
        return (
            applied_at + policy.response_budget,
            applied_at + policy.resolution_budget,
        )


class PriorityLadder:
    """One-step priority escalation over Low < Medium < High < Critical."""

    @staticmethod
    def escalate(priority: TicketPriority) -> TicketPriority:
        """Next priority up; Critical stays Critical."""
        index = PRIORITY_ESCALATION_ORDER.index(priority)
        if index == len(PRIORITY_ESCALATION_ORDER) - 1:
            return priority
        return PRIORITY_ESCALATION_ORDER[index + 1]

    @staticmethod
    def is_ceiling(priority: TicketPriority) -> bool:
        return priority == PRIORITY_ESCALATION_ORDER[-1]


def render_assignee(
    user_id: Optional[int],
    queue_id: Optional[int],
    user_name: Optional[str],
) -> Optional[str]:
    """
    Text recorded in ASSIGNED history entries.

    Prefers the user's display name, then a queue marker, then the raw
    user id. Both the old and the new side go through this rendering, so
    the old value is a name, not the bare `assigned_to` id, and an
    unresolvable user with no queue yields its id rather than null.
    """
    if user_name:
        return user_name
    if queue_id is not None:
        return f"Queue:{queue_id}"
    if user_id is not None:
        return str(user_id)
    return None


def summarize(text: str, limit: int) -> str:
    """History keeps a summary of comment bodies, not the full text."""
    return text[:limit]
