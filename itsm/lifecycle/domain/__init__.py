"""
Lifecycle Domain Layer
======================

Contains:
- Entities: Ticket, SLAPolicy, HistoryEntry, Comment, Attachment, TicketSummary
- Value Objects: Actor, TicketNumberFormat
- Domain Services: SLACalculator, PriorityLadder, transition policies

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from itsm.lifecycle.domain.entities import (
    Actor,
    Attachment,
    Comment,
    HistoryEntry,
    SLAPolicy,
    SYSTEM_ACTOR,
    Ticket,
    TicketSummary,
)
from itsm.lifecycle.domain.value_objects import (
    PriorityLadder,
    SLACalculator,
    TicketNumberFormat,
    TransitionPolicy,
    allow_any_transition,
    render_assignee,
    summarize,
)

__all__ = [
    # Entities
    "Actor",
    "Attachment",
    "Comment",
    "HistoryEntry",
    "SLAPolicy",
    "SYSTEM_ACTOR",
    "Ticket",
    "TicketSummary",
    # Value Objects & Services
    "PriorityLadder",
    "SLACalculator",
    "TicketNumberFormat",
    "TransitionPolicy",
    "allow_any_transition",
    "render_assignee",
    "summarize",
]
