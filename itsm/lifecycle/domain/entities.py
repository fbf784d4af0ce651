"""
Lifecycle Domain Entities
==========================

Pure Python domain entities for the ticket lifecycle.

These entities carry the business state that repositories persist and
services mutate. They are free of infrastructure concerns.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from itsm.config import (
    ActorType, ChangeType, TicketPriority, TicketSource, TicketStatus,
    ESCALATABLE_STATUSES,
)


@dataclass
class Ticket:
    """
    Ticket entity, the root of the lifecycle aggregate.

    History entries, comments and attachments are owned by a ticket and
    are deleted with it.
    """

    ticket_number: str
    title: str
    customer_id: Optional[int]
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    description: Optional[str] = None
    assigned_to: Optional[int] = None
    queue_id: Optional[int] = None
    priority: TicketPriority = TicketPriority.MEDIUM
    status: TicketStatus = TicketStatus.NEW
    source: TicketSource = TicketSource.PORTAL

    # SLA snapshot, always set or cleared together
    sla_id: Optional[int] = None
    sla_response_due: Optional[datetime] = None
    sla_resolution_due: Optional[datetime] = None

    # None until persisted
    ticket_id: Optional[int] = None

    def __post_init__(self):
        # Timestamps come from each writer's own clock; their order is not enforced
        if (self.sla_response_due is None) != (self.sla_resolution_due is None):
            raise ValueError("SLA due dates must be set together")

    @property
    def is_escalatable(self) -> bool:
        """Active tickets the escalation sweep may act on."""
        return self.status in ESCALATABLE_STATUSES

    def is_resolution_overdue(self, as_of: datetime) -> bool:
        return self.sla_resolution_due is not None and self.sla_resolution_due < as_of

    def apply_sla(self, response_due: datetime, resolution_due: datetime, at: datetime) -> None:
        self.sla_response_due = response_due
        self.sla_resolution_due = resolution_due
        self.touch(at)

    def touch(self, at: datetime) -> None:
        self.updated_at = at


@dataclass(frozen=True)
class SLAPolicy:
    """Response and resolution budgets, in hours, for one priority."""

    sla_id: int
    name: str
    priority: TicketPriority
    response_time_hours: int
    resolution_time_hours: int

    def __post_init__(self):
        if self.response_time_hours < 0 or self.resolution_time_hours < 0:
            raise ValueError("SLA budgets must be >= 0 hours")

    @property
    def response_budget(self) -> timedelta:
        return timedelta(hours=self.response_time_hours)

    @property
    def resolution_budget(self) -> timedelta:
        return timedelta(hours=self.resolution_time_hours)


@dataclass(frozen=True)
class Actor:
    """
    Who caused a change.

    SYSTEM is reserved for caller-less changes so that a missing user id
    never has to stand for both "automated" and "not given".
    """

    actor_type: ActorType
    user_id: Optional[int] = None

    @classmethod
    def user(cls, user_id: Optional[int]) -> "Actor":
        if user_id is None:
            return cls(ActorType.UNKNOWN)
        return cls(ActorType.USER, user_id)


SYSTEM_ACTOR = Actor(ActorType.SYSTEM)


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable audit record of one mutation to a ticket."""

    ticket_id: int
    change_type: ChangeType
    actor: Actor
    created_at: datetime
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    history_id: Optional[int] = None


@dataclass(frozen=True)
class Comment:
    """Note attached to a ticket. Internal comments are agent-only."""

    ticket_id: int
    author_id: Optional[int]
    comment_text: str
    created_at: datetime
    internal: bool = False
    comment_id: Optional[int] = None


@dataclass(frozen=True)
class Attachment:
    """File metadata attached to a ticket; content lives at `url`."""

    ticket_id: int
    file_name: str
    created_at: datetime
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    url: Optional[str] = None
    attachment_id: Optional[int] = None


@dataclass(frozen=True)
class TicketSummary:
    """Read-only projection: a ticket plus resolved reference names."""

    ticket_id: int
    ticket_number: str
    title: str
    priority: TicketPriority
    status: TicketStatus
    source: TicketSource
    created_at: datetime
    updated_at: datetime
    sla_response_due: Optional[datetime]
    sla_resolution_due: Optional[datetime]
    customer_name: Optional[str]
    created_by_name: Optional[str]
    assigned_to_name: Optional[str]
    queue_name: Optional[str]
