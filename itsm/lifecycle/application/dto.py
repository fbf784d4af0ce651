"""
Lifecycle Application DTOs
===========================

Data Transfer Objects for the lifecycle API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from itsm.config import ActorType, ChangeType, TicketPriority, TicketSource, TicketStatus


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("must not be blank")
    return v


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for ticket creation."""
    title: str = Field(..., min_length=1, max_length=250, description="Short summary")
    description: Optional[str] = Field(None, description="Full problem description")
    customer_id: Optional[int] = Field(None, description="Customer reference")
    created_by: Optional[int] = Field(None, description="Creating user reference")
    queue_id: Optional[int] = Field(None, description="Queue reference")
    priority: TicketPriority = Field(default=TicketPriority.MEDIUM)
    source: TicketSource = Field(default=TicketSource.PORTAL)
    sla_id: Optional[int] = Field(None, description="SLA policy reference")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Reject whitespace-only titles."""
        return _not_blank(v)


class AssignRequest(BaseModel):
    """Assign a ticket to a user and/or queue."""
    user_id: Optional[int] = None
    queue_id: Optional[int] = None
    acting_user_id: Optional[int] = None


class StatusChangeRequest(BaseModel):
    status: TicketStatus
    acting_user_id: Optional[int] = None


class SLAAttachRequest(BaseModel):
    """Attach a policy; null detaches and clears due dates."""
    sla_id: Optional[int] = None


class CommentCreateRequest(BaseModel):
    author_id: Optional[int] = None
    text: str = Field(..., min_length=1)
    internal: bool = False

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _not_blank(v)


class AttachmentCreateRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: Optional[str] = Field(None, max_length=120)
    file_size: Optional[int] = Field(None, ge=0)
    url: Optional[str] = None


class TicketListQuery(BaseModel):
    """Filters for the ticket summary list."""
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    queue_id: Optional[int] = None
    assigned_to: Optional[int] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


# ========== Response DTOs ==========

class CreatedResponse(BaseModel):
    """Identity of a newly created resource."""
    id: int


class TicketSummaryResponse(BaseModel):
    """Ticket with resolved customer, creator, assignee and queue names."""
    ticket_id: int
    ticket_number: str
    title: str
    priority: TicketPriority
    status: TicketStatus
    source: TicketSource
    created_at: datetime
    updated_at: datetime
    sla_response_due: Optional[datetime] = None
    sla_resolution_due: Optional[datetime] = None
    customer_name: Optional[str] = None
    created_by_name: Optional[str] = None
    assigned_to_name: Optional[str] = None
    queue_name: Optional[str] = None

    @classmethod
    def from_domain(cls, summary: Any) -> "TicketSummaryResponse":
        return cls.model_validate(summary, from_attributes=True)


class HistoryEntryResponse(BaseModel):
    history_id: int
    ticket_id: int
    change_type: ChangeType
    actor_type: ActorType
    changed_by: Optional[int] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: Any) -> "HistoryEntryResponse":
        return cls(
            history_id=entry.history_id,
            ticket_id=entry.ticket_id,
            change_type=entry.change_type,
            actor_type=entry.actor.actor_type,
            changed_by=entry.actor.user_id,
            old_value=entry.old_value,
            new_value=entry.new_value,
            created_at=entry.created_at,
        )


class CommentResponse(BaseModel):
    comment_id: int
    ticket_id: int
    author_id: Optional[int] = None
    comment_text: str
    internal: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, comment: Any) -> "CommentResponse":
        return cls.model_validate(comment, from_attributes=True)


class AttachmentResponse(BaseModel):
    attachment_id: int
    ticket_id: int
    file_name: str
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, attachment: Any) -> "AttachmentResponse":
        return cls.model_validate(attachment, from_attributes=True)


class SweepResponse(BaseModel):
    """Result of one escalation sweep."""
    escalated: int = Field(..., description="Tickets escalated by this sweep")
    ran_at: datetime


class TicketListResponse(BaseModel):
    tickets: List[TicketSummaryResponse]
    count: int
