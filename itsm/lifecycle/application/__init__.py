"""
Lifecycle Application Layer
============================

Contains:
- Services: Orchestrate the lifecycle rules and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from itsm.lifecycle.application.dto import (
    AssignRequest,
    AttachmentCreateRequest,
    AttachmentResponse,
    CommentCreateRequest,
    CommentResponse,
    CreatedResponse,
    HistoryEntryResponse,
    SLAAttachRequest,
    StatusChangeRequest,
    SweepResponse,
    TicketCreateRequest,
    TicketListQuery,
    TicketListResponse,
    TicketSummaryResponse,
)
from itsm.lifecycle.application.services import (
    EscalationService,
    TicketLifecycleService,
    IAttachmentRepository,
    ICommentRepository,
    IHistoryRepository,
    ISLAPolicyRepository,
    ITicketNumberGenerator,
    ITicketRepository,
    IUserDirectory,
)

__all__ = [
    # DTOs
    "AssignRequest",
    "AttachmentCreateRequest",
    "AttachmentResponse",
    "CommentCreateRequest",
    "CommentResponse",
    "CreatedResponse",
    "HistoryEntryResponse",
    "SLAAttachRequest",
    "StatusChangeRequest",
    "SweepResponse",
    "TicketCreateRequest",
    "TicketListQuery",
    "TicketListResponse",
    "TicketSummaryResponse",
    # Services
    "EscalationService",
    "TicketLifecycleService",
    # Repository Interfaces
    "IAttachmentRepository",
    "ICommentRepository",
    "IHistoryRepository",
    "ISLAPolicyRepository",
    "ITicketNumberGenerator",
    "ITicketRepository",
    "IUserDirectory",
]
