"""
Lifecycle Controllers (API Routes)
===================================

FastAPI routes for the ticket lifecycle.

Controllers are thin - they delegate to application services. Each request
runs in one session, committed by `get_session` when the handler returns.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from itsm.config import TicketPriority, TicketStatus
from itsm.infrastructure.database import get_session, utc_now
from itsm.lifecycle.application import (
    AssignRequest,
    AttachmentCreateRequest,
    AttachmentResponse,
    CommentCreateRequest,
    CommentResponse,
    CreatedResponse,
    EscalationService,
    HistoryEntryResponse,
    SLAAttachRequest,
    StatusChangeRequest,
    SweepResponse,
    TicketCreateRequest,
    TicketLifecycleService,
    TicketListQuery,
    TicketListResponse,
    TicketSummaryResponse,
)
from itsm.lifecycle.infrastructure import build_escalation_service, build_lifecycle_service
from itsm.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Ticket Lifecycle"])
escalation_router = APIRouter(prefix="/escalations", tags=["SLA Escalation"])


# ========== Dependencies ==========

async def get_lifecycle_service(
    session: AsyncSession = Depends(get_session)
) -> TicketLifecycleService:
    """Get lifecycle service bound to the request session."""
    return build_lifecycle_service(session)


async def get_escalation_service(
    session: AsyncSession = Depends(get_session)
) -> EscalationService:
    """Get escalation service bound to the request session."""
    return build_escalation_service(session)


# ========== Ticket Routes ==========

@router.post(
    "",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket",
)
async def create_ticket(
    request: TicketCreateRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    """
    Create a ticket in status `New`.

    A ticket number `TCKT-<year>-<sequence>` is allocated, a `CREATED`
    history entry is written, and SLA due dates are computed when
    `sla_id` is given.
    """
    ticket_id = await service.create_ticket(
        title=request.title,
        description=request.description,
        customer_id=request.customer_id,
        created_by=request.created_by,
        queue_id=request.queue_id,
        priority=request.priority,
        source=request.source,
        sla_id=request.sla_id,
    )
    return CreatedResponse(id=ticket_id)


@router.get("", response_model=TicketListResponse, summary="List ticket summaries")
async def list_tickets(
    ticket_status: Optional[TicketStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[TicketPriority] = Query(None, description="Filter by priority"),
    queue_id: Optional[int] = Query(None, description="Filter by queue"),
    assigned_to: Optional[int] = Query(None, description="Filter by assignee"),
    limit: int = Query(100, ge=1, le=1000, description="Results per page"),
    offset: int = Query(0, ge=0, description="Page offset"),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    query = TicketListQuery(
        status=ticket_status,
        priority=priority,
        queue_id=queue_id,
        assigned_to=assigned_to,
        limit=limit,
        offset=offset,
    )
    summaries = await service.list_summaries(query)
    tickets = [TicketSummaryResponse.from_domain(s) for s in summaries]
    return TicketListResponse(tickets=tickets, count=len(tickets))


@router.get("/{ticket_id}", response_model=TicketSummaryResponse, summary="Get a ticket summary")
async def get_ticket(
    ticket_id: int,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    return TicketSummaryResponse.from_domain(await service.get_summary(ticket_id))


@router.post("/{ticket_id}/assign", status_code=status.HTTP_204_NO_CONTENT, summary="Assign a ticket")
async def assign_ticket(
    ticket_id: int,
    request: AssignRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    await service.assign_ticket(
        ticket_id, request.user_id, request.queue_id, request.acting_user_id
    )


@router.post("/{ticket_id}/status", status_code=status.HTTP_204_NO_CONTENT, summary="Change status")
async def change_status(
    ticket_id: int,
    request: StatusChangeRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    await service.change_status(ticket_id, request.status, request.acting_user_id)


@router.post("/{ticket_id}/sla", response_model=TicketSummaryResponse, summary="Attach an SLA policy")
async def attach_sla_policy(
    ticket_id: int,
    request: SLAAttachRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    await service.attach_sla_policy(ticket_id, request.sla_id)
    return TicketSummaryResponse.from_domain(await service.get_summary(ticket_id))


@router.post(
    "/{ticket_id}/comments",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment",
)
async def add_comment(
    ticket_id: int,
    request: CommentCreateRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    comment_id = await service.add_comment(
        ticket_id, request.author_id, request.text, request.internal
    )
    return CreatedResponse(id=comment_id)


@router.get("/{ticket_id}/comments", response_model=List[CommentResponse], summary="List comments")
async def list_comments(
    ticket_id: int,
    include_internal: bool = Query(default=True),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    comments = await service.list_comments(ticket_id, include_internal)
    return [CommentResponse.from_domain(c) for c in comments]


@router.post(
    "/{ticket_id}/attachments",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record attachment metadata",
)
async def add_attachment(
    ticket_id: int,
    request: AttachmentCreateRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    attachment_id = await service.add_attachment(
        ticket_id,
        file_name=request.file_name,
        content_type=request.content_type,
        file_size=request.file_size,
        url=request.url,
    )
    return CreatedResponse(id=attachment_id)


@router.get("/{ticket_id}/attachments", response_model=List[AttachmentResponse])
async def list_attachments(
    ticket_id: int,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    attachments = await service.list_attachments(ticket_id)
    return [AttachmentResponse.from_domain(a) for a in attachments]


@router.get("/{ticket_id}/history", response_model=List[HistoryEntryResponse], summary="Audit trail")
async def get_history(
    ticket_id: int,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    entries = await service.get_history(ticket_id)
    return [HistoryEntryResponse.from_domain(e) for e in entries]


# ========== Escalation Routes ==========

@escalation_router.post("/sweep", response_model=SweepResponse, summary="Run the SLA escalation sweep")
async def run_sweep(
    service: EscalationService = Depends(get_escalation_service),
):
    """
    Escalate every active ticket whose resolution due date has passed.

    Intended to be called by an external timer (cron, pg_cron, a k8s
    CronJob) at a fixed interval.
    """
    ran_at = utc_now()
    escalated = await service.run_sweep()
    return SweepResponse(escalated=escalated, ran_at=ran_at)
