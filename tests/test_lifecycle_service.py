"""Tests for TicketLifecycleService against an in-memory database."""
import re
from datetime import timedelta

import pytest
from sqlalchemy import delete, update

from itsm.config import (
    ActorType, ChangeType, Settings, TicketPriority, TicketSource, TicketStatus,
)
from itsm.core import (
    InvalidTransitionException, ResourceNotFoundException,
    StaleReferenceException, ValidationException,
)
from itsm.lifecycle.application import (
    ISLAPolicyRepository, TicketLifecycleService, TicketListQuery,
)
from itsm.lifecycle.infrastructure import (
    SLAPolicyModel,
    SQLAlchemyAttachmentRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemyTicketNumberGenerator,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserDirectory,
    build_lifecycle_service,
)

from tests.conftest import (
    AGENT_ID, CUSTOMER_ID, QUEUE_ID, REQUESTER_ID, STANDARD_SLA_ID, T0, URGENT_SLA_ID,
)

TICKET_NUMBER = re.compile(r"^TCKT-\d{4}-\d{6}$")


async def create(service, **overrides):
    fields = dict(
        title="Email not syncing",
        description="Outlook stopped syncing this morning",
        customer_id=CUSTOMER_ID,
        created_by=REQUESTER_ID,
    )
    fields.update(overrides)
    return await service.create_ticket(**fields)


# ── creation ─────────────────────────────────────────────────────────────────
async def test_create_ticket_starts_new_with_number(service):
    ticket_id = await create(service)
    ticket = await service.get_ticket(ticket_id)

    assert ticket.status == TicketStatus.NEW
    assert ticket.priority == TicketPriority.MEDIUM
    assert ticket.source == TicketSource.PORTAL
    assert TICKET_NUMBER.match(ticket.ticket_number)
    assert ticket.ticket_number.startswith("TCKT-2025-")
    assert ticket.created_at == T0


async def test_create_ticket_writes_one_created_entry(service):
    ticket_id = await create(service)
    history = await service.get_history(ticket_id)

    assert len(history) == 1
    entry = history[0]
    assert entry.change_type == ChangeType.CREATED
    assert entry.old_value is None
    assert entry.new_value == "Email not syncing"
    assert entry.actor.actor_type == ActorType.USER
    assert entry.actor.user_id == REQUESTER_ID


async def test_create_ticket_without_creator_records_unknown_actor(service):
    ticket_id = await create(service, created_by=None)
    [entry] = await service.get_history(ticket_id)
    assert entry.actor.actor_type == ActorType.UNKNOWN
    assert entry.actor.user_id is None


async def test_ticket_numbers_are_distinct(service):
    first = await service.get_ticket(await create(service))
    second = await service.get_ticket(await create(service))
    assert first.ticket_number != second.ticket_number
    assert first.ticket_number < second.ticket_number


async def test_blank_title_rejected(service):
    with pytest.raises(ValidationException):
        await create(service, title="   ")


async def test_unknown_customer_is_stale_reference(service):
    with pytest.raises(StaleReferenceException):
        await create(service, customer_id=999)


# ── SLA ──────────────────────────────────────────────────────────────────────
async def test_sla_dates_snapshotted_at_creation(service):
    ticket_id = await create(service, sla_id=STANDARD_SLA_ID)
    ticket = await service.get_ticket(ticket_id)

    assert ticket.sla_response_due == T0 + timedelta(hours=1)
    assert ticket.sla_resolution_due == T0 + timedelta(hours=8)


async def test_no_policy_leaves_due_dates_empty(service):
    ticket_id = await create(service, sla_id=None)
    ticket = await service.get_ticket(ticket_id)

    assert ticket.sla_response_due is None
    assert ticket.sla_resolution_due is None


async def test_attach_policy_anchors_at_attach_time(service, clock):
    ticket_id = await create(service)
    clock.advance(hours=2)

    ticket = await service.attach_sla_policy(ticket_id, URGENT_SLA_ID)

    assert ticket.sla_id == URGENT_SLA_ID
    assert ticket.sla_response_due == T0 + timedelta(hours=2)
    assert ticket.sla_resolution_due == T0 + timedelta(hours=6)


async def test_detach_policy_clears_due_dates(service):
    ticket_id = await create(service, sla_id=STANDARD_SLA_ID)

    await service.attach_sla_policy(ticket_id, None)
    ticket = await service.get_ticket(ticket_id)

    assert ticket.sla_id is None
    assert ticket.sla_response_due is None
    assert ticket.sla_resolution_due is None


async def test_apply_sla_dates_unknown_ticket(service):
    with pytest.raises(ResourceNotFoundException):
        await service.apply_sla_dates(4242)


async def test_deleted_policy_leaves_due_dates_unchanged(session, service, clock):
    ticket_id = await create(service, sla_id=STANDARD_SLA_ID)
    await session.execute(delete(SLAPolicyModel).where(SLAPolicyModel.sla_id == STANDARD_SLA_ID))
    clock.advance(hours=2)

    ticket = await service.apply_sla_dates(ticket_id)

    assert ticket.sla_response_due == T0 + timedelta(hours=1)
    assert ticket.sla_resolution_due == T0 + timedelta(hours=8)


class MissingPolicyRepository(ISLAPolicyRepository):
    """Every policy lookup comes back empty."""

    async def get(self, sla_id):
        return None


async def test_missing_policy_row_is_a_no_op(session, service, clock):
    ticket_id = await create(service, sla_id=STANDARD_SLA_ID)
    clock.advance(hours=3)

    no_policies = TicketLifecycleService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        history_repository=SQLAlchemyHistoryRepository(session),
        comment_repository=SQLAlchemyCommentRepository(session),
        attachment_repository=SQLAlchemyAttachmentRepository(session),
        policy_repository=MissingPolicyRepository(),
        number_generator=SQLAlchemyTicketNumberGenerator(session),
        user_directory=SQLAlchemyUserDirectory(session),
        clock=clock,
    )
    ticket = await no_policies.apply_sla_dates(ticket_id)

    assert ticket.sla_id == STANDARD_SLA_ID
    assert ticket.sla_response_due == T0 + timedelta(hours=1)
    assert ticket.sla_resolution_due == T0 + timedelta(hours=8)
    assert ticket.updated_at == T0


async def test_policy_edit_does_not_move_existing_due_dates(session, service):
    before_id = await create(service, sla_id=STANDARD_SLA_ID)
    await session.execute(
        update(SLAPolicyModel)
        .where(SLAPolicyModel.sla_id == STANDARD_SLA_ID)
        .values(response_time_hours=48, resolution_time_hours=96)
    )

    before = await service.get_ticket(before_id)
    after = await service.get_ticket(await create(service, sla_id=STANDARD_SLA_ID))

    assert before.sla_response_due == T0 + timedelta(hours=1)
    assert before.sla_resolution_due == T0 + timedelta(hours=8)
    assert after.sla_response_due == T0 + timedelta(hours=48)
    assert after.sla_resolution_due == T0 + timedelta(hours=96)


# ── assignment ───────────────────────────────────────────────────────────────
async def test_assign_moves_to_open_and_records_names(service):
    ticket_id = await create(service)

    await service.assign_ticket(ticket_id, AGENT_ID, None, acting_user_id=AGENT_ID)
    ticket = await service.get_ticket(ticket_id)
    assert ticket.status == TicketStatus.OPEN
    assert ticket.assigned_to == AGENT_ID

    entry = (await service.get_history(ticket_id))[-1]
    assert entry.change_type == ChangeType.ASSIGNED
    assert entry.old_value is None
    assert entry.new_value == "Alice Agent"


async def test_assign_to_queue_records_queue_marker(service):
    ticket_id = await create(service)
    await service.assign_ticket(ticket_id, AGENT_ID, None, acting_user_id=None)
    await service.assign_ticket(ticket_id, None, QUEUE_ID, acting_user_id=None)

    entry = (await service.get_history(ticket_id))[-1]
    assert entry.old_value == "Alice Agent"
    assert entry.new_value == f"Queue:{QUEUE_ID}"
    assert entry.actor.actor_type == ActorType.UNKNOWN


async def test_assign_reopens_closed_ticket(service):
    ticket_id = await create(service)
    await service.change_status(ticket_id, TicketStatus.CLOSED, acting_user_id=AGENT_ID)

    await service.assign_ticket(ticket_id, AGENT_ID, QUEUE_ID, acting_user_id=AGENT_ID)

    assert (await service.get_ticket(ticket_id)).status == TicketStatus.OPEN


async def test_assign_keeps_closed_when_reopen_disabled(session, clock):
    service = build_lifecycle_service(
        session, clock=clock, config=Settings(assignment_reopens_closed=False)
    )
    ticket_id = await create(service)
    await service.change_status(ticket_id, TicketStatus.CLOSED, acting_user_id=AGENT_ID)

    await service.assign_ticket(ticket_id, AGENT_ID, None, acting_user_id=AGENT_ID)
    ticket = await service.get_ticket(ticket_id)

    assert ticket.status == TicketStatus.CLOSED
    assert ticket.assigned_to == AGENT_ID


async def test_assign_unknown_ticket(service):
    with pytest.raises(ResourceNotFoundException):
        await service.assign_ticket(4242, AGENT_ID, None, acting_user_id=None)


# ── status ───────────────────────────────────────────────────────────────────
async def test_change_status_records_old_and_new(service, clock):
    ticket_id = await create(service)
    clock.advance(minutes=5)

    await service.change_status(ticket_id, TicketStatus.IN_PROGRESS, acting_user_id=AGENT_ID)
    ticket = await service.get_ticket(ticket_id)
    entry = (await service.get_history(ticket_id))[-1]

    assert ticket.status == TicketStatus.IN_PROGRESS
    assert ticket.updated_at == T0 + timedelta(minutes=5)
    assert entry.change_type == ChangeType.STATUS_CHANGE
    assert (entry.old_value, entry.new_value) == ("New", "In Progress")


async def test_write_from_lagging_clock_keeps_ticket_usable(session, service):
    ticket_id = await create(service)
    lagging = build_lifecycle_service(session, clock=lambda: T0 - timedelta(seconds=1))

    await lagging.change_status(ticket_id, TicketStatus.IN_PROGRESS, acting_user_id=AGENT_ID)

    ticket = await service.get_ticket(ticket_id)
    assert ticket.updated_at == T0 - timedelta(seconds=1)
    assert ticket.status == TicketStatus.IN_PROGRESS

    await service.assign_ticket(ticket_id, AGENT_ID, None, acting_user_id=AGENT_ID)
    await service.add_comment(ticket_id, AGENT_ID, "Still reachable")
    assert (await service.get_ticket(ticket_id)).updated_at == T0


async def test_same_status_change_is_still_logged(service):
    ticket_id = await create(service)
    await service.change_status(ticket_id, TicketStatus.NEW, acting_user_id=AGENT_ID)

    history = await service.get_history(ticket_id)
    assert [e.change_type for e in history] == [ChangeType.CREATED, ChangeType.STATUS_CHANGE]
    assert (history[-1].old_value, history[-1].new_value) == ("New", "New")


async def test_rejected_transition_writes_nothing(session, clock):
    service = build_lifecycle_service(
        session, clock=clock, transition_policy=lambda current, target: False
    )
    ticket_id = await create(service)

    with pytest.raises(InvalidTransitionException):
        await service.change_status(ticket_id, TicketStatus.RESOLVED, acting_user_id=AGENT_ID)

    assert (await service.get_ticket(ticket_id)).status == TicketStatus.NEW
    assert len(await service.get_history(ticket_id)) == 1


# ── comments & attachments ───────────────────────────────────────────────────
async def test_long_comment_is_summarized_in_history(service):
    ticket_id = await create(service)
    text = "x" * 250

    comment_id = await service.add_comment(ticket_id, AGENT_ID, text)
    [comment] = await service.list_comments(ticket_id)
    entry = (await service.get_history(ticket_id))[-1]

    assert comment.comment_id == comment_id
    assert comment.comment_text == text
    assert entry.change_type == ChangeType.COMMENT_ADDED
    assert entry.new_value == "x" * 200


async def test_comment_bumps_updated_at(service, clock):
    ticket_id = await create(service)
    clock.advance(hours=1)
    await service.add_comment(ticket_id, AGENT_ID, "Looking into it")
    assert (await service.get_ticket(ticket_id)).updated_at == T0 + timedelta(hours=1)


async def test_internal_comments_can_be_filtered(service):
    ticket_id = await create(service)
    await service.add_comment(ticket_id, AGENT_ID, "Customer reply", internal=False)
    await service.add_comment(ticket_id, AGENT_ID, "Agent note", internal=True)

    assert len(await service.list_comments(ticket_id)) == 2
    public = await service.list_comments(ticket_id, include_internal=False)
    assert [c.comment_text for c in public] == ["Customer reply"]


async def test_blank_comment_rejected(service):
    ticket_id = await create(service)
    with pytest.raises(ValidationException):
        await service.add_comment(ticket_id, AGENT_ID, "  \n ")


async def test_comment_on_unknown_ticket(service):
    with pytest.raises(ResourceNotFoundException):
        await service.add_comment(4242, AGENT_ID, "hello")


async def test_attachment_metadata_without_history(service):
    ticket_id = await create(service)
    attachment_id = await service.add_attachment(
        ticket_id, "screenshot.png", content_type="image/png", file_size=2048,
        url="s3://itsm/attachments/screenshot.png",
    )

    [attachment] = await service.list_attachments(ticket_id)
    assert attachment.attachment_id == attachment_id
    assert attachment.file_name == "screenshot.png"
    assert attachment.file_size == 2048
    assert len(await service.get_history(ticket_id)) == 1


async def test_attachment_negative_size_rejected(service):
    ticket_id = await create(service)
    with pytest.raises(ValidationException):
        await service.add_attachment(ticket_id, "a.txt", file_size=-1)


# ── read projections ─────────────────────────────────────────────────────────
async def test_summary_resolves_reference_names(service):
    ticket_id = await create(service)
    await service.assign_ticket(ticket_id, AGENT_ID, QUEUE_ID, acting_user_id=AGENT_ID)

    summary = await service.get_summary(ticket_id)

    assert summary.customer_name == "Acme Corp"
    assert summary.created_by_name == "Bob Requester"
    assert summary.assigned_to_name == "Alice Agent"
    assert summary.queue_name == "Service Desk"


async def test_summary_of_unknown_ticket(service):
    with pytest.raises(ResourceNotFoundException):
        await service.get_summary(4242)


async def test_list_summaries_filters_by_status(service):
    open_id = await create(service, title="Printer jam")
    await create(service, title="New laptop request")
    await service.assign_ticket(open_id, AGENT_ID, None, acting_user_id=AGENT_ID)

    summaries = await service.list_summaries(TicketListQuery(status=TicketStatus.OPEN))

    assert [s.ticket_id for s in summaries] == [open_id]
    assert len(await service.list_summaries(TicketListQuery())) == 2
