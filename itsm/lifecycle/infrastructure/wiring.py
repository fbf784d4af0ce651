"""
Service Wiring
==============

Builds application services on top of one AsyncSession so that every
repository of a call shares the same transaction.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from itsm.config import Settings, settings as default_settings
from itsm.infrastructure.database import utc_now
from itsm.lifecycle.application import EscalationService, TicketLifecycleService
from itsm.lifecycle.application.services import Clock
from itsm.lifecycle.domain import TicketNumberFormat, TransitionPolicy, allow_any_transition
from itsm.lifecycle.infrastructure.repositories import (
    SQLAlchemyAttachmentRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketNumberGenerator,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserDirectory,
)


def build_lifecycle_service(
    session: AsyncSession,
    clock: Clock = utc_now,
    transition_policy: TransitionPolicy = allow_any_transition,
    config: Optional[Settings] = None,
) -> TicketLifecycleService:
    config = config or default_settings
    number_generator = SQLAlchemyTicketNumberGenerator(
        session,
        TicketNumberFormat(prefix=config.ticket_number_prefix, width=config.ticket_number_width),
        start=config.ticket_number_start,
    )

    return TicketLifecycleService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        history_repository=SQLAlchemyHistoryRepository(session),
        comment_repository=SQLAlchemyCommentRepository(session),
        attachment_repository=SQLAlchemyAttachmentRepository(session),
        policy_repository=SQLAlchemySLAPolicyRepository(session),
        number_generator=number_generator,
        user_directory=SQLAlchemyUserDirectory(session),
        clock=clock,
        transition_policy=transition_policy,
        assignment_reopens_closed=config.assignment_reopens_closed,
        history_summary_length=config.history_summary_length,
    )


def build_escalation_service(session: AsyncSession, clock: Clock = utc_now) -> EscalationService:
    return EscalationService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        history_repository=SQLAlchemyHistoryRepository(session),
        clock=clock,
    )
