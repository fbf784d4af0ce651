"""
Lifecycle Application Services
===============================

Application services orchestrate the lifecycle rules and coordinate
between domain entities and repositories.

Every public operation runs inside the caller's transaction: the session
behind the repositories is committed or rolled back as one unit by
`get_session` / `get_session_context`.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Callable, List, Optional

from itsm.config import (
    ChangeType, TicketPriority, TicketSource, TicketStatus,
    ESCALATABLE_STATUSES, TERMINAL_STATUSES,
)
from itsm.core import (
    InvalidTransitionException,
    ResourceNotFoundException, ValidationException,
)
from itsm.infrastructure.database import utc_now
from itsm.lifecycle.application.dto import TicketListQuery
from itsm.lifecycle.domain import (
    Actor, Attachment, Comment, HistoryEntry, PriorityLadder, SLACalculator,
    SLAPolicy, SYSTEM_ACTOR, Ticket, TicketSummary, TransitionPolicy,
    allow_any_transition, render_assignee, summarize,
)
from itsm.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

Clock = Callable[[], datetime]


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: int, for_update: bool = False) -> Optional[Ticket]:
        """Get ticket by id, optionally locking its row."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket and return it with its id."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Write the mutable fields of an existing ticket."""

    @abstractmethod
    async def list_overdue_ids(
        self,
        statuses: List[TicketStatus],
        as_of: datetime
    ) -> List[int]:
        """Ids of tickets in `statuses` whose resolution due is before `as_of`."""

    @abstractmethod
    async def get_summary(self, ticket_id: int) -> Optional[TicketSummary]:
        """Ticket plus resolved reference names."""

    @abstractmethod
    async def list_summaries(self, query: TicketListQuery) -> List[TicketSummary]:
        """Filtered summary projection."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager:
        """Nested transaction; rolled back alone on error."""


class IHistoryRepository(ABC):
    """Interface for the append-only history log."""

    @abstractmethod
    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        """Append one entry."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int) -> List[HistoryEntry]:
        """Entries of a ticket in commit order."""


class ICommentRepository(ABC):
    """Interface for comment data access."""

    @abstractmethod
    async def add(self, comment: Comment) -> Comment:
        """Insert a comment."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int, include_internal: bool = True) -> List[Comment]:
        """Comments of a ticket, oldest first."""


class IAttachmentRepository(ABC):
    """Interface for attachment metadata."""

    @abstractmethod
    async def add(self, attachment: Attachment) -> Attachment:
        """Insert attachment metadata."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int) -> List[Attachment]:
        """Attachments of a ticket, oldest first."""


class ISLAPolicyRepository(ABC):
    """Read access to SLA policies."""

    @abstractmethod
    async def get(self, sla_id: int) -> Optional[SLAPolicy]:
        """Get policy by id, None if it no longer exists."""


class ITicketNumberGenerator(ABC):
    """Source of unique, increasing ticket numbers."""

    @abstractmethod
    async def next_number(self, at: datetime) -> str:
        """Allocate the next ticket number, year taken from `at`."""


class IUserDirectory(ABC):
    """Read access to user display names in the reference store."""

    @abstractmethod
    async def display_name(self, user_id: int) -> Optional[str]:
        """Full name of a user, None if unknown."""


# ========== Application Services ==========

class TicketLifecycleService:
    """
    Ticket creation, SLA application, assignment, status changes,
    comments and attachments.

    Each mutation writes the ticket and its history entry through the same
    session, so both are committed or rolled back together.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        history_repository: IHistoryRepository,
        comment_repository: ICommentRepository,
        attachment_repository: IAttachmentRepository,
        policy_repository: ISLAPolicyRepository,
        number_generator: ITicketNumberGenerator,
        user_directory: IUserDirectory,
        clock: Clock = utc_now,
        transition_policy: TransitionPolicy = allow_any_transition,
        assignment_reopens_closed: bool = True,
        history_summary_length: int = 200,
    ):
        self._tickets = ticket_repository
        self._history = history_repository
        self._comments = comment_repository
        self._attachments = attachment_repository
        self._policies = policy_repository
        self._numbers = number_generator
        self._users = user_directory
        self._clock = clock
        self._transition_policy = transition_policy
        self._assignment_reopens_closed = assignment_reopens_closed
        self._history_summary_length = history_summary_length

    # ── creation & SLA ────────────────────────────────────────────────────

    async def create_ticket(
        self,
        title: str,
        description: Optional[str],
        customer_id: Optional[int],
        created_by: Optional[int],
        queue_id: Optional[int] = None,
        priority: TicketPriority = TicketPriority.MEDIUM,
        source: TicketSource = TicketSource.PORTAL,
        sla_id: Optional[int] = None,
    ) -> int:
        """
        Create a ticket in status New and return its id.

        Writes a CREATED history entry and applies SLA due dates when a
        policy is attached.

        Raises:
            ValidationException: blank title
            StaleReferenceException: unknown customer, user, queue or policy
        """
        if not title or not title.strip():
            raise ValidationException("title must not be empty", {"field": "title"})

        now = self._clock()
        ticket_number = await self._numbers.next_number(now)

        ticket = await self._tickets.add(Ticket(
            ticket_number=ticket_number,
            title=title,
            description=description,
            customer_id=customer_id,
            created_by=created_by,
            queue_id=queue_id,
            priority=priority,
            status=TicketStatus.NEW,
            source=source,
            sla_id=sla_id,
            created_at=now,
            updated_at=now,
        ))

        await self._history.append(HistoryEntry(
            ticket_id=ticket.ticket_id,
            change_type=ChangeType.CREATED,
            actor=Actor.user(created_by),
            created_at=now,
            old_value=None,
            new_value=title,
        ))

        await self.apply_sla_dates(ticket.ticket_id)

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.ticket_id,
                "ticket_number": ticket_number,
                "priority": priority.value,
                "sla_id": sla_id,
            }
        )
        return ticket.ticket_id

    async def apply_sla_dates(self, ticket_id: int) -> Ticket:
        """
        Snapshot SLA due dates onto a ticket, anchored at the current time.

        No-op when the ticket has no policy or its policy was deleted.

        Raises:
            ResourceNotFoundException: unknown ticket
        """
        ticket = await self._require_ticket(ticket_id)
        if ticket.sla_id is None:
            return ticket

        policy = await self._policies.get(ticket.sla_id)
        if policy is None:
            logger.warning(
                "SLA policy missing, due dates left unchanged",
                extra={"ticket_id": ticket_id, "sla_id": ticket.sla_id}
            )
            return ticket

        now = self._clock()
        response_due, resolution_due = SLACalculator.due_dates(policy, now)
        ticket.apply_sla(response_due, resolution_due, now)
        return await self._tickets.save(ticket)

    async def attach_sla_policy(
        self,
        ticket_id: int,
        sla_id: Optional[int],
    ) -> Ticket:
        """
        Attach (or detach with None) a policy and re-snapshot due dates.

        Detaching clears both due dates.
        """
        ticket = await self._require_ticket(ticket_id)
        ticket.sla_id = sla_id
        if sla_id is None:
            ticket.sla_response_due = None
            ticket.sla_resolution_due = None
        ticket.touch(self._clock())
        await self._tickets.save(ticket)
        return await self.apply_sla_dates(ticket_id)

    # ── assignment & status ───────────────────────────────────────────────

    async def assign_ticket(
        self,
        ticket_id: int,
        user_id: Optional[int],
        queue_id: Optional[int],
        acting_user_id: Optional[int],
    ) -> None:
        """
        Assign a ticket to a user and/or queue and move it to Open.

        Assignee existence is not checked here; the reference store's
        foreign keys are the contract.
        """
        ticket = await self._require_ticket(ticket_id)
        now = self._clock()

        old_value = await self._assignee_text(ticket.assigned_to, ticket.queue_id)
        new_value = await self._assignee_text(user_id, queue_id)

        ticket.assigned_to = user_id
        ticket.queue_id = queue_id
        if self._assignment_reopens_closed or ticket.status not in TERMINAL_STATUSES:
            ticket.status = TicketStatus.OPEN
        ticket.touch(now)
        await self._tickets.save(ticket)

        await self._history.append(HistoryEntry(
            ticket_id=ticket_id,
            change_type=ChangeType.ASSIGNED,
            actor=Actor.user(acting_user_id),
            created_at=now,
            old_value=old_value,
            new_value=new_value,
        ))

        logger.info(
            "Ticket assigned",
            extra={"ticket_id": ticket_id, "assigned_to": user_id, "queue_id": queue_id}
        )

    async def change_status(
        self,
        ticket_id: int,
        new_status: TicketStatus,
        acting_user_id: Optional[int],
    ) -> None:
        """
        Set a ticket's status.

        Same-status changes are still recorded.

        Raises:
            ResourceNotFoundException: unknown ticket
            InvalidTransitionException: the configured policy rejected the move
        """
        ticket = await self._require_ticket(ticket_id)
        old_status = ticket.status

        if not self._transition_policy(old_status, new_status):
            raise InvalidTransitionException(ticket_id, old_status.value, new_status.value)

        now = self._clock()
        ticket.status = new_status
        ticket.touch(now)
        await self._tickets.save(ticket)

        await self._history.append(HistoryEntry(
            ticket_id=ticket_id,
            change_type=ChangeType.STATUS_CHANGE,
            actor=Actor.user(acting_user_id),
            created_at=now,
            old_value=old_status.value,
            new_value=new_status.value,
        ))

        logger.info(
            "Ticket status changed",
            extra={"ticket_id": ticket_id, "old_status": old_status.value, "new_status": new_status.value}
        )

    # ── comments & attachments ────────────────────────────────────────────

    async def add_comment(
        self,
        ticket_id: int,
        author_id: Optional[int],
        text: str,
        internal: bool = False,
    ) -> int:
        """
        Add a comment and return its id.

        History receives only the first `history_summary_length` characters.
        """
        if not text or not text.strip():
            raise ValidationException("comment text must not be empty", {"field": "text"})

        ticket = await self._require_ticket(ticket_id)
        now = self._clock()

        comment = await self._comments.add(Comment(
            ticket_id=ticket_id,
            author_id=author_id,
            comment_text=text,
            internal=internal,
            created_at=now,
        ))

        await self._history.append(HistoryEntry(
            ticket_id=ticket_id,
            change_type=ChangeType.COMMENT_ADDED,
            actor=Actor.user(author_id),
            created_at=now,
            old_value=None,
            new_value=summarize(text, self._history_summary_length),
        ))

        ticket.touch(now)
        await self._tickets.save(ticket)

        logger.info(
            "Comment added",
            extra={"ticket_id": ticket_id, "comment_id": comment.comment_id, "internal": internal}
        )
        return comment.comment_id

    async def add_attachment(
        self,
        ticket_id: int,
        file_name: str,
        content_type: Optional[str] = None,
        file_size: Optional[int] = None,
        url: Optional[str] = None,
    ) -> int:
        if not file_name or not file_name.strip():
            raise ValidationException("file_name must not be empty", {"field": "file_name"})
        if file_size is not None and file_size < 0:
            raise ValidationException("file_size must be >= 0", {"field": "file_size"})

        await self._require_ticket(ticket_id)
        attachment = await self._attachments.add(Attachment(
            ticket_id=ticket_id,
            file_name=file_name,
            content_type=content_type,
            file_size=file_size,
            url=url,
            created_at=self._clock(),
        ))
        return attachment.attachment_id

    # ── reads ─────────────────────────────────────────────────────────────

    async def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = await self._tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def get_summary(self, ticket_id: int) -> TicketSummary:
        summary = await self._tickets.get_summary(ticket_id)
        if summary is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return summary

    async def list_summaries(self, query: TicketListQuery) -> List[TicketSummary]:
        return await self._tickets.list_summaries(query)

    async def get_history(self, ticket_id: int) -> List[HistoryEntry]:
        await self.get_ticket(ticket_id)
        return await self._history.list_for_ticket(ticket_id)

    async def list_comments(self, ticket_id: int, include_internal: bool = True) -> List[Comment]:
        await self.get_ticket(ticket_id)
        return await self._comments.list_for_ticket(ticket_id, include_internal)

    async def list_attachments(self, ticket_id: int) -> List[Attachment]:
        await self.get_ticket(ticket_id)
        return await self._attachments.list_for_ticket(ticket_id)

    # ── helpers ───────────────────────────────────────────────────────────

    async def _require_ticket(self, ticket_id: int) -> Ticket:
        """Load and lock a ticket for mutation."""
        ticket = await self._tickets.get(ticket_id, for_update=True)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def _assignee_text(self, user_id: Optional[int], queue_id: Optional[int]) -> Optional[str]:
        name = await self._users.display_name(user_id) if user_id is not None else None
        return render_assignee(user_id, queue_id, name)


class EscalationService:
    """
    SLA breach sweep.

    Invoked by an external timer. Every active ticket whose resolution due
    has passed is bumped one priority step and moved to Escalated.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        history_repository: IHistoryRepository,
        clock: Clock = utc_now,
    ):
        self._tickets = ticket_repository
        self._history = history_repository
        self._clock = clock

    async def run_sweep(self) -> int:
        """
        Escalate overdue active tickets.

        Each candidate is re-checked under a row lock in its own savepoint;
        a failure on one ticket is logged and the sweep moves on.

        Returns:
            Number of tickets actually escalated. Overdue tickets already at
            Critical are scanned but not counted.
        """
        now = self._clock()
        escalated = 0
        failed = 0

        with log_latency(logger, "escalation_sweep"):
            candidate_ids = await self._tickets.list_overdue_ids(ESCALATABLE_STATUSES, now)

            for ticket_id in candidate_ids:
                try:
                    async with self._tickets.savepoint():
                        if await self._escalate_one(ticket_id, now):
                            escalated += 1
                except Exception as e:
                    # One bad ticket must not undo escalations already made
                    failed += 1
                    logger.error(
                        "Escalation failed for ticket",
                        extra={"ticket_id": ticket_id, "error": str(e), "error_type": type(e).__name__},
                        exc_info=True
                    )

        logger.info(
            "Escalation sweep finished",
            extra={"candidates": len(candidate_ids), "escalated": escalated, "failed": failed}
        )
        return escalated

    async def _escalate_one(self, ticket_id: int, now: datetime) -> bool:
        ticket = await self._tickets.get(ticket_id, for_update=True)

        # Changed by someone else since the candidate snapshot
        if ticket is None or not ticket.is_escalatable or not ticket.is_resolution_overdue(now):
            return False

        if PriorityLadder.is_ceiling(ticket.priority):
            return False
        new_priority = PriorityLadder.escalate(ticket.priority)

        old_priority = ticket.priority
        ticket.priority = new_priority
        ticket.status = TicketStatus.ESCALATED
        ticket.touch(now)
        await self._tickets.save(ticket)

        await self._history.append(HistoryEntry(
            ticket_id=ticket_id,
            change_type=ChangeType.ESCALATED,
            actor=SYSTEM_ACTOR,
            created_at=now,
            old_value=old_priority.value,
            new_value=new_priority.value,
        ))

        logger.info(
            "Ticket escalated",
            extra={"ticket_id": ticket_id, "old_priority": old_priority.value, "new_priority": new_priority.value}
        )
        return True
