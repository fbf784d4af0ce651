"""
Lifecycle Infrastructure Repositories
======================================

Concrete implementations of repository interfaces using SQLAlchemy.

All repositories share the caller's AsyncSession; they flush but never
commit, so one service call is one transaction.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from itsm.config import (
    ActorType, ChangeType, TicketPriority, TicketSource, TicketStatus,
)
from itsm.core import RepositoryException, StaleReferenceException
from itsm.lifecycle.application import (
    IAttachmentRepository, ICommentRepository, IHistoryRepository,
    ISLAPolicyRepository, ITicketNumberGenerator, ITicketRepository,
    IUserDirectory, TicketListQuery,
)
from itsm.lifecycle.domain import (
    Actor, Attachment, Comment, HistoryEntry, SLAPolicy, Ticket,
    TicketNumberFormat, TicketSummary,
)
from itsm.lifecycle.infrastructure.models import (
    CustomerModel, QueueModel, SLAPolicyModel, TicketAttachmentModel,
    TicketCommentModel, TicketHistoryModel, TicketModel,
    TicketNumberSequenceModel, UserModel,
)


async def _flush(session: AsyncSession, what: str) -> None:
    """Flush pending writes, translating driver errors."""
    try:
        await session.flush()
    except IntegrityError as e:
        raise StaleReferenceException(
            f"{what} references a row that does not exist",
            {"error": str(e.orig)}
        ) from e
    except SQLAlchemyError as e:
        raise RepositoryException(f"Failed to write {what}", {"error": str(e)}) from e


def _to_ticket(model: TicketModel) -> Ticket:
    return Ticket(
        ticket_id=model.ticket_id,
        ticket_number=model.ticket_number,
        title=model.title,
        description=model.description,
        customer_id=model.customer_id,
        created_by=model.created_by,
        assigned_to=model.assigned_to,
        queue_id=model.queue_id,
        priority=TicketPriority(model.priority),
        status=TicketStatus(model.status),
        source=TicketSource(model.source),
        sla_id=model.sla_id,
        sla_response_due=model.sla_response_due,
        sla_resolution_due=model.sla_resolution_due,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Reads for mutation take a row lock (SELECT ... FOR UPDATE) so concurrent
    writers to one ticket are serialized by the database.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: int, for_update: bool = False) -> Optional[TicketModel]:
        # The row wins over the identity map, also after a savepoint rollback
        stmt = (
            select(TicketModel)
            .where(TicketModel.ticket_id == ticket_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, ticket_id: int, for_update: bool = False) -> Optional[Ticket]:
        model = await self._get_model(ticket_id, for_update)
        return _to_ticket(model) if model else None

    async def add(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            ticket_number=ticket.ticket_number,
            title=ticket.title,
            description=ticket.description,
            customer_id=ticket.customer_id,
            created_by=ticket.created_by,
            assigned_to=ticket.assigned_to,
            queue_id=ticket.queue_id,
            priority=ticket.priority.value,
            status=ticket.status.value,
            source=ticket.source.value,
            sla_id=ticket.sla_id,
            sla_response_due=ticket.sla_response_due,
            sla_resolution_due=ticket.sla_resolution_due,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )
        self._session.add(model)
        await _flush(self._session, "Ticket")

        ticket.ticket_id = model.ticket_id
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        model = await self._get_model(ticket.ticket_id)
        if model is None:
            raise RepositoryException(f"Ticket {ticket.ticket_id} not found")

        model.title = ticket.title
        model.description = ticket.description
        model.assigned_to = ticket.assigned_to
        model.queue_id = ticket.queue_id
        model.priority = ticket.priority.value
        model.status = ticket.status.value
        model.sla_id = ticket.sla_id
        model.sla_response_due = ticket.sla_response_due
        model.sla_resolution_due = ticket.sla_resolution_due
        model.updated_at = ticket.updated_at

        await _flush(self._session, "Ticket")
        return ticket

    async def list_overdue_ids(
        self,
        statuses: List[TicketStatus],
        as_of: datetime
    ) -> List[int]:
        stmt = (
            select(TicketModel.ticket_id)
            .where(and_(
                TicketModel.status.in_([s.value for s in statuses]),
                TicketModel.sla_resolution_due.is_not(None),
                TicketModel.sla_resolution_due < as_of,
            ))
            .order_by(TicketModel.sla_resolution_due.asc(), TicketModel.ticket_id.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    def _summary_select(self):
        creator = aliased(UserModel)
        assignee = aliased(UserModel)
        return (
            select(
                TicketModel,
                CustomerModel.name,
                creator.full_name,
                assignee.full_name,
                QueueModel.name,
            )
            .outerjoin(CustomerModel, CustomerModel.customer_id == TicketModel.customer_id)
            .outerjoin(creator, creator.user_id == TicketModel.created_by)
            .outerjoin(assignee, assignee.user_id == TicketModel.assigned_to)
            .outerjoin(QueueModel, QueueModel.queue_id == TicketModel.queue_id)
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _to_summary(row) -> TicketSummary:
        model, customer_name, created_by_name, assigned_to_name, queue_name = row
        return TicketSummary(
            ticket_id=model.ticket_id,
            ticket_number=model.ticket_number,
            title=model.title,
            priority=TicketPriority(model.priority),
            status=TicketStatus(model.status),
            source=TicketSource(model.source),
            created_at=model.created_at,
            updated_at=model.updated_at,
            sla_response_due=model.sla_response_due,
            sla_resolution_due=model.sla_resolution_due,
            customer_name=customer_name,
            created_by_name=created_by_name,
            assigned_to_name=assigned_to_name,
            queue_name=queue_name,
        )

    async def get_summary(self, ticket_id: int) -> Optional[TicketSummary]:
        stmt = self._summary_select().where(TicketModel.ticket_id == ticket_id)
        result = await self._session.execute(stmt)
        row = result.one_or_none()
        return self._to_summary(row) if row else None

    async def list_summaries(self, query: TicketListQuery) -> List[TicketSummary]:
        stmt = self._summary_select()

        conditions = []
        if query.status is not None:
            conditions.append(TicketModel.status == query.status.value)
        if query.priority is not None:
            conditions.append(TicketModel.priority == query.priority.value)
        if query.queue_id is not None:
            conditions.append(TicketModel.queue_id == query.queue_id)
        if query.assigned_to is not None:
            conditions.append(TicketModel.assigned_to == query.assigned_to)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.ticket_id.desc())
        stmt = stmt.limit(query.limit).offset(query.offset)

        result = await self._session.execute(stmt)
        return [self._to_summary(row) for row in result.all()]

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        try:
            async with self._session.begin_nested():
                yield
        except SQLAlchemyError as e:
            raise RepositoryException("Nested transaction failed", {"error": str(e)}) from e


class SQLAlchemyHistoryRepository(IHistoryRepository):
    """Append-only; there is deliberately no update or delete."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        model = TicketHistoryModel(
            ticket_id=entry.ticket_id,
            changed_by=entry.actor.user_id,
            actor_type=entry.actor.actor_type.value,
            change_type=entry.change_type.value,
            old_value=entry.old_value,
            new_value=entry.new_value,
            created_at=entry.created_at,
        )
        self._session.add(model)
        await _flush(self._session, "History entry")

        return HistoryEntry(
            history_id=model.history_id,
            ticket_id=entry.ticket_id,
            change_type=entry.change_type,
            actor=entry.actor,
            created_at=entry.created_at,
            old_value=entry.old_value,
            new_value=entry.new_value,
        )

    async def list_for_ticket(self, ticket_id: int) -> List[HistoryEntry]:
        stmt = (
            select(TicketHistoryModel)
            .where(TicketHistoryModel.ticket_id == ticket_id)
            .order_by(TicketHistoryModel.history_id.asc())
        )
        result = await self._session.execute(stmt)

        return [
            HistoryEntry(
                history_id=m.history_id,
                ticket_id=m.ticket_id,
                change_type=ChangeType(m.change_type),
                actor=Actor(ActorType(m.actor_type), m.changed_by),
                created_at=m.created_at,
                old_value=m.old_value,
                new_value=m.new_value,
            )
            for m in result.scalars().all()
        ]


class SQLAlchemyCommentRepository(ICommentRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, comment: Comment) -> Comment:
        model = TicketCommentModel(
            ticket_id=comment.ticket_id,
            author_id=comment.author_id,
            comment_text=comment.comment_text,
            internal=comment.internal,
            created_at=comment.created_at,
        )
        self._session.add(model)
        await _flush(self._session, "Comment")
        return self._to_comment(model)

    async def list_for_ticket(self, ticket_id: int, include_internal: bool = True) -> List[Comment]:
        stmt = select(TicketCommentModel).where(TicketCommentModel.ticket_id == ticket_id)
        if not include_internal:
            stmt = stmt.where(TicketCommentModel.internal.is_(False))
        stmt = stmt.order_by(TicketCommentModel.comment_id.asc())

        result = await self._session.execute(stmt)
        return [self._to_comment(m) for m in result.scalars().all()]

    @staticmethod
    def _to_comment(model: TicketCommentModel) -> Comment:
        return Comment(
            comment_id=model.comment_id,
            ticket_id=model.ticket_id,
            author_id=model.author_id,
            comment_text=model.comment_text,
            internal=model.internal,
            created_at=model.created_at,
        )


class SQLAlchemyAttachmentRepository(IAttachmentRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, attachment: Attachment) -> Attachment:
        model = TicketAttachmentModel(
            ticket_id=attachment.ticket_id,
            file_name=attachment.file_name,
            content_type=attachment.content_type,
            file_size=attachment.file_size,
            url=attachment.url,
            created_at=attachment.created_at,
        )
        self._session.add(model)
        await _flush(self._session, "Attachment")
        return self._to_attachment(model)

    async def list_for_ticket(self, ticket_id: int) -> List[Attachment]:
        stmt = (
            select(TicketAttachmentModel)
            .where(TicketAttachmentModel.ticket_id == ticket_id)
            .order_by(TicketAttachmentModel.attachment_id.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_attachment(m) for m in result.scalars().all()]

    @staticmethod
    def _to_attachment(model: TicketAttachmentModel) -> Attachment:
        return Attachment(
            attachment_id=model.attachment_id,
            ticket_id=model.ticket_id,
            file_name=model.file_name,
            content_type=model.content_type,
            file_size=model.file_size,
            url=model.url,
            created_at=model.created_at,
        )


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, sla_id: int) -> Optional[SLAPolicy]:
        stmt = select(SLAPolicyModel).where(SLAPolicyModel.sla_id == sla_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None

        return SLAPolicy(
            sla_id=model.sla_id,
            name=model.name,
            priority=TicketPriority(model.priority),
            response_time_hours=model.response_time_hours,
            resolution_time_hours=model.resolution_time_hours,
        )


class SQLAlchemyUserDirectory(IUserDirectory):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def display_name(self, user_id: int) -> Optional[str]:
        stmt = select(UserModel.full_name).where(UserModel.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class SQLAlchemyTicketNumberGenerator(ITicketNumberGenerator):
    """
    Ticket numbers backed by a database counter row.

    The counter is incremented with UPDATE ... RETURNING inside the caller's
    transaction; the row lock keeps concurrent callers, in this process or
    another, from ever reading the same value.
    """

    SEQUENCE_NAME = "ticket_number"

    def __init__(
        self,
        session: AsyncSession,
        number_format: TicketNumberFormat = TicketNumberFormat(),
        start: int = 1000,
    ):
        self._session = session
        self._format = number_format
        self._start = start

    async def _increment(self) -> Optional[int]:
        stmt = (
            update(TicketNumberSequenceModel)
            .where(TicketNumberSequenceModel.name == self.SEQUENCE_NAME)
            .values(last_value=TicketNumberSequenceModel.last_value + 1)
            .returning(TicketNumberSequenceModel.last_value)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def next_value(self) -> int:
        try:
            value = await self._increment()
            if value is not None:
                return value

            # First use: create the counter row, or lose the race and retry
            try:
                async with self._session.begin_nested():
                    self._session.add(TicketNumberSequenceModel(
                        name=self.SEQUENCE_NAME,
                        last_value=self._start,
                    ))
                return self._start
            except IntegrityError:
                value = await self._increment()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to allocate ticket number", {"error": str(e)}) from e

        if value is None:
            raise RepositoryException("Ticket number counter row is missing")
        return value

    async def next_number(self, at: datetime) -> str:
        return self._format.render(at.year, await self.next_value())
