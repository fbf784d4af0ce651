"""
Lifecycle Infrastructure Models
================================

SQLAlchemy ORM models for the lifecycle module.

Users, customers, queues and SLA policies are reference rows owned by
external collaborators; the engine reads them and relies on their foreign
keys but never writes them.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from itsm.config import TicketPriority, TicketSource, TicketStatus
from itsm.infrastructure.database import Base, UTCDateTime, utc_now

# BIGINT identities do not autoincrement on SQLite
BigIntId = BigInteger().with_variant(Integer, "sqlite")


# ========== Reference data ==========

class UserModel(Base):
    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), unique=True, nullable=True)
    is_agent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class CustomerModel(Base):
    __tablename__ = "customers"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class QueueModel(Base):
    __tablename__ = "queues"

    queue_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class SLAPolicyModel(Base):
    __tablename__ = "sla_policies"

    sla_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    priority: Mapped[TicketPriority] = mapped_column(String(32), nullable=False)
    response_time_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_time_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("response_time_hours >= 0", name="ck_sla_response_non_negative"),
        CheckConstraint("resolution_time_hours >= 0", name="ck_sla_resolution_non_negative"),
    )


# ========== Lifecycle tables ==========

class TicketNumberSequenceModel(Base):
    """
    Counter row behind ticket numbers.

    Incremented with UPDATE ... RETURNING so the row lock serializes every
    process sharing the database.
    """
    __tablename__ = "ticket_number_sequences"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_value: Mapped[int] = mapped_column(BigInteger, nullable=False)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    ticket_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    title: Mapped[str] = mapped_column(String(250), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.customer_id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    assigned_to: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    queue_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("queues.queue_id", ondelete="SET NULL"), nullable=True
    )

    priority: Mapped[TicketPriority] = mapped_column(
        String(32), nullable=False, default=TicketPriority.MEDIUM.value
    )
    status: Mapped[TicketStatus] = mapped_column(
        String(32), nullable=False, default=TicketStatus.NEW.value
    )
    source: Mapped[TicketSource] = mapped_column(
        String(32), nullable=False, default=TicketSource.PORTAL.value
    )

    # SLA snapshot
    sla_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("sla_policies.sla_id", ondelete="SET NULL"), nullable=True
    )
    sla_response_due: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sla_resolution_due: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_ticket_status_priority", "status", "priority"),
        Index("idx_ticket_queue", "queue_id"),
        Index("idx_ticket_assigned", "assigned_to"),
        Index("idx_ticket_created", "created_at"),
    )


class TicketHistoryModel(Base):
    """Append-only audit trail; rows are never updated."""
    __tablename__ = "ticket_history"

    history_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.ticket_id", ondelete="CASCADE"), nullable=False, index=True
    )
    changed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    actor_type: Mapped[str] = mapped_column(String(16), nullable=False)
    change_type: Mapped[str] = mapped_column(String(80), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class TicketCommentModel(Base):
    __tablename__ = "ticket_comments"

    comment_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.ticket_id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class TicketAttachmentModel(Base):
    __tablename__ = "ticket_attachments"

    attachment_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.ticket_id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
