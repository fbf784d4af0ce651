"""
Lifecycle Infrastructure Layer
===============================

Infrastructure implementations for the ticket lifecycle:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- Wiring: Service construction over one session
"""

from itsm.lifecycle.infrastructure.models import (
    CustomerModel,
    QueueModel,
    SLAPolicyModel,
    TicketAttachmentModel,
    TicketCommentModel,
    TicketHistoryModel,
    TicketModel,
    TicketNumberSequenceModel,
    UserModel,
)
from itsm.lifecycle.infrastructure.repositories import (
    SQLAlchemyAttachmentRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketNumberGenerator,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserDirectory,
)
from itsm.lifecycle.infrastructure.wiring import (
    build_escalation_service,
    build_lifecycle_service,
)

__all__ = [
    "CustomerModel",
    "QueueModel",
    "SLAPolicyModel",
    "TicketAttachmentModel",
    "TicketCommentModel",
    "TicketHistoryModel",
    "TicketModel",
    "TicketNumberSequenceModel",
    "UserModel",
    "SQLAlchemyAttachmentRepository",
    "SQLAlchemyCommentRepository",
    "SQLAlchemyHistoryRepository",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemyTicketNumberGenerator",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUserDirectory",
    "build_escalation_service",
    "build_lifecycle_service",
]
