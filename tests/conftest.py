"""Shared fixtures: in-memory SQLite database, seeded reference data, frozen clock."""
from datetime import datetime, timedelta, timezone

import pytest

from itsm.config import TicketPriority
from itsm.infrastructure.database import build_engine, build_session_maker, create_tables
from itsm.lifecycle.infrastructure import (
    CustomerModel,
    QueueModel,
    SLAPolicyModel,
    UserModel,
    build_escalation_service,
    build_lifecycle_service,
)

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

AGENT_ID = 1
REQUESTER_ID = 2
CUSTOMER_ID = 1
QUEUE_ID = 1
STANDARD_SLA_ID = 1   # 1h response / 8h resolution
URGENT_SLA_ID = 2     # 0h response / 4h resolution


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
async def engine():
    eng = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(eng)

    async with build_session_maker(eng)() as s:
        s.add_all([
            UserModel(user_id=AGENT_ID, username="alice", full_name="Alice Agent", is_agent=True),
            UserModel(user_id=REQUESTER_ID, username="bob", full_name="Bob Requester"),
            CustomerModel(customer_id=CUSTOMER_ID, name="Acme Corp", company="Acme"),
            QueueModel(queue_id=QUEUE_ID, name="Service Desk"),
            SLAPolicyModel(
                sla_id=STANDARD_SLA_ID, name="Standard",
                priority=TicketPriority.MEDIUM.value,
                response_time_hours=1, resolution_time_hours=8,
            ),
            SLAPolicyModel(
                sla_id=URGENT_SLA_ID, name="Urgent",
                priority=TicketPriority.CRITICAL.value,
                response_time_hours=0, resolution_time_hours=4,
            ),
        ])
        await s.commit()

    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s
        await s.rollback()


@pytest.fixture
def service(session, clock):
    return build_lifecycle_service(session, clock=clock)


@pytest.fixture
def escalation(session, clock):
    return build_escalation_service(session, clock=clock)
