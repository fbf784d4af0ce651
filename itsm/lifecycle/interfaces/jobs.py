"""
Escalation Job Entry Point
==========================

One-shot escalation sweep for an external timer:

    */5 * * * *  itsm-escalate
"""

import asyncio

from itsm.config import settings
from itsm.infrastructure.database import close_database, get_session_context, init_database
from itsm.lifecycle.infrastructure import build_escalation_service
from itsm.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def run_escalation_sweep() -> int:
    """Run one sweep in its own session; the database must be initialized."""
    async with get_session_context() as session:
        return await build_escalation_service(session).run_sweep()


async def _main() -> int:
    init_database()
    try:
        return await run_escalation_sweep()
    finally:
        await close_database()


def main() -> None:
    setup_logging(settings.log_level, settings.environment)
    escalated = asyncio.run(_main())
    logger.info("Escalation job done", extra={"escalated": escalated})


if __name__ == "__main__":
    main()
