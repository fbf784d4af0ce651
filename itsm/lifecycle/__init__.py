"""
Ticket Lifecycle Module
=======================

Bounded context for the ticket lifecycle and SLA engine.

Responsibilities:
- Create tickets with unique year-prefixed numbers
- Snapshot SLA response/resolution due dates from a policy
- Assign tickets and change their status
- Attach comments and attachment metadata
- Keep an append-only history of every ticket mutation
- Escalate overdue active tickets one priority step per sweep
"""

__version__ = "1.0.0"
