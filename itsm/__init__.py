"""
ITSM Ticket Lifecycle
=====================

Ticket lifecycle and SLA engine for an IT service management backend.

Modules:
- Lifecycle: ticket creation, assignment, status, comments, history
- Escalation: SLA breach sweep driven by an external timer
"""

__version__ = "1.0.0"
