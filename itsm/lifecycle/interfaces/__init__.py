"""
Lifecycle Interfaces Layer
==========================

Interface adapters for the ticket lifecycle.

Contains:
- Controllers: FastAPI route handlers
- Jobs: one-shot escalation sweep for an external timer

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from itsm.lifecycle.interfaces.controllers import escalation_router, router as lifecycle_router

__all__ = ["lifecycle_router", "escalation_router"]
