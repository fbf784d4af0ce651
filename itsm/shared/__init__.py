"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context: structured logging
and HTTP middleware.

DO NOT add ticket lifecycle rules to the shared kernel.
"""
