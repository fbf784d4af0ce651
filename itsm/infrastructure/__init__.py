"""
Infrastructure Layer
=====================

Database connection management and session lifecycle.
"""
