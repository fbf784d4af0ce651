"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="itsm-lifecycle", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/itsm",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Ticket Numbering ==========
    ticket_number_prefix: str = Field(default="TCKT", description="Ticket number prefix")
    ticket_number_start: int = Field(
        default=1000,
        description="First value handed out by the ticket number counter",
        ge=1
    )
    ticket_number_width: int = Field(
        default=6,
        description="Zero-padded width of the sequence part",
        ge=1,
        le=18
    )

    # ========== Lifecycle ==========
    history_summary_length: int = Field(
        default=200,
        description="Max characters of comment text copied into history",
        ge=1
    )
    assignment_reopens_closed: bool = Field(
        default=True,
        description="Reassigning a Resolved/Closed ticket moves it back to Open"
    )
    escalation_interval_seconds: int = Field(
        default=300,
        description="Interval the external timer should use to call the escalation sweep",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "testing", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketPriority(str, Enum):
    """Ticket priority levels, most urgent first."""
    CRITICAL = "P1_Critical"
    HIGH = "P2_High"
    MEDIUM = "P3_Medium"
    LOW = "P4_Low"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    NEW = "New"
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    ESCALATED = "Escalated"


class TicketSource(str, Enum):
    """Channel a ticket came in through."""
    EMAIL = "Email"
    PHONE = "Phone"
    WEB = "Web"
    PORTAL = "Portal"
    CHAT = "Chat"
    API = "API"


class ChangeType(str, Enum):
    """History entry change types."""
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    STATUS_CHANGE = "STATUS_CHANGE"
    COMMENT_ADDED = "COMMENT_ADDED"
    ESCALATED = "ESCALATED"


class ActorType(str, Enum):
    """Who performed a change recorded in history."""
    USER = "user"
    SYSTEM = "system"      # automated, caller-less changes (escalation sweep)
    UNKNOWN = "unknown"    # caller did not identify itself


# ========== Lists for validation ==========

# Low -> Critical; escalation moves one step to the right
PRIORITY_ESCALATION_ORDER = [
    TicketPriority.LOW, TicketPriority.MEDIUM,
    TicketPriority.HIGH, TicketPriority.CRITICAL
]
ESCALATABLE_STATUSES = [
    TicketStatus.NEW, TicketStatus.OPEN,
    TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD
]
TERMINAL_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
