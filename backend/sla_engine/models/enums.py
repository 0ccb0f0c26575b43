"""Shared enum values used by the database models and services."""

from __future__ import annotations

import enum


class TenantStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


class TicketStatus(str, enum.Enum):
    open = "open"
    in_progress = "in-progress"
    pending = "pending"
    resolved = "resolved"
    closed = "closed"


TERMINAL_TICKET_STATUSES = frozenset({TicketStatus.resolved, TicketStatus.closed})


class TicketPriority(str, enum.Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class PoolStatus(str, enum.Enum):
    OPEN_POOL = "OPEN_POOL"
    CLAIMED_LOCKED = "CLAIMED_LOCKED"
    IN_PROGRESS_OWNED = "IN_PROGRESS_OWNED"
    WAITING_CUSTOMER = "WAITING_CUSTOMER"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"


SCORABLE_POOL_STATUSES = frozenset({PoolStatus.OPEN_POOL, PoolStatus.CLAIMED_LOCKED, PoolStatus.ESCALATED})


class SLASource(str, enum.Enum):
    ticket = "ticket"
    user = "user"
    company = "company"
    category = "category"
    cmdb = "cmdb"
    default = "default"
    error = "error"


class SLAPhase(str, enum.Enum):
    response = "response"
    resolve = "resolve"


class BreachSeverity(str, enum.Enum):
    near = "near"
    breached = "breached"
    past = "past"
