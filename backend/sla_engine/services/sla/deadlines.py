"""SLA deadline computation and the two lifecycle points that write deadlines."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any

from sla_engine.core.clock import as_utc, utcnow
from sla_engine.services.sla.business_hours import add_business_minutes, profile_for_sla

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deadlines:
    response_due_at: dt.datetime
    resolve_due_at: dt.datetime


def resolve_minutes(sla: Any) -> int:
    override = getattr(sla, "resolve_after_response_minutes", None)
    if override is not None:
        return int(override)
    return int(sla.resolve_target_minutes)


def compute_initial_deadlines(sla: Any, created_at: dt.datetime) -> Deadlines:
    """Response deadline from creation; provisional resolve deadline chained off the response deadline."""
    profile = profile_for_sla(sla)
    response_due_at = add_business_minutes(created_at, int(sla.response_target_minutes), profile)
    resolve_due_at = add_business_minutes(response_due_at, resolve_minutes(sla), profile)
    return Deadlines(response_due_at=response_due_at, resolve_due_at=resolve_due_at)


def compute_resolve_deadline(sla: Any, first_responded_at: dt.datetime) -> dt.datetime:
    return add_business_minutes(first_responded_at, resolve_minutes(sla), profile_for_sla(sla))


def apply_sla_to_ticket(
    ticket: Any,
    sla: Any,
    source: str,
    *,
    applied_at: dt.datetime | None = None,
) -> bool:
    """Stamp the SLA and initial deadlines. Caller is responsible for commit."""
    if ticket.sla_definition_id is not None and ticket.response_due_at is not None:
        return False

    created_at = as_utc(ticket.created_at) or utcnow()
    deadlines = compute_initial_deadlines(sla, created_at)
    ticket.sla_definition_id = sla.id
    ticket.sla_source = source
    ticket.sla_applied_at = applied_at or utcnow()
    ticket.response_due_at = deadlines.response_due_at
    ticket.resolve_due_at = deadlines.resolve_due_at
    logger.info(
        "Applied SLA %s (source=%s) to ticket %s: response_due=%s resolve_due=%s",
        sla.id,
        source,
        ticket.id,
        deadlines.response_due_at.isoformat(),
        deadlines.resolve_due_at.isoformat(),
    )
    return True


def record_first_response(ticket: Any, sla: Any | None, responded_at: dt.datetime | None = None) -> bool:
    """Set first_responded_at once and re-anchor the resolve deadline on it. Caller commits."""
    if ticket.first_responded_at is not None:
        return False

    responded = as_utc(responded_at) or utcnow()
    ticket.first_responded_at = responded
    if sla is not None:
        ticket.resolve_due_at = compute_resolve_deadline(sla, responded)
    return True
