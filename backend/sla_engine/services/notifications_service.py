"""Service helpers for SLA notification rows and their ticket sentinels."""

from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy.orm import Session

from sla_engine.core.clock import iso, utcnow
from sla_engine.models.notification import Notification
from sla_engine.models.ticket import Ticket


def build_sla_payload(
    *,
    tenant_code: str,
    ticket_id: int,
    percent_used: int,
    due_at: dt.datetime | None,
    sla_name: str | None,
    phase: str,
) -> dict[str, Any]:
    return {
        "tenantCode": tenant_code,
        "ticketId": ticket_id,
        "percentUsed": percent_used,
        "dueAt": iso(due_at),
        "slaName": sla_name,
        "phase": phase,
    }


def record_sla_notification(
    db: Session,
    *,
    ticket: Ticket,
    notification_type: str,
    severity: str,
    message: str,
    payload: dict[str, Any],
    sentinel: str,
    now: dt.datetime | None = None,
) -> Notification:
    """Insert the notification and stamp the ticket sentinel. Caller commits both together."""
    stamped_at = now or utcnow()
    record = Notification(
        ticket_id=ticket.id,
        type=notification_type,
        severity=severity,
        message=message,
        payload=payload,
        created_at=stamped_at,
    )
    db.add(record)
    setattr(ticket, sentinel, stamped_at)
    return record
