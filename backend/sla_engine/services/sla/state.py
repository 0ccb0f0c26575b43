"""SLA state evaluation: response/resolve phase state and percent of target used."""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import Any

from sla_engine.core.clock import as_utc, iso, utcnow
from sla_engine.services.sla.business_hours import (
    BusinessHours,
    elapsed_business_minutes,
    is_within_business_hours,
    profile_for_sla,
    remaining_business_minutes,
)

DEFAULT_NEAR_BREACH_PERCENT = 85
PERCENT_CAP = 999

STATE_NO_SLA = "no_sla"
STATE_PENDING = "pending"
STATE_MET = "met"
STATE_BREACHED = "breached"
STATE_NEAR_BREACH = "near_breach"
STATE_ON_TRACK = "on_track"

PHASE_AWAITING_RESPONSE = "awaiting_response"
PHASE_IN_PROGRESS = "in_progress"
PHASE_RESOLVED = "resolved"


@dataclass(frozen=True)
class PhaseState:
    state: str
    percent_elapsed: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def phase_percent(
    started_at: dt.datetime,
    due_at: dt.datetime,
    now: dt.datetime,
    profile: BusinessHours | None,
) -> int:
    """Percent of the phase's allotted time consumed at ``now``."""
    if profile is not None and not profile.is_24x7:
        elapsed = elapsed_business_minutes(started_at, now, profile)
        total = elapsed_business_minutes(started_at, due_at, profile)
    else:
        elapsed = max(0.0, (as_utc(now) - as_utc(started_at)).total_seconds() / 60)
        total = (as_utc(due_at) - as_utc(started_at)).total_seconds() / 60
    if total <= 0:
        return 0
    return round_half_up(elapsed / total * 100)


def _open_phase_state(
    started_at: dt.datetime,
    due_at: dt.datetime,
    near_breach_percent: int | None,
    profile: BusinessHours | None,
    now: dt.datetime,
) -> PhaseState:
    percent = phase_percent(started_at, due_at, now, profile)
    if as_utc(now) > as_utc(due_at):
        return PhaseState(STATE_BREACHED, min(percent, PERCENT_CAP))
    if percent >= (near_breach_percent or DEFAULT_NEAR_BREACH_PERCENT):
        return PhaseState(STATE_NEAR_BREACH, percent)
    return PhaseState(STATE_ON_TRACK, percent)


def calculate_response_state(
    due_at: dt.datetime | None,
    responded_at: dt.datetime | None,
    near_breach_percent: int | None,
    created_at: dt.datetime,
    profile: BusinessHours | None = None,
    *,
    now: dt.datetime | None = None,
) -> PhaseState:
    if due_at is None:
        return PhaseState(STATE_NO_SLA, 0)
    if responded_at is not None:
        met = as_utc(responded_at) <= as_utc(due_at)
        return PhaseState(STATE_MET if met else STATE_BREACHED, 100)
    return _open_phase_state(created_at, due_at, near_breach_percent, profile, now or utcnow())


def calculate_resolve_state(
    due_at: dt.datetime | None,
    first_responded_at: dt.datetime | None,
    resolved_at: dt.datetime | None,
    near_breach_percent: int | None,
    profile: BusinessHours | None = None,
    *,
    now: dt.datetime | None = None,
) -> PhaseState:
    # The resolve clock never starts before the first response.
    if first_responded_at is None:
        return PhaseState(STATE_PENDING, 0)
    if due_at is None:
        return PhaseState(STATE_NO_SLA, 0)
    if resolved_at is not None:
        met = as_utc(resolved_at) <= as_utc(due_at)
        return PhaseState(STATE_MET if met else STATE_BREACHED, 100)
    return _open_phase_state(first_responded_at, due_at, near_breach_percent, profile, now or utcnow())


def sla_phase(ticket: Any) -> str:
    if ticket.resolved_at is not None:
        return PHASE_RESOLVED
    if ticket.first_responded_at is not None:
        return PHASE_IN_PROGRESS
    return PHASE_AWAITING_RESPONSE


def compute_sla_status(ticket: Any, sla: Any | None = None, *, now: dt.datetime | None = None) -> dict[str, Any]:
    current = now or utcnow()
    near = getattr(sla, "near_breach_percent", None) or DEFAULT_NEAR_BREACH_PERCENT
    profile = profile_for_sla(sla)

    response = calculate_response_state(
        ticket.response_due_at,
        ticket.first_responded_at,
        near,
        ticket.created_at,
        profile,
        now=current,
    )
    resolve = calculate_resolve_state(
        ticket.resolve_due_at,
        ticket.first_responded_at,
        ticket.resolved_at,
        near,
        profile,
        now=current,
    )

    outside_business_hours = False
    if profile is not None and not profile.is_24x7:
        outside_business_hours = not is_within_business_hours(current, profile)

    return {
        "sla_definition_id": ticket.sla_definition_id,
        "sla_name": getattr(sla, "name", None),
        "sla_phase": sla_phase(ticket),
        "outside_business_hours": outside_business_hours,
        "response_due_at": iso(ticket.response_due_at),
        "resolve_due_at": iso(ticket.resolve_due_at),
        "response": {
            "due_at": iso(ticket.response_due_at),
            "first_responded_at": iso(ticket.first_responded_at),
            "state": response.state,
            "percent_elapsed": response.percent_elapsed,
        },
        "resolve": {
            "due_at": iso(ticket.resolve_due_at),
            "resolved_at": iso(ticket.resolved_at),
            "state": resolve.state,
            "percent_elapsed": resolve.percent_elapsed,
        },
    }


def build_sla_facts(ticket: Any, sla: Any | None = None, *, now: dt.datetime | None = None) -> dict[str, Any]:
    """SLA status plus remaining business minutes; the SLA context handed to AI prompts."""
    current = now or utcnow()
    status = compute_sla_status(ticket, sla, now=current)
    profile = profile_for_sla(sla)

    response_state = status["response"]["state"]
    resolve_state = status["resolve"]["state"]
    response_remaining = None
    if response_state not in {STATE_MET, STATE_NO_SLA}:
        response_remaining = remaining_business_minutes(ticket.response_due_at, profile, current)
    resolve_remaining = None
    if resolve_state not in {STATE_MET, STATE_PENDING, STATE_NO_SLA}:
        resolve_remaining = remaining_business_minutes(ticket.resolve_due_at, profile, current)

    return {
        "sla_name": status["sla_name"],
        "sla_source": getattr(ticket, "sla_source", None) or "unknown",
        "timezone": profile.timezone if profile is not None else "UTC",
        "outside_business_hours": status["outside_business_hours"],
        "phase": status["sla_phase"],
        "response": {
            "state": response_state,
            "percent_used": status["response"]["percent_elapsed"],
            "due_at": status["response"]["due_at"],
            "remaining_minutes": response_remaining,
        },
        "resolve": {
            "state": resolve_state,
            "percent_used": status["resolve"]["percent_elapsed"],
            "due_at": status["resolve"]["due_at"],
            "remaining_minutes": resolve_remaining,
        },
    }
