"""Expert pool ranking: AI-assisted urgency scores with a heuristic fallback."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx
from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sla_engine.core.clock import as_utc, iso, utcnow
from sla_engine.core.config import settings
from sla_engine.core.exceptions import AIException, SLAEngineException
from sla_engine.db.session import TenantSessionProvider, get_provider
from sla_engine.models.enums import SCORABLE_POOL_STATUSES, TERMINAL_TICKET_STATUSES
from sla_engine.models.ticket import Ticket
from sla_engine.models.user import Customer, CustomerCompany, User
from sla_engine.services.ai import classify
from sla_engine.services.ai.prompts import POOL_RANKING_TASK
from sla_engine.services.sla.catalog import load_sla_definition
from sla_engine.services.sla.state import build_sla_facts

logger = logging.getLogger(__name__)

Classifier = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]

BASE_SCORE = 50
DEFAULT_AI_SCORE = 50.0
HEURISTIC_REASONING = "Heuristic scoring (AI unavailable)"
_PRIORITY_BONUS = {"critical": 30, "high": 20, "medium": 0, "low": -15}


@dataclass(frozen=True)
class PoolScore:
    pool_score: float
    urgency_factors: list[str] = field(default_factory=list)
    recommended_skills: list[str] = field(default_factory=list)
    complexity_estimate: str = "unknown"
    reasoning: str = ""
    source: str = "heuristic"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AIScoreAttempt:
    score: PoolScore | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.score is not None


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value) or "")


def heuristic_pool_score(ticket: Any, now: dt.datetime | None = None) -> PoolScore:
    current = as_utc(now) or utcnow()
    score = BASE_SCORE + _PRIORITY_BONUS.get(_enum_value(ticket.priority).lower(), 0)

    response_due_at = as_utc(getattr(ticket, "response_due_at", None))
    if response_due_at is not None:
        hours_until_due = (response_due_at - current).total_seconds() / 3600
        if hours_until_due < 0:
            score += 25
        elif hours_until_due < 1:
            score += 20
        elif hours_until_due < 4:
            score += 10

    created_at = as_utc(getattr(ticket, "created_at", None))
    if created_at is not None:
        age_hours = (current - created_at).total_seconds() / 3600
        if age_hours > 24:
            score += min(10, math.floor(age_hours / 24) * 2)

    return PoolScore(pool_score=_clamp(score), reasoning=HEURISTIC_REASONING)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item or "").strip()]


def parse_ai_score(reply: dict[str, Any]) -> PoolScore:
    try:
        raw_score = float(reply.get("pool_score"))
    except (TypeError, ValueError):
        raw_score = DEFAULT_AI_SCORE
    if math.isnan(raw_score):
        raw_score = DEFAULT_AI_SCORE
    return PoolScore(
        pool_score=_clamp(raw_score),
        urgency_factors=_string_list(reply.get("urgency_factors")),
        recommended_skills=_string_list(reply.get("recommended_skills")),
        complexity_estimate=str(reply.get("complexity_estimate") or "medium"),
        reasoning=str(reply.get("reasoning") or ""),
        source="ai",
    )


async def attempt_ai_score(context: dict[str, Any], classifier: Classifier | None = None) -> AIScoreAttempt:
    """One AI scoring attempt as a value; never raises for backend failures."""
    try:
        reply = await (classifier or classify)(POOL_RANKING_TASK, context)
        if not isinstance(reply, dict):
            return AIScoreAttempt(error="AI reply is not an object")
        return AIScoreAttempt(score=parse_ai_score(reply))
    except (AIException, httpx.HTTPError, ValueError, TypeError) as exc:
        return AIScoreAttempt(error=f"{exc.__class__.__name__}: {exc}")


async def score_ticket(
    ticket: Any,
    context: dict[str, Any],
    *,
    use_ai: bool = True,
    classifier: Classifier | None = None,
    now: dt.datetime | None = None,
) -> PoolScore:
    if use_ai:
        attempt = await attempt_ai_score(context, classifier)
        if attempt.ok:
            return attempt.score
        logger.warning("AI pool scoring failed for ticket %s: %s", getattr(ticket, "id", "?"), attempt.error)
    return heuristic_pool_score(ticket, now)


def build_pool_context(db: Session, ticket: Ticket, now: dt.datetime | None = None) -> dict[str, Any]:
    requester_name = None
    company_name = None
    if ticket.requester_id:
        requester_name = db.query(User.full_name).filter(User.id == ticket.requester_id).scalar()
        company_name = (
            db.query(CustomerCompany.company_name)
            .join(Customer, Customer.customer_company_id == CustomerCompany.id)
            .filter(Customer.user_id == ticket.requester_id)
            .order_by(Customer.id.asc())
            .limit(1)
            .scalar()
        )

    context: dict[str, Any] = {
        "subject": ticket.title,
        "body": ticket.description,
        "customerName": requester_name or "Unknown",
        "companyName": company_name or "Unknown",
        "createdAt": iso(ticket.created_at),
        "currentStatus": _enum_value(ticket.status),
        "currentPriority": _enum_value(ticket.priority),
        "currentAssignee": "Unassigned (in pool)",
    }
    sla = load_sla_definition(db, ticket.sla_definition_id, active_only=False)
    if sla is not None:
        context["slaFacts"] = build_sla_facts(ticket, sla, now=now)
    return context


async def update_ticket_pool_score(
    tenant_code: str,
    ticket_id: int,
    use_ai: bool = True,
    *,
    provider: TenantSessionProvider | None = None,
    classifier: Classifier | None = None,
) -> dict[str, Any]:
    try:
        with (provider or get_provider()).tenant_session(tenant_code) as db:
            ticket = db.get(Ticket, ticket_id)
            if ticket is None:
                return {"success": False, "message": "Ticket not found"}
            if ticket.pool_status not in SCORABLE_POOL_STATUSES or ticket.status in TERMINAL_TICKET_STATUSES:
                return {"success": False, "message": "Ticket not in pool"}

            now = utcnow()
            context = build_pool_context(db, ticket, now)
            score = await score_ticket(ticket, context, use_ai=use_ai, classifier=classifier, now=now)
            ticket.pool_score = score.pool_score
            ticket.pool_score_updated_at = now
            db.commit()
    except (SLAEngineException, SQLAlchemyError) as exc:
        logger.error("Pool score update failed tenant=%s ticket=%s: %s", tenant_code, ticket_id, exc)
        return {"success": False, "message": str(exc)}

    logger.info("Pool score tenant=%s ticket=%s score=%s source=%s", tenant_code, ticket_id, score.pool_score, score.source)
    return {"success": True, "ticket_id": ticket_id, **score.as_dict()}


def stale_pool_ticket_ids(db: Session, now: dt.datetime, *, limit: int, stale_minutes: int) -> list[int]:
    cutoff = now - dt.timedelta(minutes=stale_minutes)
    rows = (
        db.query(Ticket.id)
        .filter(
            Ticket.pool_status.in_(list(SCORABLE_POOL_STATUSES)),
            Ticket.status.not_in(list(TERMINAL_TICKET_STATUSES)),
            (Ticket.pool_score.is_(None))
            | (Ticket.pool_score_updated_at.is_(None))
            | (Ticket.pool_score_updated_at < cutoff),
        )
        .order_by(case((Ticket.pool_score.is_(None), 0), else_=1), Ticket.created_at.asc(), Ticket.id.asc())
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows]


async def recalculate_pool_scores(
    tenant_code: str,
    use_ai: bool = True,
    *,
    provider: TenantSessionProvider | None = None,
    classifier: Classifier | None = None,
    delay_seconds: float | None = None,
) -> dict[str, Any]:
    """Rescore the unscored and stale pool tickets of a tenant, one at a time."""
    session_provider = provider or get_provider()
    try:
        with session_provider.tenant_session(tenant_code) as db:
            ticket_ids = stale_pool_ticket_ids(
                db,
                utcnow(),
                limit=settings.POOL_SCORE_BATCH_SIZE,
                stale_minutes=settings.POOL_SCORE_STALE_MINUTES,
            )
    except (SLAEngineException, SQLAlchemyError) as exc:
        logger.error("Pool recalculation failed tenant=%s: %s", tenant_code, exc)
        return {"success": False, "message": str(exc)}

    if not ticket_ids:
        return {"success": True, "updated": 0, "total": 0}

    pause = settings.POOL_SCORE_DELAY_MS / 1000 if delay_seconds is None else delay_seconds
    updated = 0
    for index, ticket_id in enumerate(ticket_ids):
        if index and pause > 0:
            await asyncio.sleep(pause)
        result = await update_ticket_pool_score(
            tenant_code,
            ticket_id,
            use_ai,
            provider=session_provider,
            classifier=classifier,
        )
        if result.get("success"):
            updated += 1

    logger.info("Pool scores tenant=%s updated=%s/%s", tenant_code, updated, len(ticket_ids))
    return {"success": True, "updated": updated, "total": len(ticket_ids)}


async def on_ticket_enter_pool(
    tenant_code: str,
    ticket_id: int,
    *,
    provider: TenantSessionProvider | None = None,
    classifier: Classifier | None = None,
    settle_seconds: float | None = None,
) -> dict[str, Any]:
    pause = settings.POOL_ENTRY_SETTLE_MS / 1000 if settle_seconds is None else settle_seconds
    if pause > 0:
        await asyncio.sleep(pause)
    return await update_ticket_pool_score(tenant_code, ticket_id, True, provider=provider, classifier=classifier)
