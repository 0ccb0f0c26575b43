"""Internal SLA endpoints: ticket status, AI facts, pool scoring and SLA selection."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from sla_engine.core.deps import get_session_provider, get_tenant_session, require_internal_token
from sla_engine.core.exceptions import NotFoundError
from sla_engine.db.session import TenantSessionProvider
from sla_engine.models.ticket import Ticket
from sla_engine.schemas.sla import PoolRecalculateOut, PoolScoreOut, SLAResolveOut, SLAResolveRequest
from sla_engine.services.pool.scoring import recalculate_pool_scores, update_ticket_pool_score
from sla_engine.services.sla.catalog import load_sla_definition, resolve_applicable_sla
from sla_engine.services.sla.state import build_sla_facts, compute_sla_status

router = APIRouter(dependencies=[Depends(require_internal_token)])
logger = logging.getLogger(__name__)


def _load_ticket(db: Session, ticket_id: int) -> Ticket:
    ticket = db.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError("ticket_not_found", details={"ticket_id": ticket_id})
    return ticket


@router.get("/{tenant_code}/tickets/{ticket_id}/status")
def get_ticket_sla_status(
    ticket_id: int = Path(..., ge=1),
    db: Session = Depends(get_tenant_session),
) -> dict[str, Any]:
    ticket = _load_ticket(db, ticket_id)
    sla = load_sla_definition(db, ticket.sla_definition_id, active_only=False)
    return {"ticket_id": ticket.id, "sla_source": ticket.sla_source, **compute_sla_status(ticket, sla)}


@router.get("/{tenant_code}/tickets/{ticket_id}/facts")
def get_ticket_sla_facts(
    ticket_id: int = Path(..., ge=1),
    db: Session = Depends(get_tenant_session),
) -> dict[str, Any]:
    ticket = _load_ticket(db, ticket_id)
    sla = load_sla_definition(db, ticket.sla_definition_id, active_only=False)
    return {"ticket_id": ticket.id, **build_sla_facts(ticket, sla)}


@router.post("/{tenant_code}/tickets/{ticket_id}/pool-score", response_model=PoolScoreOut)
async def score_pool_ticket(
    tenant_code: str = Path(..., min_length=1, max_length=64),
    ticket_id: int = Path(..., ge=1),
    use_ai: bool = Query(default=True),
    provider: TenantSessionProvider = Depends(get_session_provider),
) -> dict[str, Any]:
    result = await update_ticket_pool_score(tenant_code, ticket_id, use_ai, provider=provider)
    if not result.get("success") and result.get("message") == "Ticket not found":
        raise NotFoundError("ticket_not_found", details={"ticket_id": ticket_id})
    return result


@router.post("/{tenant_code}/pool/recalculate", response_model=PoolRecalculateOut)
async def recalculate_pool(
    tenant_code: str = Path(..., min_length=1, max_length=64),
    use_ai: bool = Query(default=True),
    provider: TenantSessionProvider = Depends(get_session_provider),
) -> dict[str, Any]:
    return await recalculate_pool_scores(tenant_code, use_ai, provider=provider)


@router.post("/{tenant_code}/resolve", response_model=SLAResolveOut)
def resolve_ticket_sla(
    payload: SLAResolveRequest,
    tenant_code: str = Path(..., min_length=1, max_length=64),
    provider: TenantSessionProvider = Depends(get_session_provider),
) -> dict[str, Any]:
    resolution = resolve_applicable_sla(tenant_code, payload.model_dump(), provider=provider)
    if not resolution.found:
        logger.warning("No SLA resolved tenant=%s payload=%s", tenant_code, payload.model_dump())
    return {"sla_id": resolution.sla_id, "source": resolution.source}
