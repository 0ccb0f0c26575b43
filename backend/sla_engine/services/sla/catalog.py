"""SLA selection cascade: which definition applies to a ticket, and from where.

Sources are tried in a fixed order and the first active definition wins:
ticket override, per-user override, company contract, category mapping,
CMDB item, tenant default. Each source is a small resolver object so the
cascade can be reordered or extended by passing a different sequence.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sla_engine.core.exceptions import TenantConnectionError
from sla_engine.db.session import TenantSessionProvider, get_provider
from sla_engine.models.cmdb_item import CMDBItem
from sla_engine.models.enums import SLASource
from sla_engine.models.sla import CategorySLAMapping, SLADefinition
from sla_engine.models.ticket import Ticket
from sla_engine.models.user import Customer, CustomerCompany
from sla_engine.services.sla.deadlines import apply_sla_to_ticket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketSLAContext:
    sla_definition_id: int | None = None
    requester_id: int | None = None
    category: str | None = None
    cmdb_item_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> TicketSLAContext:
        data = payload or {}
        return cls(
            sla_definition_id=_as_int(data.get("sla_definition_id")),
            requester_id=_as_int(data.get("requester_id")),
            category=str(data["category"]) if data.get("category") else None,
            cmdb_item_id=_as_int(data.get("cmdb_item_id")),
        )

    @classmethod
    def from_ticket(cls, ticket: Any) -> TicketSLAContext:
        return cls(
            sla_definition_id=getattr(ticket, "sla_definition_id", None),
            requester_id=getattr(ticket, "requester_id", None),
            category=getattr(ticket, "category", None),
            cmdb_item_id=getattr(ticket, "cmdb_item_id", None),
        )


@dataclass(frozen=True)
class SLAResolution:
    sla_id: int | None
    source: str

    @property
    def found(self) -> bool:
        return self.sla_id is not None


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def active_sla_id(db: Session, sla_id: int | None) -> int | None:
    if not sla_id:
        return None
    row = (
        db.query(SLADefinition.id)
        .filter(SLADefinition.id == sla_id, SLADefinition.is_active.is_(True))
        .first()
    )
    return row[0] if row else None


def load_sla_definition(db: Session, sla_id: int | None, *, active_only: bool = True) -> SLADefinition | None:
    if not sla_id:
        return None
    query = db.query(SLADefinition).filter(SLADefinition.id == sla_id)
    if active_only:
        query = query.filter(SLADefinition.is_active.is_(True))
    return query.first()


class SLAResolver(Protocol):
    source: str

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None: ...


class TicketOverrideResolver:
    source = SLASource.ticket.value

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None:
        return active_sla_id(db, context.sla_definition_id)


class UserOverrideResolver:
    source = SLASource.user.value

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None:
        if not context.requester_id:
            return None
        row = (
            db.query(Customer.sla_override_id)
            .filter(Customer.user_id == context.requester_id, Customer.sla_override_id.is_not(None))
            .order_by(Customer.id.asc())
            .first()
        )
        return active_sla_id(db, row[0]) if row else None


class CompanyResolver:
    source = SLASource.company.value

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None:
        if not context.requester_id:
            return None
        row = (
            db.query(CustomerCompany.sla_definition_id, CustomerCompany.sla_level)
            .join(Customer, Customer.customer_company_id == CustomerCompany.id)
            .filter(Customer.user_id == context.requester_id)
            .order_by(Customer.id.asc())
            .first()
        )
        if row is None:
            return None
        sla_definition_id, sla_level = row
        direct = active_sla_id(db, sla_definition_id)
        if direct:
            return direct
        return self._match_level(db, sla_level)

    @staticmethod
    def _match_level(db: Session, sla_level: str | None) -> int | None:
        level = (sla_level or "").strip().lower()
        if not level:
            return None
        name = func.lower(SLADefinition.name)
        row = (
            db.query(SLADefinition.id)
            .filter(SLADefinition.is_active.is_(True), name.contains(level, autoescape=True))
            .order_by(case((name == level, 0), else_=1), SLADefinition.id.asc())
            .first()
        )
        return row[0] if row else None


class CategoryResolver:
    source = SLASource.category.value

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None:
        category = (context.category or "").strip().lower()
        if not category:
            return None
        row = (
            db.query(CategorySLAMapping.sla_definition_id)
            .filter(CategorySLAMapping.category == category, CategorySLAMapping.is_active.is_(True))
            .first()
        )
        return active_sla_id(db, row[0]) if row else None


class CMDBResolver:
    source = SLASource.cmdb.value

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None:
        if not context.cmdb_item_id:
            return None
        row = db.query(CMDBItem.sla_definition_id).filter(CMDBItem.id == context.cmdb_item_id).first()
        return active_sla_id(db, row[0]) if row else None


class DefaultResolver:
    source = SLASource.default.value

    def try_resolve(self, db: Session, context: TicketSLAContext) -> int | None:
        row = (
            db.query(SLADefinition.id)
            .filter(SLADefinition.is_active.is_(True))
            .order_by(SLADefinition.id.asc())
            .first()
        )
        return row[0] if row else None


DEFAULT_RESOLVERS: tuple[SLAResolver, ...] = (
    TicketOverrideResolver(),
    UserOverrideResolver(),
    CompanyResolver(),
    CategoryResolver(),
    CMDBResolver(),
    DefaultResolver(),
)


def resolve_for_session(
    db: Session,
    context: TicketSLAContext,
    resolvers: Sequence[SLAResolver] | None = None,
) -> SLAResolution:
    for resolver in resolvers if resolvers is not None else DEFAULT_RESOLVERS:
        try:
            sla_id = resolver.try_resolve(db, context)
        except Exception as exc:  # noqa: BLE001
            logger.warning("SLA source %s failed: %s", resolver.source, exc)
            db.rollback()
            continue
        if sla_id:
            return SLAResolution(sla_id=sla_id, source=resolver.source)
    return SLAResolution(sla_id=None, source=SLASource.error.value)


def resolve_applicable_sla(
    tenant_code: str,
    ticket_payload: Mapping[str, Any] | None = None,
    *,
    provider: TenantSessionProvider | None = None,
    resolvers: Sequence[SLAResolver] | None = None,
) -> SLAResolution:
    """Pick the SLA for a ticket payload. Never raises; total failure yields source ``error``."""
    context = TicketSLAContext.from_payload(ticket_payload)
    try:
        with (provider or get_provider()).tenant_session(tenant_code) as db:
            return resolve_for_session(db, context, resolvers)
    except (TenantConnectionError, SQLAlchemyError) as exc:
        logger.error("SLA resolution failed tenant=%s: %s", tenant_code, exc)
        return SLAResolution(sla_id=None, source=SLASource.error.value)


def backfill_ticket_sla(
    tenant_code: str,
    *,
    dry_run: bool = True,
    provider: TenantSessionProvider | None = None,
    resolvers: Sequence[SLAResolver] | None = None,
) -> dict[str, Any]:
    """Apply the cascade and initial deadlines to every ticket that has no SLA yet."""
    stats: dict[str, Any] = {"tenant": tenant_code, "candidates": 0, "updated": 0, "skipped": 0, "failed": 0}
    with (provider or get_provider()).tenant_session(tenant_code) as db:
        tickets = (
            db.query(Ticket)
            .filter(Ticket.sla_definition_id.is_(None))
            .order_by(Ticket.id.desc())
            .all()
        )
        stats["candidates"] = len(tickets)
        logger.info("Backfill tenant=%s candidates=%s dry_run=%s", tenant_code, len(tickets), dry_run)
        if dry_run:
            return stats

        for ticket in tickets:
            ticket_id = ticket.id
            try:
                resolution = resolve_for_session(db, TicketSLAContext.from_ticket(ticket), resolvers)
                sla = load_sla_definition(db, resolution.sla_id)
                if sla is None:
                    stats["skipped"] += 1
                    continue
                # Back-dated to creation: the deadlines are anchored there too.
                apply_sla_to_ticket(ticket, sla, resolution.source, applied_at=ticket.created_at)
                db.commit()
                stats["updated"] += 1
            except SQLAlchemyError as exc:
                db.rollback()
                stats["failed"] += 1
                logger.error("Backfill failed tenant=%s ticket=%s: %s", tenant_code, ticket_id, exc)

    logger.info(
        "Backfill tenant=%s updated=%s skipped=%s failed=%s",
        tenant_code,
        stats["updated"],
        stats["skipped"],
        stats["failed"],
    )
    return stats
