"""Ticket model: the SLA, notification-sentinel and pool-ranking columns."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sla_engine.core.clock import utcnow
from sla_engine.db.base import Base
from sla_engine.models.enums import PoolStatus, TicketPriority, TicketStatus


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_pool_status", "pool_status"),
        Index("ix_tickets_sla_definition_id", "sla_definition_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, name="ticket_status", values_callable=lambda x: [e.value for e in x]),
        default=TicketStatus.open,
        nullable=False,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        Enum(TicketPriority, name="ticket_priority", values_callable=lambda x: [e.value for e in x]),
        default=TicketPriority.medium,
        nullable=False,
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requester_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cmdb_item_id: Mapped[int | None] = mapped_column(ForeignKey("cmdb_items.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # SLA: applied once; response_due_at is immutable afterwards, resolve_due_at
    # is recomputed exactly once at first response.
    sla_definition_id: Mapped[int | None] = mapped_column(
        ForeignKey("sla_definitions.id", ondelete="SET NULL"), nullable=True
    )
    sla_source: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sla_applied_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    response_due_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolve_due_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    first_responded_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Write-once breach notification sentinels, owned by the breach notifier.
    notified_response_near_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_response_breached_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_response_past_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_resolve_near_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_resolve_breached_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_resolve_past_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    pool_status: Mapped[PoolStatus | None] = mapped_column(
        Enum(PoolStatus, name="pool_status", values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )
    pool_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    pool_score_updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
