"""Business hours profiles, SLA definitions and category mappings."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sla_engine.core.clock import utcnow
from sla_engine.db.base import Base


class BusinessHoursProfile(Base):
    __tablename__ = "business_hours_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)
    # JSON list of ISO weekdays (1=Mon..7=Sun); legacy rows store it as a JSON string.
    days_of_week: Mapped[list[int] | str | None] = mapped_column(JSON, nullable=True)
    start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    is_24x7: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SLADefinition(Base):
    __tablename__ = "sla_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    response_target_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolve_target_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolve_after_response_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    near_breach_percent: Mapped[int] = mapped_column(Integer, default=85, nullable=False)
    past_breach_percent: Mapped[int] = mapped_column(Integer, default=120, nullable=False)
    business_hours_profile_id: Mapped[int | None] = mapped_column(
        ForeignKey("business_hours_profiles.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    business_hours_profile: Mapped[BusinessHoursProfile | None] = relationship(lazy="joined")


class CategorySLAMapping(Base):
    __tablename__ = "category_sla_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Stored lowercase; lookups normalize the incoming category the same way.
    category: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    sla_definition_id: Mapped[int] = mapped_column(ForeignKey("sla_definitions.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
