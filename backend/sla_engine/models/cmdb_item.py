"""Configuration items that may carry their own SLA."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sla_engine.db.base import Base


class CMDBItem(Base):
    __tablename__ = "cmdb_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sla_definition_id: Mapped[int | None] = mapped_column(
        ForeignKey("sla_definitions.id", ondelete="SET NULL"), nullable=True
    )
