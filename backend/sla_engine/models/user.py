"""Requester-side records the SLA cascade walks: users, customers, companies."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sla_engine.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)


class CustomerCompany(Base):
    __tablename__ = "customer_companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sla_definition_id: Mapped[int | None] = mapped_column(
        ForeignKey("sla_definitions.id", ondelete="SET NULL"), nullable=True
    )
    # Free-text contract level ("Gold", "premium support") matched against SLA names.
    sla_level: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_company_id: Mapped[int | None] = mapped_column(
        ForeignKey("customer_companies.id", ondelete="SET NULL"), nullable=True
    )
    sla_override_id: Mapped[int | None] = mapped_column(
        ForeignKey("sla_definitions.id", ondelete="SET NULL"), nullable=True, index=True
    )
