"""SQLAlchemy declarative bases for the master and tenant databases."""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Tables that live in every tenant database."""


class MasterBase(DeclarativeBase):
    """Tables that live only in the master (tenant registry) database."""
