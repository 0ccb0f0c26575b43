"""Pydantic schemas for SLA resolution and pool scoring endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class SLAResolveRequest(BaseModel):
    sla_definition_id: int | None = Field(default=None, ge=1)
    requester_id: int | None = Field(default=None, ge=1)
    category: str | None = Field(default=None, max_length=100)
    cmdb_item_id: int | None = Field(default=None, ge=1)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None


class SLAResolveOut(BaseModel):
    sla_id: int | None = None
    source: str


class PoolScoreOut(BaseModel):
    success: bool
    ticket_id: int | None = None
    pool_score: float | None = None
    urgency_factors: list[str] = Field(default_factory=list)
    recommended_skills: list[str] = Field(default_factory=list)
    complexity_estimate: str | None = None
    reasoning: str | None = None
    source: str | None = None
    message: str | None = None


class PoolRecalculateOut(BaseModel):
    success: bool
    updated: int = 0
    total: int = 0
    message: str | None = None
