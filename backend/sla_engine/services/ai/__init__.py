"""AI service public API."""

from __future__ import annotations

__all__ = ["classify"]


async def classify(*args, **kwargs):
    from sla_engine.services.ai.llm import classify as _classify

    return await _classify(*args, **kwargs)
