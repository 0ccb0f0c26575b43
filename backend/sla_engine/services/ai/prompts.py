"""Prompt builders and constants for AI workflows."""

from __future__ import annotations

import json
from typing import Any

from sla_engine.core.exceptions import AIProviderNotImplementedError

POOL_RANKING_TASK = "pool_ranking"


def build_pool_ranking_prompt(context: dict[str, Any]) -> str:
    sla_facts = context.get("slaFacts")
    sla_section = json.dumps(sla_facts, indent=2, default=str) if sla_facts else "No SLA applied."
    return (
        "You are an IT service desk dispatcher ranking tickets waiting in the expert pool.\n\n"
        "Score how urgently this ticket needs expert attention, from 0 (can wait) to 100 (drop everything).\n"
        "Weigh SLA proximity first, then business impact, then age.\n\n"
        "Return JSON only:\n\n"
        "{\n"
        '  "pool_score": 0-100,\n'
        '  "urgency_factors": ["short factor"],\n'
        '  "recommended_skills": ["skill"],\n'
        '  "complexity_estimate": "low|medium|high",\n'
        '  "reasoning": "short explanation"\n'
        "}\n\n"
        "Do not invent SLA deadlines or customer details.\n"
        "Base reasoning strictly on the data below.\n\n"
        f"Subject: {context.get('subject') or ''}\n"
        f"Body: {context.get('body') or ''}\n"
        f"Customer: {context.get('customerName') or 'Unknown'}\n"
        f"Company: {context.get('companyName') or 'Unknown'}\n"
        f"Created at: {context.get('createdAt') or 'unknown'}\n"
        f"Status: {context.get('currentStatus') or 'unknown'}\n"
        f"Priority: {context.get('currentPriority') or 'unknown'}\n"
        f"Assignee: {context.get('currentAssignee') or 'Unassigned'}\n"
        f"SLA facts:\n{sla_section}\n"
    )


_TASK_PROMPTS = {
    POOL_RANKING_TASK: build_pool_ranking_prompt,
}


def build_task_prompt(task: str, context: dict[str, Any]) -> str:
    builder = _TASK_PROMPTS.get(task)
    if builder is None:
        raise AIProviderNotImplementedError(f"task:{task}")
    return builder(context)
