"""LLM adapter helpers (Ollama)."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from sla_engine.core.config import settings
from sla_engine.core.exceptions import AIProviderNotImplementedError, AIResponseParsingError, AITransientError
from sla_engine.services.ai.prompts import build_task_prompt

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = {"ollama"}


async def ollama_generate(
    prompt: str,
    *,
    json_mode: bool = False,
    client: httpx.AsyncClient | None = None,
) -> str:
    own_client = client is None
    http = client or httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SECONDS)
    try:
        generate_url = f"{settings.OLLAMA_BASE_URL}/api/generate"
        generate_payload: dict[str, Any] = {
            "model": settings.OLLAMA_MODEL,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.1},
        }
        if json_mode:
            generate_payload["format"] = "json"
        response = await http.post(generate_url, json=generate_payload)
        if response.status_code == 404:
            chat_url = f"{settings.OLLAMA_BASE_URL}/api/chat"
            chat_payload: dict[str, Any] = {
                "model": settings.OLLAMA_MODEL,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
                "options": {"temperature": 0.1},
            }
            if json_mode:
                chat_payload["format"] = "json"
            chat_response = await http.post(chat_url, json=chat_payload)
            _raise_for_status(chat_response)
            data = chat_response.json()
            message = data.get("message") if isinstance(data, dict) else None
            if isinstance(message, dict):
                return str(message.get("content", "")).strip()
            return ""
        _raise_for_status(response)
        data = response.json()
        return str(data.get("response", "")).strip()
    except httpx.TimeoutException as exc:
        raise AITransientError(f"AI backend timed out: {exc}") from exc
    except httpx.TransportError as exc:
        raise AITransientError(f"AI backend unreachable: {exc}") from exc
    finally:
        if own_client:
            await http.aclose()


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code >= 500 or response.status_code == 429:
        raise AITransientError(f"AI backend returned {response.status_code}", status_code=response.status_code)
    if response.status_code >= 400:
        raise AIResponseParsingError(f"AI backend rejected request with {response.status_code}")


def extract_json(text: str) -> dict[str, Any] | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    snippet = text[start : end + 1]
    try:
        loaded = json.loads(snippet)
    except json.JSONDecodeError:
        return None
    return loaded if isinstance(loaded, dict) else None


def parse_json_reply(raw: str) -> dict[str, Any]:
    text = str(raw or "").strip()
    if not text:
        raise AIResponseParsingError("AI backend returned an empty reply")
    try:
        loaded = json.loads(text)
    except json.JSONDecodeError:
        loaded = extract_json(text)
    if not isinstance(loaded, dict):
        raise AIResponseParsingError()
    return loaded


async def classify(task: str, context: dict[str, Any], *, client: httpx.AsyncClient | None = None) -> dict[str, Any]:
    """Run a classification task against the configured backend and return its JSON object."""
    provider = (settings.AI_PROVIDER or "").strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise AIProviderNotImplementedError(provider or "none")
    prompt = build_task_prompt(task, context)
    raw = await ollama_generate(prompt, json_mode=True, client=client)
    return parse_json_reply(raw)
