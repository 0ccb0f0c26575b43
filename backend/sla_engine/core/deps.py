"""Common FastAPI dependencies for internal authentication and tenant sessions."""

from __future__ import annotations

import hmac
from collections.abc import Iterator

from fastapi import Depends, Path, Request
from sqlalchemy.orm import Session

from sla_engine.core.config import settings
from sla_engine.core.exceptions import InvalidAPIKeyError
from sla_engine.db.session import TenantSessionProvider, get_provider

INTERNAL_TOKEN_HEADER = "X-Internal-Token"


def require_internal_token(request: Request) -> None:
    expected = settings.INTERNAL_API_TOKEN.strip()
    if not expected:
        raise InvalidAPIKeyError("internal_api_disabled")
    provided = request.headers.get(INTERNAL_TOKEN_HEADER, "").strip()
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise InvalidAPIKeyError("invalid_internal_token")


def get_session_provider() -> TenantSessionProvider:
    return get_provider()


def get_tenant_session(
    tenant_code: str = Path(..., min_length=1, max_length=64),
    provider: TenantSessionProvider = Depends(get_session_provider),
) -> Iterator[Session]:
    with provider.tenant_session(tenant_code) as db:
        yield db
