"""Tenant registry lookups and per-tenant worker settings."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sla_engine.core.config import settings
from sla_engine.db.session import TenantSessionProvider
from sla_engine.models.enums import TenantStatus
from sla_engine.models.tenant import Tenant, TenantSetting

logger = logging.getLogger(__name__)

SLA_CHECK_INTERVAL_KEY = "sla_check_interval_seconds"


def list_active_tenant_codes(provider: TenantSessionProvider) -> list[str]:
    with provider.master_session() as db:
        rows = (
            db.query(Tenant.tenant_code)
            .filter(Tenant.status == TenantStatus.active)
            .order_by(Tenant.id.asc())
            .all()
        )
    return [row[0] for row in rows]


def get_tenant_setting(db: Session, key: str) -> str | None:
    row = db.query(TenantSetting.setting_value).filter(TenantSetting.setting_key == key).first()
    return row[0] if row else None


def get_sla_check_interval(db: Session) -> int:
    """Seconds between sweeps for this tenant; values below the floor fall back to the default."""
    default = settings.SLA_DEFAULT_TENANT_INTERVAL_SECONDS
    try:
        raw = get_tenant_setting(db, SLA_CHECK_INTERVAL_KEY)
    except SQLAlchemyError as exc:
        logger.warning("Could not read %s: %s", SLA_CHECK_INTERVAL_KEY, exc)
        return default
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    if value < settings.SLA_MIN_TENANT_INTERVAL_SECONDS:
        return default
    return value
