from __future__ import annotations

import sys
from pathlib import Path

import pytest


BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import sla_engine.models  # noqa: E402,F401
from sla_engine.db.base import Base, MasterBase  # noqa: E402
from sla_engine.db.session import TenantSessionProvider  # noqa: E402

TENANT = "acme"


def _sqlite_engine(_url: str):
    return create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})


@pytest.fixture()
def provider():
    sessions = TenantSessionProvider(
        master_url="sqlite://master",
        tenant_url_template="sqlite://{tenant_code}",
        engine_factory=_sqlite_engine,
    )
    MasterBase.metadata.create_all(sessions.master_engine())
    Base.metadata.create_all(sessions.tenant_engine(TENANT))
    yield sessions
    sessions.dispose_all()


@pytest.fixture()
def tenant_db(provider):
    with provider.tenant_session(TENANT) as db:
        yield db
