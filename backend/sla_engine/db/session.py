"""Database engine and session lifecycle helpers.

Every tenant owns a separate database with the same schema. The provider
lazily builds one engine per tenant (plus one for the master registry),
caches it for the life of the process and hands out sessions through
context managers that always close them.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sla_engine.core.config import settings
from sla_engine.core.exceptions import TenantConnectionError

logger = logging.getLogger(__name__)

_TENANT_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_MASTER_KEY = "__master__"

EngineFactory = Callable[[str], Engine]


def _default_engine_factory(url: str) -> Engine:
    return create_engine(url, pool_pre_ping=True)


class TenantSessionProvider:
    def __init__(
        self,
        *,
        master_url: str | None = None,
        tenant_url_template: str | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self._master_url = master_url or settings.DATABASE_URL
        self._tenant_url_template = tenant_url_template or settings.TENANT_DATABASE_URL_TEMPLATE
        self._engine_factory = engine_factory or _default_engine_factory
        self._engines: dict[str, Engine] = {}
        self._sessionmakers: dict[str, sessionmaker[Session]] = {}
        self._lock = threading.Lock()

    def _get_sessionmaker(self, key: str, url: str) -> sessionmaker[Session]:
        with self._lock:
            factory = self._sessionmakers.get(key)
            if factory is None:
                engine = self._engine_factory(url)
                factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
                self._engines[key] = engine
                self._sessionmakers[key] = factory
            return factory

    def master_engine(self) -> Engine:
        self._get_sessionmaker(_MASTER_KEY, self._master_url)
        return self._engines[_MASTER_KEY]

    def tenant_engine(self, tenant_code: str) -> Engine:
        self._tenant_factory(tenant_code)
        return self._engines[tenant_code]

    def _tenant_factory(self, tenant_code: str) -> sessionmaker[Session]:
        code = str(tenant_code or "").strip()
        if not _TENANT_CODE_RE.match(code):
            raise TenantConnectionError(code, "invalid_tenant_code")
        try:
            return self._get_sessionmaker(code, self._tenant_url_template.format(tenant_code=code))
        except SQLAlchemyError as exc:
            raise TenantConnectionError(code) from exc

    @contextmanager
    def master_session(self) -> Iterator[Session]:
        db = self._get_sessionmaker(_MASTER_KEY, self._master_url)()
        try:
            yield db
        finally:
            db.close()

    @contextmanager
    def tenant_session(self, tenant_code: str) -> Iterator[Session]:
        db = self._tenant_factory(tenant_code)()
        try:
            yield db
        finally:
            db.close()

    def dispose_all(self) -> None:
        with self._lock:
            engines = list(self._engines.items())
            self._engines.clear()
            self._sessionmakers.clear()
        for key, engine in engines:
            try:
                engine.dispose()
            except SQLAlchemyError as exc:
                logger.warning("Failed to dispose engine %s: %s", key, exc)


_provider: TenantSessionProvider | None = None


def get_provider() -> TenantSessionProvider:
    global _provider
    if _provider is None:
        _provider = TenantSessionProvider()
    return _provider
