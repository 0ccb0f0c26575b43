from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sla_engine.core.config import settings
from sla_engine.core.exceptions import SLAEngineException
from sla_engine.core.logging import setup_logging
from sla_engine.db.session import get_provider
from sla_engine.routers import sla


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        try:
            yield
        finally:
            get_provider().dispose_all()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.include_router(sla.router, prefix="/api/sla", tags=["sla"])

    @app.exception_handler(SLAEngineException)
    async def handle_sla_engine_exception(_: Request, exc: SLAEngineException) -> JSONResponse:
        headers = exc.headers if getattr(exc, "headers", None) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    return app


app = create_app()
