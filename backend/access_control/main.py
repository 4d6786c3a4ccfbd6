"""
Aplicação Principal FastAPI - Amicus Access Control

Entry point do servidor REST API de controle de acesso multi-organização.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from typing import Any
from uuid import uuid4

import structlog
from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from access_control.api.v1.modules import router as modules_router
from access_control.config import get_settings
from access_control.core.errors import register_exception_handlers
from access_control.core.logging import bind_request_context, configure_structlog, get_logger
from access_control.core.metrics import METRICS_CONTENT_TYPE, get_metrics_payload, is_enabled
from access_control.db.base import engine

settings = get_settings()
configure_structlog()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.

    Startup: apenas log; o engine abre conexões sob demanda.
    Shutdown: libera o pool do engine.
    """
    logger.info(
        "app_startup_started",
        app_name=settings.app_name,
        app_version=settings.app_version,
        environment=settings.environment,
    )

    yield

    await engine.dispose()
    logger.info("app_shutdown")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id, contexto de log e duração de cada requisição."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-Id") or request.headers.get(
            "X-Request-ID"
        ) or str(uuid4())
        request.state.request_id = request_id
        start = perf_counter()

        structlog.contextvars.clear_contextvars()
        actor_id = self._extract_actor_id(request)
        with bind_request_context(request_id=request_id, actor_id=actor_id):
            response = await call_next(request)

        elapsed_ms = (perf_counter() - start) * 1000
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.2f}"

        access = getattr(request.state, "access", None)
        logger.info(
            "http_request_complete",
            method=request.method,
            path=request.url.path,
            status_code=getattr(response, "status_code", None),
            request_id=request_id,
            duration_ms=round(elapsed_ms, 2),
            organization_id=getattr(access, "organization_id", None),
        )
        return response

    @staticmethod
    def _extract_actor_id(request: Request) -> str | None:
        actor = getattr(request.state, "actor", None)
        if actor is None:
            return None
        if isinstance(actor, dict):
            value = actor.get("id")
        else:
            value = getattr(actor, "id", None)
        return str(value) if value is not None else None


def create_app() -> FastAPI:
    """Monta a aplicação com middlewares, handlers de erro e rotas."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Controle de acesso multi-organização: pertencimento, posse de recursos, roles e módulos.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "Módulos", "description": "Catálogo, assinaturas e restrições por usuário."},
        ],
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestContextMiddleware)

    register_exception_handlers(application)

    api_router = APIRouter(prefix="/api/v1")
    api_router.include_router(modules_router)
    application.include_router(api_router)

    application.add_api_route("/health", health, methods=["GET"])
    application.add_api_route("/health/live", live, methods=["GET"])
    application.add_api_route("/metrics", metrics, methods=["GET"], include_in_schema=False)
    return application


def _build_health_result() -> dict[str, Any]:
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }


async def _check_postgres() -> dict[str, Any]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "connected"}
    except (OSError, SQLAlchemyError) as exc:
        return {"status": "disconnected", "error": str(exc)}


async def health():
    """Readiness: falha com 503 quando o banco não responde."""
    payload = _build_health_result()
    postgres = await _check_postgres()
    payload["dependencies"] = {"postgres": postgres}

    if postgres["status"] == "connected":
        payload["status"] = "healthy"
        return payload

    payload["status"] = "unhealthy"
    raise HTTPException(status_code=503, detail=payload)


async def live():
    """Liveness: verifica se o processo está vivo."""
    payload = _build_health_result()
    payload["status"] = "alive"
    return payload


async def metrics() -> PlainTextResponse:
    if not is_enabled():
        return PlainTextResponse("metrics_disabled 0\n")

    payload = get_metrics_payload()
    return PlainTextResponse(payload.decode("utf-8"), media_type=METRICS_CONTENT_TYPE)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "access_control.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
