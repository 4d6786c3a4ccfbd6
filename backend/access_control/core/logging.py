"""Configuração de logging estruturado padrão da aplicação."""

from __future__ import annotations

from contextvars import ContextVar
import logging
from collections.abc import Iterator
from typing import Any

from contextlib import contextmanager

import structlog

from access_control.config import get_settings


_REQUEST_ID_VAR: ContextVar[str | None] = ContextVar("request_id", default=None)
_ORGANIZATION_ID_VAR: ContextVar[str | None] = ContextVar("organization_id", default=None)
_ACTOR_ID_VAR: ContextVar[str | None] = ContextVar("actor_id", default=None)


def _to_str(value: Any) -> str | None:
    """Converte valor de contexto para string quando aplicável."""
    if value is None:
        return None
    return str(value)


def _is_production(settings) -> bool:
    environment = settings.environment.lower()
    return not settings.debug and environment not in {"development", "dev", "local", "test"}


@contextmanager
def bind_request_context(
    *,
    request_id: str | None = None,
    organization_id: str | int | None = None,
    actor_id: str | int | None = None,
) -> Iterator[None]:
    """Adiciona contexto de request aos logs via contextvars."""
    tokens = []
    if request_id is not None:
        tokens.append((_REQUEST_ID_VAR, _REQUEST_ID_VAR.set(_to_str(request_id))))
    if organization_id is not None:
        tokens.append(
            (_ORGANIZATION_ID_VAR, _ORGANIZATION_ID_VAR.set(_to_str(organization_id)))
        )
    if actor_id is not None:
        tokens.append((_ACTOR_ID_VAR, _ACTOR_ID_VAR.set(_to_str(actor_id))))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def inject_request_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Injeta contexto atual (request/organização/ator) no evento de log."""
    del logger, method_name

    request_id = _REQUEST_ID_VAR.get()
    organization_id = _ORGANIZATION_ID_VAR.get()
    actor_id = _ACTOR_ID_VAR.get()

    if request_id is not None:
        event_dict.setdefault("request_id", request_id)
    if organization_id is not None:
        event_dict.setdefault("organization_id", organization_id)
    if actor_id is not None:
        event_dict.setdefault("actor_id", actor_id)

    return event_dict


def configure_structlog() -> None:
    """Configura structlog com saída estruturada para observabilidade."""
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format="%(message)s", force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if _is_production(settings)
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            inject_request_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Retorna logger estruturado para o módulo informado."""
    return structlog.get_logger(name)
