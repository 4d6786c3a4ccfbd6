"""Métricas leves de decisões de acesso (Prometheus)."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, CONTENT_TYPE_LATEST, Counter, generate_latest

from access_control.config import get_settings

_registry = CollectorRegistry()

_access_decisions_total = Counter(
    "access_decisions_total",
    "Total de decisões de acesso por guard",
    ["guard", "outcome", "code"],
    registry=_registry,
)
_audit_write_failures_total = Counter(
    "audit_write_failures_total",
    "Falhas ao gravar histórico de acesso a módulos",
    registry=_registry,
)

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


def is_enabled() -> bool:
    """Métricas habilitadas globalmente."""
    return bool(get_settings().metrics_enabled)


def record_decision(guard: str, outcome: str, code: str | None = None) -> None:
    """Registra o resultado de um guard."""
    if not is_enabled():
        return
    _access_decisions_total.labels(
        guard=guard,
        outcome=outcome,
        code=code or "none",
    ).inc()


def record_audit_write_failure() -> None:
    """Registra falha de escrita de auditoria."""
    if not is_enabled():
        return
    _audit_write_failures_total.inc()


def get_metrics_payload() -> bytes:
    """Métricas no formato texto do Prometheus."""
    if not is_enabled():
        return b""
    return generate_latest(_registry)
