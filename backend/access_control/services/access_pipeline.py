"""
Guards prontos para compor o pipeline de autorização.

Cada função devolve um ``NamedGuard``; as dependencies FastAPI montam a
lista na ordem desejada e a executam com ``run_guards``.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

import structlog

from access_control.core.errors import (
    ConfigurationError,
    NotMember,
    OrganizationRequired,
    RoleNotAllowed,
)
from access_control.core.guards import ALLOW, Decision, Deny, GuardRequest, NamedGuard
from access_control.core.logging import get_logger
from access_control.core.resources import ResourceType, parse_resource_type
from access_control.core.roles import Role, normalize_role
from access_control.services.membership_resolver import MembershipResolver
from access_control.services.module_gate import ModuleGate, normalize_module_codes
from access_control.services.ownership_verifier import ResourceOwnershipVerifier

logger = get_logger(__name__)


def membership_guard(resolver: MembershipResolver) -> NamedGuard:
    """Resolve organização e role; reaproveita o contexto já resolvido."""

    async def _check(request: GuardRequest) -> Decision:
        context = request.context
        if context.organization_id is not None:
            return ALLOW

        try:
            resolved = resolver.resolve(
                request.actor,
                path_params=request.path_params,
                query_params=request.query_params,
                body=request.body,
            )
        except (OrganizationRequired, NotMember) as exc:
            return Deny(exc)

        context.organization_id = resolved.organization_id
        context.role = resolved.role
        context.organization_source = resolved.source
        structlog.contextvars.bind_contextvars(
            organization_id=str(resolved.organization_id),
            actor_id=str(request.actor.id),
        )
        return ALLOW

    return NamedGuard("membership", _check)


def resource_guard(
    verifier: ResourceOwnershipVerifier,
    resource_type: str | ResourceType,
    param_name: Optional[str],
) -> NamedGuard:
    """Verifica posse do recurso identificado pelo parâmetro de path."""
    parsed_type = parse_resource_type(resource_type)

    async def _check(request: GuardRequest) -> Decision:
        resource_id = request.path_params.get(param_name) if param_name else None
        return await verifier.verify(
            request.db,
            parsed_type,
            resource_id,
            organization_id=request.context.organization_id,
            actor_id=request.actor.id,
            role=request.context.role,
            method=request.method,
        )

    return NamedGuard(f"resource:{parsed_type.value}", _check)


def parse_allowed_roles(roles: Iterable[str | Role]) -> frozenset[Role]:
    """Normaliza a lista de roles permitidas; role desconhecida é erro de configuração."""
    parsed = set()
    for raw in roles:
        role = normalize_role(raw)
        if role is None:
            raise ConfigurationError(f"Unknown role in allow-list: {raw!r}")
        parsed.add(role)
    if not parsed:
        raise ConfigurationError("At least one role is required")
    return frozenset(parsed)


def role_guard(allowed_roles: Iterable[str | Role]) -> NamedGuard:
    """Exige que a role resolvida esteja na lista permitida."""
    allowed = parse_allowed_roles(allowed_roles)

    async def _check(request: GuardRequest) -> Decision:
        role = request.context.role
        if role in allowed:
            return ALLOW
        logger.warning(
            "role_not_allowed",
            actor_id=request.actor.id,
            role=role.value if role else None,
            allowed=sorted(r.value for r in allowed),
        )
        return Deny(RoleNotAllowed())

    return NamedGuard("role", _check)


def module_guard(gate: ModuleGate, codes: Sequence[str] | str) -> NamedGuard:
    """Exige os módulos informados para a organização ativa."""
    required = normalize_module_codes(codes)

    async def _check(request: GuardRequest) -> Decision:
        return await gate.check(request, required)

    return NamedGuard("module", _check)


def feature_guard(gate: ModuleGate, module_code: str, feature_key: str) -> NamedGuard:
    """Exige o módulo e a funcionalidade não revogada para o usuário."""
    code = normalize_module_codes([module_code])[0]
    if not str(feature_key).strip():
        raise ConfigurationError("Feature key is required")

    async def _check(request: GuardRequest) -> Decision:
        return await gate.check_feature(request, code, feature_key)

    return NamedGuard("feature", _check)
