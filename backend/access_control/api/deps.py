"""
Dependencies para endpoints FastAPI.

Cada factory monta a lista de guards na ordem em que devem rodar e a executa
com ``run_guards``. O ``AccessContext`` resultante fica em
``request.state.access`` e também é devolvido ao endpoint.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.errors import NotAuthenticated
from access_control.core.guards import AccessContext, Actor, GuardRequest, run_guards
from access_control.core.resources import ResourceType, parse_resource_type
from access_control.core.roles import Role
from access_control.db.base import get_db
from access_control.services.access_pipeline import (
    feature_guard,
    membership_guard,
    module_guard,
    parse_allowed_roles,
    resource_guard,
    role_guard,
)
from access_control.services.membership_resolver import (
    MembershipResolver,
    get_membership_resolver,
)
from access_control.services.module_gate import (
    ModuleGate,
    get_module_gate,
    normalize_module_codes,
)
from access_control.services.ownership_verifier import (
    ResourceOwnershipVerifier,
    get_ownership_verifier,
)

_PATH_PARAM_RE = re.compile(r"{([^}:]+)(?::[^}]*)?}")
_JSON_CONTENT_TYPES = ("application/json", "+json")


async def get_current_actor(request: Request) -> Actor:
    """
    Obtém o ator autenticado da requisição.

    O colaborador de autenticação popula ``request.state.actor`` com um
    ``Actor`` ou com as claims do token (``{"id": ..., "organizations": [...]}``).

    Raises:
        NotAuthenticated: se não houver ator autenticado
    """
    raw_actor = getattr(request.state, "actor", None)
    if raw_actor is None:
        raise NotAuthenticated()
    if isinstance(raw_actor, Actor):
        return raw_actor

    try:
        actor = Actor.from_claims(raw_actor)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise NotAuthenticated("Invalid actor claims") from exc

    request.state.actor = actor
    return actor


async def _request_body(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "").lower()
    if not any(marker in content_type for marker in _JSON_CONTENT_TYPES):
        return {}
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


async def _guard_request(
    request: Request,
    actor: Actor,
    db: Optional[AsyncSession],
) -> GuardRequest:
    context = getattr(request.state, "access", None)
    if not isinstance(context, AccessContext) or context.actor_id != actor.id:
        context = AccessContext(actor_id=actor.id)
        request.state.access = context

    return GuardRequest(
        actor=actor,
        context=context,
        db=db,
        method=request.method,
        path=request.url.path,
        path_params=dict(request.path_params),
        query_params=dict(request.query_params),
        body=await _request_body(request),
    )


def _default_resource_param(request: Request, organization_param: str) -> Optional[str]:
    """Último parâmetro da rota que não seja o da organização."""
    route = request.scope.get("route")
    route_path = getattr(route, "path", None) or ""
    names = [
        name
        for name in _PATH_PARAM_RE.findall(route_path)
        if name != organization_param
    ]
    if not names:
        names = [name for name in request.path_params if name != organization_param]
    return names[-1] if names else None


def require_organization() -> Callable:
    """
    Dependency factory que exige pertencimento à organização resolvida.
    """

    async def _checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        resolver: MembershipResolver = Depends(get_membership_resolver),
    ) -> AccessContext:
        guard_request = await _guard_request(request, actor, db=None)
        return await run_guards([membership_guard(resolver)], guard_request)

    return _checker


def verify_resource_access(
    resource_type: str | ResourceType,
    param_name: Optional[str] = None,
) -> Callable:
    """
    Dependency factory para verificação de posse de um recurso.

    Args:
        resource_type: tipo do recurso (``user``, ``animal``, ``visit``...)
        param_name: parâmetro de path com o id do recurso; por padrão o
            último parâmetro da rota diferente do de organização

    Raises:
        ConfigurationError: na definição da rota, se o tipo for desconhecido
    """
    parsed_type = parse_resource_type(resource_type)

    async def _checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
        resolver: MembershipResolver = Depends(get_membership_resolver),
        verifier: ResourceOwnershipVerifier = Depends(get_ownership_verifier),
    ) -> AccessContext:
        guard_request = await _guard_request(request, actor, db=db)
        name = param_name or _default_resource_param(request, resolver.param_name)
        return await run_guards(
            [
                membership_guard(resolver),
                resource_guard(verifier, parsed_type, name),
            ],
            guard_request,
        )

    return _checker


def require_role(*allowed_roles: str | Role) -> Callable:
    """
    Dependency factory que exige uma das roles informadas na organização.
    """
    allowed = parse_allowed_roles(allowed_roles)

    async def _checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        resolver: MembershipResolver = Depends(get_membership_resolver),
    ) -> AccessContext:
        guard_request = await _guard_request(request, actor, db=None)
        return await run_guards(
            [membership_guard(resolver), role_guard(allowed)],
            guard_request,
        )

    return _checker


def require_module(*module_codes: str) -> Callable:
    """
    Dependency factory que exige módulos ativos para a organização e
    não revogados para o usuário.
    """
    codes = normalize_module_codes(module_codes)

    async def _checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
        resolver: MembershipResolver = Depends(get_membership_resolver),
        gate: ModuleGate = Depends(get_module_gate),
    ) -> AccessContext:
        guard_request = await _guard_request(request, actor, db=db)
        return await run_guards(
            [membership_guard(resolver), module_guard(gate, codes)],
            guard_request,
        )

    return _checker


def require_module_feature(module_code: str, feature_key: str) -> Callable:
    """
    Dependency factory para uma funcionalidade específica de um módulo.
    """
    code = normalize_module_codes([module_code])[0]

    async def _checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
        resolver: MembershipResolver = Depends(get_membership_resolver),
        gate: ModuleGate = Depends(get_module_gate),
    ) -> AccessContext:
        guard_request = await _guard_request(request, actor, db=db)
        return await run_guards(
            [membership_guard(resolver), feature_guard(gate, code, feature_key)],
            guard_request,
        )

    return _checker


def require_role_and_module(
    allowed_roles: Iterable[str | Role] | str,
    module_codes: Sequence[str] | str,
) -> Callable:
    """
    Dependency factory que exige a role antes de consultar os módulos.
    """
    if isinstance(allowed_roles, str):
        allowed_roles = [allowed_roles]
    allowed = parse_allowed_roles(allowed_roles)
    codes = normalize_module_codes(module_codes)

    async def _checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
        resolver: MembershipResolver = Depends(get_membership_resolver),
        gate: ModuleGate = Depends(get_module_gate),
    ) -> AccessContext:
        guard_request = await _guard_request(request, actor, db=db)
        return await run_guards(
            [
                membership_guard(resolver),
                role_guard(allowed),
                module_guard(gate, codes),
            ],
            guard_request,
        )

    return _checker
