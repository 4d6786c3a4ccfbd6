"""
Pipeline de guards de autorização.

Cada guard é uma corrotina que recebe o ``GuardRequest`` e devolve ``Allow``
ou ``Deny``. ``run_guards`` executa a lista em ordem e interrompe na primeira
negação, levantando o erro carregado por ela.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.errors import AccessControlError, BackingStoreError
from access_control.core.logging import get_logger
from access_control.core.metrics import record_decision
from access_control.core.roles import Role, normalize_role

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class OrganizationMembership:
    """Par (organização, role) do ator, com role já normalizada."""

    organization_id: int
    role: Optional[Role]


@dataclass(slots=True)
class Actor:
    """Ator autenticado entregue pelo colaborador de autenticação."""

    id: int
    memberships: List[OrganizationMembership] = field(default_factory=list)

    def membership_for(self, organization_id: int) -> Optional[OrganizationMembership]:
        for membership in self.memberships:
            if membership.organization_id == organization_id:
                return membership
        return None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Actor":
        """
        Constrói o ator a partir das claims entregues pela autenticação.

        Formato esperado: ``{"id": 7, "organizations": [{"id": 3, "role": "vet"}]}``.
        As roles são normalizadas aqui; se a mesma organização aparecer mais de
        uma vez, vale a primeira ocorrência.
        """
        memberships: List[OrganizationMembership] = []
        seen: set[int] = set()
        for raw in claims.get("organizations") or []:
            try:
                organization_id = int(raw["id"])
            except (KeyError, TypeError, ValueError):
                continue
            if organization_id in seen:
                continue
            seen.add(organization_id)
            memberships.append(
                OrganizationMembership(
                    organization_id=organization_id,
                    role=normalize_role(raw.get("role")),
                )
            )
        return cls(id=int(claims["id"]), memberships=memberships)


@dataclass(slots=True)
class AccessContext:
    """Contexto anexado a ``request.state.access`` pelos guards."""

    actor_id: int
    organization_id: Optional[int] = None
    role: Optional[Role] = None
    organization_source: Optional[str] = None
    organization_modules: List[Dict[str, Any]] = field(default_factory=list)
    user_module_permissions: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass(slots=True)
class GuardRequest:
    """Dados da requisição necessários aos guards."""

    actor: Actor
    context: AccessContext
    db: Optional[AsyncSession]
    method: str = "GET"
    path: str = "/"
    path_params: Dict[str, Any] = field(default_factory=dict)
    query_params: Dict[str, Any] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Allow:
    """Guard aprovou a requisição."""

    allowed = True


@dataclass(frozen=True, slots=True)
class Deny:
    """Guard negou a requisição com o erro a ser devolvido ao chamador."""

    error: AccessControlError
    allowed = False


Decision = Union[Allow, Deny]
ALLOW = Allow()

Guard = Callable[[GuardRequest], Awaitable[Decision]]


@dataclass(frozen=True, slots=True)
class NamedGuard:
    """Guard com nome usado em logs e métricas."""

    name: str
    check: Guard

    async def __call__(self, request: GuardRequest) -> Decision:
        return await self.check(request)


async def evaluate_guards(
    guards: Sequence[NamedGuard],
    request: GuardRequest,
) -> Decision:
    """Avalia os guards em ordem e devolve a primeira negação (ou ``ALLOW``)."""
    for guard in guards:
        try:
            decision = await guard(request)
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "guard_backing_store_error",
                guard=guard.name,
                error=str(exc),
            )
            record_decision(guard.name, "error", "BACKING_STORE")
            raise BackingStoreError(str(exc)) from exc
        except AccessControlError as exc:
            record_decision(guard.name, "error", type(exc).__name__)
            raise

        if isinstance(decision, Deny):
            record_decision(
                guard.name,
                "deny",
                decision.error.code or type(decision.error).__name__,
            )
            return decision
        record_decision(guard.name, "allow")
    return ALLOW


async def run_guards(
    guards: Sequence[NamedGuard],
    request: GuardRequest,
) -> AccessContext:
    """Executa o pipeline; levanta o erro da primeira negação."""
    decision = await evaluate_guards(guards, request)
    if isinstance(decision, Deny):
        raise decision.error
    return request.context
