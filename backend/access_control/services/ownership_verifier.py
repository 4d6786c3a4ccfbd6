"""Verificação de que um recurso pertence à organização ativa."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.config import get_settings
from access_control.core.errors import ResourceNotFound
from access_control.core.guards import ALLOW, Decision, Deny
from access_control.core.logging import get_logger
from access_control.core.resources import ResourceKind, ResourceType, descriptor_for
from access_control.core.roles import Role, normalize_role
from access_control.db.models.organization import OrganizationUser
from access_control.services.role_matrix import evaluate_relationship_access

logger = get_logger(__name__)


# Colunas de id são INTEGER com sinal (int4 no PostgreSQL).
_MAX_RESOURCE_ID = 2**31 - 1


def _coerce_resource_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        target = value
    else:
        try:
            target = int(str(value).strip())
        except (TypeError, ValueError):
            return None
    if not -_MAX_RESOURCE_ID - 1 <= target <= _MAX_RESOURCE_ID:
        return None
    return target


class ResourceOwnershipVerifier:
    """Confirma posse de recursos e delega a matriz de roles para usuários."""

    def __init__(self, superadmin_cross_org_methods: Optional[Iterable[str]] = None) -> None:
        methods = (
            superadmin_cross_org_methods
            if superadmin_cross_org_methods is not None
            else get_settings().superadmin_cross_org_methods
        )
        self.superadmin_cross_org_methods = frozenset(m.upper() for m in methods)

    async def verify(
        self,
        db: AsyncSession,
        resource_type: str | ResourceType,
        resource_id: Any,
        *,
        organization_id: int,
        actor_id: int,
        role: Optional[Role],
        method: str = "GET",
    ) -> Decision:
        """
        Verifica o acesso a ``(resource_type, resource_id)`` na organização.

        Sem ``resource_id`` (endpoints de listagem) o acesso é liberado e o
        escopo fica a cargo da consulta de negócio.

        Raises:
            ConfigurationError: tipo de recurso sem mapeamento
        """
        if resource_id is None or (isinstance(resource_id, str) and not resource_id.strip()):
            return ALLOW

        descriptor = descriptor_for(resource_type)

        target_id = _coerce_resource_id(resource_id)
        if target_id is None:
            logger.warning(
                "resource_access_denied",
                reason="invalid_resource_id",
                resource_type=str(resource_type),
                resource_id=str(resource_id),
            )
            return Deny(ResourceNotFound())

        if descriptor.kind is ResourceKind.RELATIONSHIP:
            return await self._verify_relationship(
                db,
                target_id,
                organization_id=organization_id,
                actor_id=actor_id,
                role=role,
                method=method,
            )

        result = await db.execute(descriptor.ownership_query(target_id, organization_id))
        if result.first() is None:
            logger.warning(
                "resource_access_denied",
                reason="outside_organization",
                resource_type=descriptor.collection,
                resource_id=target_id,
                organization_id=organization_id,
            )
            return Deny(ResourceNotFound())
        return ALLOW

    async def _verify_relationship(
        self,
        db: AsyncSession,
        target_id: int,
        *,
        organization_id: int,
        actor_id: int,
        role: Optional[Role],
        method: str,
    ) -> Decision:
        result = await db.execute(
            select(OrganizationUser.user_id, OrganizationUser.role).where(
                OrganizationUser.user_id == target_id,
                OrganizationUser.organization_id == organization_id,
            )
        )
        membership = result.first()

        if membership is None:
            if role is Role.SUPERADMIN and method.upper() in self.superadmin_cross_org_methods:
                logger.info(
                    "superadmin_cross_organization_access",
                    actor_id=actor_id,
                    target_id=target_id,
                    organization_id=organization_id,
                    method=method.upper(),
                )
                return ALLOW

            logger.warning(
                "resource_access_denied",
                reason="user_outside_organization",
                resource_id=target_id,
                organization_id=organization_id,
            )
            return Deny(ResourceNotFound())

        return evaluate_relationship_access(
            caller_role=role,
            caller_id=actor_id,
            target_id=target_id,
            target_role=normalize_role(membership.role),
        )


def get_ownership_verifier() -> ResourceOwnershipVerifier:
    """Dependency provider."""
    return ResourceOwnershipVerifier()
