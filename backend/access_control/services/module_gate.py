"""
Gate de assinatura de módulos e de funcionalidades por usuário.

O módulo precisa estar ativo e dentro da vigência para a organização. Uma
linha em ``user_modules`` só restringe: ausência de linha herda a concessão
da organização. Toda decisão do gate gera um registro de auditoria antes do
retorno.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.errors import (
    ConfigurationError,
    FeatureAccessDenied,
    ModuleAccessDenied,
    UserModuleAccessDenied,
)
from access_control.core.guards import ALLOW, Decision, Deny, GuardRequest
from access_control.core.logging import get_logger
from access_control.db.models.module import Module, OrganizationModule, UserModulePermission
from access_control.db.models.module_access_history import ACCESS_DENIED, ACCESS_GRANTED
from access_control.services.audit_service import AccessAuditService

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_module_codes(codes: Sequence[str] | str) -> List[str]:
    """Remove duplicados preservando a ordem; lista vazia é erro de configuração."""
    if isinstance(codes, str):
        codes = [codes]
    normalized: List[str] = []
    for code in codes:
        value = str(code).strip()
        if value and value not in normalized:
            normalized.append(value)
    if not normalized:
        raise ConfigurationError("At least one module code is required")
    return normalized


class ModuleGate:
    """Verifica licenças de módulos da organização e restrições do usuário."""

    def __init__(
        self,
        audit_service: AccessAuditService,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.audit_service = audit_service
        self.clock = clock

    async def _entitled_modules(
        self,
        db: AsyncSession,
        organization_id: int,
        codes: List[str],
    ) -> List[Dict[str, Any]]:
        now = self.clock()
        result = await db.execute(
            select(
                Module.id,
                Module.code,
                Module.name,
                OrganizationModule.active,
                OrganizationModule.subscription_end_date,
            )
            .join(OrganizationModule, Module.id == OrganizationModule.module_id)
            .where(
                OrganizationModule.organization_id == organization_id,
                Module.code.in_(codes),
                OrganizationModule.active.is_(True),
                or_(
                    OrganizationModule.subscription_end_date.is_(None),
                    OrganizationModule.subscription_end_date > now,
                ),
            )
        )
        return [dict(row._mapping) for row in result.all()]

    async def _user_overrides(
        self,
        db: AsyncSession,
        organization_id: int,
        actor_id: int,
        codes: List[str],
    ) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(
                UserModulePermission.module_id,
                Module.code,
                UserModulePermission.can_access,
                UserModulePermission.permissions,
            )
            .join(Module, UserModulePermission.module_id == Module.id)
            .where(
                UserModulePermission.organization_id == organization_id,
                UserModulePermission.user_id == actor_id,
                Module.code.in_(codes),
            )
        )
        return [dict(row._mapping) for row in result.all()]

    @staticmethod
    def _audit_details(request: GuardRequest, **extra: Any) -> Dict[str, Any]:
        details: Dict[str, Any] = {
            "path": request.path,
            "method": request.method,
        }
        if request.context.organization_source:
            details["organization_source"] = request.context.organization_source
        details.update(extra)
        return details

    async def check(self, request: GuardRequest, codes: Sequence[str] | str) -> Decision:
        """
        Exige que a organização ativa possua todos os módulos informados.

        Em caso de sucesso, anexa ao contexto os módulos obtidos e os mapas
        de permissões do usuário.
        """
        required = normalize_module_codes(codes)
        context = request.context
        organization_id = context.organization_id
        actor_id = context.actor_id
        db = request.db

        entitled = await self._entitled_modules(db, organization_id, required)
        available = {row["code"] for row in entitled}
        missing = [code for code in required if code not in available]

        if missing:
            logger.warning(
                "module_access_denied",
                organization_id=organization_id,
                actor_id=actor_id,
                missing_modules=missing,
            )
            await self.audit_service.record_action(
                db,
                organization_id,
                ACCESS_DENIED,
                actor_id=actor_id,
                module_code=missing[0],
                details=self._audit_details(
                    request,
                    message="Access denied - organization does not have required modules",
                    missingModules=missing,
                ),
            )
            return Deny(ModuleAccessDenied(missing))

        overrides = await self._user_overrides(db, organization_id, actor_id, required)
        denied = [row["code"] for row in overrides if not row["can_access"]]

        if denied:
            logger.warning(
                "user_module_access_denied",
                organization_id=organization_id,
                actor_id=actor_id,
                denied_modules=denied,
            )
            await self.audit_service.record_action(
                db,
                organization_id,
                ACCESS_DENIED,
                actor_id=actor_id,
                module_code=denied[0],
                details=self._audit_details(
                    request,
                    message="Access denied - user does not have required module permissions",
                    deniedModules=denied,
                ),
            )
            return Deny(UserModuleAccessDenied(denied))

        context.organization_modules = entitled
        context.user_module_permissions.update(
            {row["code"]: dict(row["permissions"] or {}) for row in overrides}
        )

        primary = next(row for row in entitled if row["code"] == required[0])
        await self.audit_service.record_action(
            db,
            organization_id,
            ACCESS_GRANTED,
            actor_id=actor_id,
            module_id=primary["id"],
            details=self._audit_details(request),
        )
        return ALLOW

    async def check_feature(
        self,
        request: GuardRequest,
        module_code: str,
        feature_key: str,
    ) -> Decision:
        """
        Exige o módulo e, em seguida, que a funcionalidade não esteja revogada.

        A funcionalidade só é negada quando o mapa de permissões do usuário
        para o módulo existe e define a chave explicitamente como ``false``.
        """
        decision = await self.check(request, [module_code])
        if isinstance(decision, Deny):
            return decision

        permissions: Optional[Dict[str, Any]] = request.context.user_module_permissions.get(
            module_code
        )
        if permissions is not None and permissions.get(feature_key) is False:
            logger.warning(
                "feature_access_denied",
                organization_id=request.context.organization_id,
                actor_id=request.context.actor_id,
                module=module_code,
                feature=feature_key,
            )
            await self.audit_service.record_action(
                request.db,
                request.context.organization_id,
                ACCESS_DENIED,
                actor_id=request.context.actor_id,
                module_code=module_code,
                details=self._audit_details(
                    request,
                    message="Access denied - feature revoked for user",
                    feature=feature_key,
                ),
            )
            return Deny(FeatureAccessDenied(module_code, feature_key))
        return ALLOW


def get_module_gate() -> ModuleGate:
    """Dependency provider."""
    return ModuleGate(AccessAuditService())
