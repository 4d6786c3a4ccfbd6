"""Administração de módulos, assinaturas e restrições por usuário."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.config import get_settings
from access_control.core.errors import ResourceNotFound
from access_control.core.logging import get_logger
from access_control.db.models.module import Module, OrganizationModule, UserModulePermission
from access_control.db.models.module_access_history import (
    UPDATE_PERMISSIONS,
    ModuleAccessHistory,
)
from access_control.db.models.organization import OrganizationUser
from access_control.services.audit_service import AccessAuditService

logger = get_logger(__name__)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ModuleService:
    """Gerencia catálogo de módulos, vigência por organização e exceções por usuário."""

    def __init__(self, audit_service: AccessAuditService) -> None:
        self.audit_service = audit_service
        self.settings = get_settings()

    async def list_modules(self, db: AsyncSession) -> list[Module]:
        result = await db.execute(select(Module).order_by(Module.name))
        return list(result.scalars().all())

    async def list_organization_modules(
        self,
        db: AsyncSession,
        organization_id: int,
    ) -> list[Dict[str, Any]]:
        """Todos os módulos do catálogo com o estado de assinatura da organização."""
        result = await db.execute(
            select(
                Module.id,
                Module.code,
                Module.name,
                Module.description,
                OrganizationModule.active,
                OrganizationModule.subscription_start_date,
                OrganizationModule.subscription_end_date,
                OrganizationModule.custom_settings,
            )
            .outerjoin(
                OrganizationModule,
                and_(
                    Module.id == OrganizationModule.module_id,
                    OrganizationModule.organization_id == organization_id,
                ),
            )
            .order_by(Module.name)
        )
        return [dict(row._mapping) for row in result.all()]

    async def update_organization_modules(
        self,
        db: AsyncSession,
        organization_id: int,
        updates: Iterable[Dict[str, Any]],
    ) -> list[Dict[str, Any]]:
        """
        Cria ou atualiza assinaturas da organização.

        Um vínculo novo só é criado quando ``active`` não for ``False``.

        Raises:
            ResourceNotFound: módulo inexistente (nada é gravado)
        """
        now = datetime.now(timezone.utc)
        try:
            for item in updates:
                module_id = item["id"]
                module = await db.get(Module, module_id)
                if module is None:
                    raise ResourceNotFound(f"Module with ID {module_id} does not exist")

                result = await db.execute(
                    select(OrganizationModule).where(
                        OrganizationModule.organization_id == organization_id,
                        OrganizationModule.module_id == module_id,
                    )
                )
                link = result.scalar_one_or_none()
                active = item.get("active")
                active = True if active is None else bool(active)

                if link is not None:
                    link.active = active
                    link.subscription_start_date = item.get("subscription_start_date") or now
                    link.subscription_end_date = item.get("subscription_end_date")
                    link.custom_settings = item.get("custom_settings") or {}
                elif active:
                    db.add(
                        OrganizationModule(
                            organization_id=organization_id,
                            module_id=module_id,
                            active=True,
                            subscription_start_date=item.get("subscription_start_date") or now,
                            subscription_end_date=item.get("subscription_end_date"),
                            custom_settings=item.get("custom_settings") or {},
                        )
                    )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("organization_modules_updated", organization_id=organization_id)
        return await self.list_organization_modules(db, organization_id)

    async def _ensure_member(
        self,
        db: AsyncSession,
        organization_id: int,
        user_id: int,
    ) -> None:
        result = await db.execute(
            select(OrganizationUser.id).where(
                OrganizationUser.organization_id == organization_id,
                OrganizationUser.user_id == user_id,
            )
        )
        if result.first() is None:
            raise ResourceNotFound(
                "User does not exist or does not belong to this organization"
            )

    async def get_user_module_permissions(
        self,
        db: AsyncSession,
        organization_id: int,
        user_id: int,
    ) -> list[Dict[str, Any]]:
        """Módulos ativos da organização com a restrição individual do usuário."""
        await self._ensure_member(db, organization_id, user_id)

        result = await db.execute(
            select(
                Module.id,
                Module.code,
                Module.name,
                UserModulePermission.can_access,
                UserModulePermission.permissions,
            )
            .join(OrganizationModule, Module.id == OrganizationModule.module_id)
            .outerjoin(
                UserModulePermission,
                and_(
                    Module.id == UserModulePermission.module_id,
                    UserModulePermission.user_id == user_id,
                    UserModulePermission.organization_id == organization_id,
                ),
            )
            .where(
                OrganizationModule.organization_id == organization_id,
                OrganizationModule.active.is_(True),
            )
            .order_by(Module.name)
        )
        return [dict(row._mapping) for row in result.all()]

    async def update_user_module_permission(
        self,
        db: AsyncSession,
        organization_id: int,
        user_id: int,
        module_id: int,
        *,
        can_access: bool,
        permissions: Optional[Dict[str, bool]] = None,
        performed_by: int,
    ) -> UserModulePermission:
        """
        Cria ou atualiza a restrição do usuário para um módulo.

        Raises:
            ResourceNotFound: usuário fora da organização ou módulo não
                contratado ativamente pela organização
        """
        await self._ensure_member(db, organization_id, user_id)

        module_link = await db.execute(
            select(OrganizationModule.id).where(
                OrganizationModule.organization_id == organization_id,
                OrganizationModule.module_id == module_id,
                OrganizationModule.active.is_(True),
            )
        )
        if module_link.first() is None:
            raise ResourceNotFound("Organization does not have access to this module")

        result = await db.execute(
            select(UserModulePermission).where(
                UserModulePermission.organization_id == organization_id,
                UserModulePermission.user_id == user_id,
                UserModulePermission.module_id == module_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = UserModulePermission(
                organization_id=organization_id,
                user_id=user_id,
                module_id=module_id,
            )
            db.add(row)
        row.can_access = bool(can_access)
        row.permissions = dict(permissions or {})
        await db.commit()

        await self.audit_service.record_action(
            db,
            organization_id,
            UPDATE_PERMISSIONS,
            actor_id=user_id,
            module_id=module_id,
            performed_by=performed_by,
            details={"can_access": bool(can_access), "permissions": dict(permissions or {})},
        )
        logger.info(
            "user_module_permission_updated",
            organization_id=organization_id,
            user_id=user_id,
            module_id=module_id,
            can_access=bool(can_access),
        )
        return row

    async def activate_trial(
        self,
        db: AsyncSession,
        organization_id: int,
        days: Optional[int] = None,
    ) -> datetime:
        """
        Ativa período de testes em todos os módulos ativos do catálogo.

        Assinaturas ativas ainda vigentes (ou sem data de término) não são
        alteradas.

        Returns:
            datetime: fim do período de testes
        """
        trial_days = days or self.settings.default_trial_days
        now = datetime.now(timezone.utc)
        trial_end = now + timedelta(days=trial_days)

        try:
            modules = await db.execute(select(Module.id).where(Module.is_active.is_(True)))
            for module_id in modules.scalars().all():
                result = await db.execute(
                    select(OrganizationModule).where(
                        OrganizationModule.organization_id == organization_id,
                        OrganizationModule.module_id == module_id,
                    )
                )
                link = result.scalar_one_or_none()

                if link is None:
                    db.add(
                        OrganizationModule(
                            organization_id=organization_id,
                            module_id=module_id,
                            active=True,
                            subscription_start_date=now,
                            subscription_end_date=trial_end,
                            custom_settings={},
                        )
                    )
                    continue

                current_end = _as_aware(link.subscription_end_date)
                if link.active and (current_end is None or current_end > now):
                    continue

                link.active = True
                link.subscription_start_date = now
                link.subscription_end_date = trial_end
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "trial_period_activated",
            organization_id=organization_id,
            days=trial_days,
        )
        return trial_end

    async def usage_report(
        self,
        db: AsyncSession,
        organization_id: int,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        return await self.audit_service.usage_report(
            db, organization_id, start=start, end=end
        )

    async def list_access_history(
        self,
        db: AsyncSession,
        organization_id: int,
        *,
        page: int = 1,
        page_size: int = 50,
        action_type: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> tuple[list[ModuleAccessHistory], int]:
        return await self.audit_service.list_history(
            db,
            organization_id,
            page=page,
            page_size=page_size,
            action_type=action_type,
            user_id=user_id,
        )


def get_module_service() -> ModuleService:
    """Dependency provider."""
    return ModuleService(AccessAuditService())
