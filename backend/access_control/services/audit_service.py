"""
Serviço de auditoria das decisões de acesso a módulos.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.config import get_settings
from access_control.core.logging import get_logger
from access_control.core.metrics import record_audit_write_failure
from access_control.db.models.module import Module
from access_control.db.models.module_access_history import (
    ACCESS_GRANTED,
    ModuleAccessHistory,
)

logger = get_logger(__name__)


class AccessAuditService:
    """Persistência e consulta do histórico de acesso a módulos."""

    def __init__(self) -> None:
        self.settings = get_settings()

    async def _module_id_for(self, db: AsyncSession, module_code: str) -> Optional[int]:
        result = await db.execute(select(Module.id).where(Module.code == module_code))
        return result.scalar_one_or_none()

    async def record_action(
        self,
        db: AsyncSession,
        organization_id: int,
        action_type: str,
        *,
        actor_id: Optional[int] = None,
        module_id: Optional[int] = None,
        module_code: Optional[str] = None,
        performed_by: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[ModuleAccessHistory]:
        """Registra um evento de auditoria (falha interna é logada e tolerada)."""
        if not self.settings.audit_enabled:
            return None

        try:
            if module_id is None and module_code:
                module_id = await self._module_id_for(db, module_code)
            entry = ModuleAccessHistory(
                organization_id=organization_id,
                user_id=actor_id,
                module_id=module_id,
                action_type=action_type,
                action_details=details or {},
                performed_by=performed_by if performed_by is not None else actor_id,
                performed_at=datetime.now(timezone.utc),
            )
            db.add(entry)
            await db.commit()
            return entry
        except Exception:
            logger.warning(
                "audit_write_failed",
                organization_id=organization_id,
                action_type=action_type,
                module_code=module_code,
                exc_info=True,
            )
            record_audit_write_failure()
            try:
                await db.rollback()
            except Exception:
                logger.debug("audit_rollback_failed", exc_info=True)
            return None

    async def list_history(
        self,
        db: AsyncSession,
        organization_id: int,
        *,
        page: int = 1,
        page_size: int = 50,
        action_type: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> tuple[list[ModuleAccessHistory], int]:
        """Lista histórico com filtros e paginação."""
        conditions = [ModuleAccessHistory.organization_id == organization_id]

        if action_type:
            conditions.append(ModuleAccessHistory.action_type == action_type)
        if user_id is not None:
            conditions.append(ModuleAccessHistory.user_id == user_id)

        base_query = select(ModuleAccessHistory).where(and_(*conditions)).order_by(
            ModuleAccessHistory.performed_at.desc(),
            ModuleAccessHistory.id.desc(),
        )
        total_query = select(func.count()).select_from(base_query.subquery())

        count_result = await db.execute(total_query)
        total = int(count_result.scalar_one() or 0)

        page = max(page, 1)
        page_size = max(min(page_size, 500), 1)
        offset = (page - 1) * page_size
        result = await db.execute(base_query.offset(offset).limit(page_size))
        items = list(result.scalars().all())

        return items, total

    async def usage_report(
        self,
        db: AsyncSession,
        organization_id: int,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Agrega acessos concedidos por módulo dentro da janela informada."""
        end = end or datetime.now(timezone.utc)
        start = start or end - timedelta(days=self.settings.usage_report_default_days)

        result = await db.execute(
            select(
                Module.code,
                Module.name,
                func.count().label("access_count"),
                func.count(func.distinct(ModuleAccessHistory.user_id)).label(
                    "unique_users_count"
                ),
                func.max(ModuleAccessHistory.performed_at).label("last_access"),
            )
            .select_from(ModuleAccessHistory)
            .join(Module, ModuleAccessHistory.module_id == Module.id)
            .where(
                ModuleAccessHistory.organization_id == organization_id,
                ModuleAccessHistory.action_type == ACCESS_GRANTED,
                ModuleAccessHistory.performed_at.between(start, end),
            )
            .group_by(Module.id, Module.code, Module.name)
            .order_by(func.count().desc())
        )

        return {
            "start_date": start,
            "end_date": end,
            "modules": [
                {
                    "code": row.code,
                    "name": row.name,
                    "access_count": int(row.access_count),
                    "unique_users_count": int(row.unique_users_count),
                    "last_access": row.last_access,
                }
                for row in result.all()
            ],
        }


def get_audit_service() -> AccessAuditService:
    """Dependency provider."""
    return AccessAuditService()
