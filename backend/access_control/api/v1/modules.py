"""
Endpoints de administração de módulos (catálogo, assinaturas, restrições por
usuário, período de testes, relatório de uso e histórico).
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.api.deps import (
    get_current_actor,
    require_role,
    verify_resource_access,
)
from access_control.core.guards import AccessContext, Actor
from access_control.db.base import get_db
from access_control.schemas.modules import (
    AccessHistoryItem,
    AccessHistoryListResponse,
    ModuleItem,
    ModuleUsageReport,
    OrganizationModuleItem,
    OrganizationModulesUpdateRequest,
    TrialActivationRequest,
    TrialActivationResponse,
    UserModuleItem,
    UserModulePermissionResponse,
    UserModulePermissionUpdate,
)
from access_control.services.module_service import ModuleService, get_module_service


router = APIRouter(tags=["Módulos"])

_org_admin = require_role("owner", "superadmin")


@router.get(
    "/modules",
    response_model=List[ModuleItem],
    summary="Listar catálogo de módulos",
)
async def list_modules(
    _: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> List[ModuleItem]:
    modules = await service.list_modules(db)
    return [ModuleItem.model_validate(module) for module in modules]


@router.get(
    "/organizations/{organizationId}/modules",
    response_model=List[OrganizationModuleItem],
    summary="Listar módulos da organização",
)
async def list_organization_modules(
    access: AccessContext = Depends(_org_admin),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> List[OrganizationModuleItem]:
    rows = await service.list_organization_modules(db, access.organization_id)
    return [OrganizationModuleItem(**row) for row in rows]


@router.put(
    "/organizations/{organizationId}/modules",
    response_model=List[OrganizationModuleItem],
    summary="Atualizar assinaturas da organização",
    description="""
    Cria ou atualiza a assinatura de cada módulo informado. Restrito a
    superadministradores.
    """,
)
async def update_organization_modules(
    payload: OrganizationModulesUpdateRequest,
    access: AccessContext = Depends(require_role("superadmin")),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> List[OrganizationModuleItem]:
    rows = await service.update_organization_modules(
        db,
        access.organization_id,
        [item.model_dump() for item in payload.modules],
    )
    return [OrganizationModuleItem(**row) for row in rows]


@router.get(
    "/organizations/{organizationId}/users/{userId}/modules",
    response_model=List[UserModuleItem],
    summary="Listar restrições de módulos do usuário",
)
async def get_user_module_permissions(
    user_id: int = Path(..., alias="userId"),
    access: AccessContext = Depends(_org_admin),
    __: AccessContext = Depends(verify_resource_access("user", "userId")),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> List[UserModuleItem]:
    rows = await service.get_user_module_permissions(db, access.organization_id, user_id)
    return [UserModuleItem(**row) for row in rows]


@router.put(
    "/organizations/{organizationId}/users/{userId}/modules/{moduleId}",
    response_model=UserModulePermissionResponse,
    summary="Atualizar restrição de módulo do usuário",
)
async def update_user_module_permission(
    payload: UserModulePermissionUpdate,
    user_id: int = Path(..., alias="userId"),
    module_id: int = Path(..., alias="moduleId"),
    access: AccessContext = Depends(_org_admin),
    __: AccessContext = Depends(verify_resource_access("user", "userId")),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> UserModulePermissionResponse:
    row = await service.update_user_module_permission(
        db,
        access.organization_id,
        user_id,
        module_id,
        can_access=payload.can_access,
        permissions=payload.permissions,
        performed_by=access.actor_id,
    )
    return UserModulePermissionResponse.model_validate(row)


@router.post(
    "/organizations/{organizationId}/trial",
    response_model=TrialActivationResponse,
    summary="Ativar período de testes",
)
async def activate_trial(
    payload: Optional[TrialActivationRequest] = None,
    access: AccessContext = Depends(require_role("superadmin")),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> TrialActivationResponse:
    days = payload.days if payload else None
    trial_end = await service.activate_trial(db, access.organization_id, days)
    return TrialActivationResponse(trial_end_date=trial_end)


@router.get(
    "/organizations/{organizationId}/modules/report",
    response_model=ModuleUsageReport,
    summary="Relatório de uso de módulos",
    description="""
    Agrega os acessos concedidos por módulo. Sem datas, usa a janela padrão
    configurada em `USAGE_REPORT_DEFAULT_DAYS`.
    """,
)
async def usage_report(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    access: AccessContext = Depends(_org_admin),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> ModuleUsageReport:
    report = await service.usage_report(
        db,
        access.organization_id,
        start=start_date,
        end=end_date,
    )
    return ModuleUsageReport(**report)


@router.get(
    "/organizations/{organizationId}/modules/history",
    response_model=AccessHistoryListResponse,
    summary="Histórico de acesso a módulos",
)
async def list_access_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    action_type: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    access: AccessContext = Depends(_org_admin),
    db: AsyncSession = Depends(get_db),
    service: ModuleService = Depends(get_module_service),
) -> AccessHistoryListResponse:
    items, total = await service.list_access_history(
        db,
        access.organization_id,
        page=page,
        page_size=page_size,
        action_type=action_type,
        user_id=user_id,
    )
    page_count = (total + page_size - 1) // page_size
    return AccessHistoryListResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=page_count,
        items=[AccessHistoryItem.model_validate(item) for item in items],
    )
