"""
Schemas da administração de módulos e do histórico de acesso.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModuleItem(BaseModel):
    """Módulo do catálogo."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str = Field(..., description="Código estável do módulo (ex.: billing)")
    name: str
    description: Optional[str] = None
    is_active: bool = True


class OrganizationModuleItem(BaseModel):
    """Módulo do catálogo com o estado de assinatura da organização."""

    id: int
    code: str
    name: str
    description: Optional[str] = None
    active: Optional[bool] = Field(
        None,
        description="Nulo quando a organização nunca contratou o módulo",
    )
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    custom_settings: Optional[Dict[str, Any]] = None


class OrganizationModuleUpdate(BaseModel):
    """Alteração de assinatura de um módulo."""

    id: int = Field(..., description="ID do módulo")
    active: Optional[bool] = True
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    custom_settings: Dict[str, Any] = Field(default_factory=dict)


class OrganizationModulesUpdateRequest(BaseModel):
    modules: List[OrganizationModuleUpdate] = Field(..., min_length=1)


class UserModuleItem(BaseModel):
    """Módulo ativo da organização com a restrição individual do usuário."""

    id: int
    code: str
    name: str
    can_access: Optional[bool] = Field(
        None,
        description="Nulo quando o usuário herda a concessão da organização",
    )
    permissions: Optional[Dict[str, bool]] = None


class UserModulePermissionUpdate(BaseModel):
    can_access: bool
    permissions: Dict[str, bool] = Field(default_factory=dict)


class UserModulePermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    organization_id: int
    user_id: int
    module_id: int
    can_access: bool
    permissions: Dict[str, bool] = Field(default_factory=dict)


class TrialActivationRequest(BaseModel):
    days: Optional[int] = Field(None, ge=1, le=365, description="Duração do teste em dias")


class TrialActivationResponse(BaseModel):
    status: str = "success"
    trial_end_date: datetime


class ModuleUsageItem(BaseModel):
    code: str
    name: str
    access_count: int
    unique_users_count: int
    last_access: Optional[datetime] = None


class ModuleUsageReport(BaseModel):
    """Uso agregado dos módulos na janela informada."""

    start_date: datetime
    end_date: datetime
    modules: List[ModuleUsageItem] = Field(default_factory=list)


class AccessHistoryItem(BaseModel):
    """Item do histórico de acesso a módulos."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    module_id: Optional[int] = None
    action_type: str = Field(..., description="access_granted, access_denied ou update_permissions")
    action_details: Dict[str, Any] = Field(default_factory=dict)
    performed_by: Optional[int] = None
    performed_at: datetime


class AccessHistoryListResponse(BaseModel):
    """Página do histórico de acesso da organização."""

    total: int = Field(..., description="Total de registros encontrados")
    page: int = Field(..., description="Página atual (1-indexed)")
    page_size: int = Field(..., description="Tamanho da página")
    total_pages: int = Field(..., description="Total de páginas")
    items: List[AccessHistoryItem] = Field(default_factory=list)
