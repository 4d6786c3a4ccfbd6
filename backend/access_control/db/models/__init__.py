from access_control.db.models.organization import Organization, OrganizationUser
from access_control.db.models.module import Module, OrganizationModule, UserModulePermission
from access_control.db.models.module_access_history import ModuleAccessHistory

__all__ = [
    "Organization",
    "OrganizationUser",
    "Module",
    "OrganizationModule",
    "UserModulePermission",
    "ModuleAccessHistory",
]
