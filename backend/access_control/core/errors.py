"""
Taxonomia de erros do motor de acesso e seus handlers HTTP.

Negações de autorização (4xx) são recuperáveis pelo chamador; erros de
configuração e de banco (5xx) indicam defeito de deploy ou infraestrutura
e sempre falham fechado.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from fastapi import FastAPI, status
from starlette.requests import Request
from starlette.responses import JSONResponse

from access_control.core.logging import get_logger

logger = get_logger(__name__)


class AccessControlError(Exception):
    """Erro base com status HTTP, código de máquina e mensagem legível."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: Optional[str] = None
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = dict(extra or {})
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": "error", "message": self.message}
        if self.code:
            payload["code"] = self.code
        payload.update(self.extra)
        return payload


class NotAuthenticated(AccessControlError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class OrganizationRequired(AccessControlError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "ORGANIZATION_REQUIRED"
    default_message = "Organization ID is required"


class NotMember(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this organization"


class ResourceNotFound(AccessControlError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "The requested resource does not exist or you do not have access to it"


class Forbidden(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to access this resource"


class RoleNotAllowed(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Your role does not have permission to perform this action"


class ModuleAccessDenied(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "MODULE_ACCESS_DENIED"
    default_message = "Organization does not have access to required modules"

    def __init__(self, missing_modules: Iterable[str], message: Optional[str] = None):
        self.missing_modules = list(missing_modules)
        super().__init__(message, extra={"missingModules": self.missing_modules})


class UserModuleAccessDenied(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "USER_MODULE_ACCESS_DENIED"
    default_message = "You do not have permissions to access required modules"

    def __init__(self, denied_modules: Iterable[str], message: Optional[str] = None):
        self.denied_modules = list(denied_modules)
        super().__init__(message, extra={"deniedModules": self.denied_modules})


class FeatureAccessDenied(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FEATURE_ACCESS_DENIED"

    def __init__(self, module_code: str, feature_key: str):
        self.module_code = module_code
        self.feature_key = feature_key
        super().__init__(
            f"You do not have permission to access the {feature_key} feature",
            extra={"module": module_code, "feature": feature_key},
        )


class ConfigurationError(AccessControlError):
    """Guard mal configurado (ex.: tipo de recurso desconhecido)."""

    default_message = "Server configuration error"


class BackingStoreError(AccessControlError):
    """Falha ao consultar o banco durante a avaliação de um guard."""

    default_message = "Error while verifying access"


async def access_control_error_handler(
    request: Request, exc: AccessControlError
) -> JSONResponse:
    """Converte ``AccessControlError`` em resposta JSON estruturada."""
    if exc.status_code >= 500:
        logger.error(
            "access_control_failure",
            error=type(exc).__name__,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )
        payload = {"status": "error", "message": type(exc).default_message}
    else:
        payload = exc.to_payload()
    return JSONResponse(status_code=exc.status_code, content=payload)


def register_exception_handlers(app: FastAPI) -> None:
    """Registra os handlers de erro do motor na aplicação."""
    app.add_exception_handler(AccessControlError, access_control_error_handler)
