"""
Roles de organização e normalização.

Toda string de role recebida do colaborador de autenticação ou lida do banco
passa por ``normalize_role`` uma única vez; a partir daí o motor trabalha
apenas com ``Role``.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional


class Role(str, Enum):
    """Roles possíveis de um ator dentro de uma organização."""

    SUPERADMIN = "superadmin"
    OWNER = "owner"
    EMPLOYEE = "employee"
    OFFICE_STAFF = "office_staff"
    INSEMINATOR = "inseminator"
    VET_TECH = "vet_tech"
    VET = "vet"
    CLIENT = "client"
    FARMER = "farmer"
    MEMBER = "member"


EMPLOYEE_CLASS_ROLES = frozenset(
    {
        Role.EMPLOYEE,
        Role.OFFICE_STAFF,
        Role.INSEMINATOR,
        Role.VET_TECH,
        Role.VET,
    }
)

CUSTOMER_ROLES = frozenset({Role.CLIENT, Role.FARMER})

# Grafias antigas gravadas em tokens e na tabela organization_user
_LEGACY_ALIASES = {
    "officestaff": Role.OFFICE_STAFF,
    "vettech": Role.VET_TECH,
}


def normalize_role(raw: Optional[str]) -> Optional[Role]:
    """Converte uma string de role em ``Role`` (``None`` se desconhecida)."""
    if raw is None:
        return None
    if isinstance(raw, Role):
        return raw

    normalized = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    if not normalized:
        return None

    if normalized in _LEGACY_ALIASES:
        return _LEGACY_ALIASES[normalized]

    try:
        return Role(normalized)
    except ValueError:
        return None


def normalize_roles(raw_roles: Iterable[str | Role]) -> frozenset[Role]:
    """Normaliza uma lista de roles descartando valores desconhecidos."""
    roles = (normalize_role(role) for role in raw_roles)
    return frozenset(role for role in roles if role is not None)
