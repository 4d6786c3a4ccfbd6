"""
Mapeamento estático de tipos de recurso para suas tabelas de origem.

Cada ``ResourceType`` possui exatamente um ``ResourceDescriptor``. O mapeamento
é verificado na importação do módulo: um tipo sem descritor impede o start
da aplicação em vez de virar um 500 em tempo de request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from sqlalchemy import ColumnElement, Select, column, select, table

from access_control.core.errors import ConfigurationError


class ResourceKind(str, Enum):
    """Formato de posse do recurso."""

    RELATIONSHIP = "relationship"
    OWNED = "owned"


class ResourceType(str, Enum):
    """Tipos de recurso protegidos pelo verificador de posse."""

    USER = "user"
    CLIENT = "client"
    ANIMAL = "animal"
    VISIT = "visit"
    INSEMINATION = "insemination"
    BULL = "bull"
    HERD = "herd"


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """Coleção de origem e colunas de escopo de um tipo de recurso."""

    collection: str
    id_column: str
    org_column: str
    kind: ResourceKind

    def ownership_query(self, resource_id: int, organization_id: int) -> Select:
        """SELECT de existência escopado por id e organização."""
        source = table(
            self.collection,
            column(self.id_column),
            column(self.org_column),
        )
        id_col: ColumnElement = source.c[self.id_column]
        org_col: ColumnElement = source.c[self.org_column]
        return (
            select(id_col)
            .where(id_col == resource_id, org_col == organization_id)
            .limit(1)
        )


_MEMBERSHIP = ResourceDescriptor(
    collection="organization_user",
    id_column="user_id",
    org_column="organization_id",
    kind=ResourceKind.RELATIONSHIP,
)


def _owned(collection: str) -> ResourceDescriptor:
    return ResourceDescriptor(
        collection=collection,
        id_column="id",
        org_column="organization_id",
        kind=ResourceKind.OWNED,
    )


RESOURCE_DESCRIPTORS: MappingProxyType[ResourceType, ResourceDescriptor] = MappingProxyType(
    {
        ResourceType.USER: _MEMBERSHIP,
        ResourceType.CLIENT: _MEMBERSHIP,
        ResourceType.ANIMAL: _owned("animals"),
        ResourceType.VISIT: _owned("visits"),
        ResourceType.INSEMINATION: _owned("inseminations"),
        ResourceType.BULL: _owned("bulls"),
        ResourceType.HERD: _owned("herds"),
    }
)

_unmapped = set(ResourceType) - set(RESOURCE_DESCRIPTORS)
if _unmapped:  # pragma: no cover - falha de deploy
    raise RuntimeError(
        f"Resource types without descriptor: {sorted(t.value for t in _unmapped)}"
    )


def parse_resource_type(value: str | ResourceType) -> ResourceType:
    """Converte texto em ``ResourceType`` ou falha com ``ConfigurationError``."""
    if isinstance(value, ResourceType):
        return value
    try:
        return ResourceType(str(value).strip().lower())
    except ValueError as exc:
        raise ConfigurationError(f"Unknown resource type: {value!r}") from exc


def descriptor_for(resource_type: str | ResourceType) -> ResourceDescriptor:
    """Descritor do tipo informado."""
    return RESOURCE_DESCRIPTORS[parse_resource_type(resource_type)]
