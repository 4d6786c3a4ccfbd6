"""Resolução da organização ativa e da role do ator na requisição."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from access_control.config import get_settings
from access_control.core.errors import NotMember, OrganizationRequired
from access_control.core.guards import Actor
from access_control.core.logging import get_logger
from access_control.core.roles import Role

logger = get_logger(__name__)

SOURCE_PATH = "path"
SOURCE_QUERY = "query"
SOURCE_BODY = "body"
SOURCE_DEFAULT = "default_membership"


@dataclass(frozen=True, slots=True)
class ResolvedMembership:
    """Organização resolvida, role do ator e a origem do identificador."""

    organization_id: int
    role: Optional[Role]
    source: str

    @property
    def is_default(self) -> bool:
        return self.source == SOURCE_DEFAULT


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _coerce_organization_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


class MembershipResolver:
    """Determina ``(organization_id, role)`` a partir da requisição."""

    def __init__(self, param_name: Optional[str] = None) -> None:
        self.param_name = param_name or get_settings().organization_param_name

    def _explicit_organization(
        self,
        path_params: Mapping[str, Any],
        query_params: Mapping[str, Any],
        body: Mapping[str, Any],
    ) -> tuple[Any, Optional[str]]:
        for source, params in (
            (SOURCE_PATH, path_params),
            (SOURCE_QUERY, query_params),
            (SOURCE_BODY, body),
        ):
            value = params.get(self.param_name) if params else None
            if _is_present(value):
                return value, source
        return None, None

    def resolve(
        self,
        actor: Actor,
        *,
        path_params: Optional[Mapping[str, Any]] = None,
        query_params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> ResolvedMembership:
        """
        Resolve a organização ativa.

        Ordem de busca: parâmetro de path, query string, corpo da requisição
        e, por fim, a primeira organização do ator.

        Raises:
            OrganizationRequired: nenhuma organização pôde ser determinada
            NotMember: o ator não pertence à organização resolvida
        """
        raw_value, source = self._explicit_organization(
            path_params or {}, query_params or {}, body if isinstance(body, Mapping) else {}
        )

        if source is None:
            if not actor.memberships:
                logger.info("organization_unresolved", actor_id=actor.id)
                raise OrganizationRequired()

            default = actor.memberships[0]
            logger.warning(
                "membership_default_fallback",
                actor_id=actor.id,
                organization_id=default.organization_id,
                source=SOURCE_DEFAULT,
            )
            return ResolvedMembership(
                organization_id=default.organization_id,
                role=default.role,
                source=SOURCE_DEFAULT,
            )

        organization_id = _coerce_organization_id(raw_value)
        membership = (
            actor.membership_for(organization_id) if organization_id is not None else None
        )
        if membership is None:
            logger.warning(
                "organization_membership_denied",
                actor_id=actor.id,
                organization_id=str(raw_value),
                source=source,
            )
            raise NotMember()

        logger.debug(
            "membership_resolved",
            actor_id=actor.id,
            organization_id=organization_id,
            role=membership.role.value if membership.role else None,
            source=source,
        )
        return ResolvedMembership(
            organization_id=organization_id,
            role=membership.role,
            source=source,
        )


def get_membership_resolver() -> MembershipResolver:
    """Dependency provider."""
    return MembershipResolver()
