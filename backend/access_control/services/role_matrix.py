"""
Matriz de capacidades por role para recursos do tipo relacionamento.

Regras, na ordem de precedência:

1. ``superadmin`` acessa qualquer usuário.
2. ``owner`` acessa qualquer usuário da própria organização.
3. ``client``/``farmer`` acessam apenas o próprio registro.
4. roles de funcionário acessam apenas clientes/fazendeiros.

Qualquer outra role (inclusive desconhecida) é negada.
"""

from __future__ import annotations

from typing import Optional

from access_control.core.errors import Forbidden
from access_control.core.guards import ALLOW, Decision, Deny
from access_control.core.logging import get_logger
from access_control.core.roles import CUSTOMER_ROLES, EMPLOYEE_CLASS_ROLES, Role

logger = get_logger(__name__)


def evaluate_relationship_access(
    caller_role: Optional[Role],
    caller_id: int,
    target_id: int,
    target_role: Optional[Role],
) -> Decision:
    """Decide se ``caller`` pode acessar o usuário ``target`` da mesma organização."""
    if caller_role is Role.SUPERADMIN:
        return ALLOW

    if caller_role is Role.OWNER:
        return ALLOW

    if caller_role in CUSTOMER_ROLES:
        if caller_id == target_id:
            return ALLOW
        logger.warning(
            "relationship_access_denied",
            reason="customer_foreign_target",
            actor_id=caller_id,
            target_id=target_id,
        )
        return Deny(Forbidden())

    if caller_role in EMPLOYEE_CLASS_ROLES:
        if target_role in CUSTOMER_ROLES:
            return ALLOW
        logger.warning(
            "relationship_access_denied",
            reason="staff_target",
            actor_id=caller_id,
            target_id=target_id,
            target_role=target_role.value if target_role else None,
        )
        return Deny(Forbidden())

    logger.warning(
        "relationship_access_denied",
        reason="unrecognized_role",
        actor_id=caller_id,
        target_id=target_id,
    )
    return Deny(Forbidden())
