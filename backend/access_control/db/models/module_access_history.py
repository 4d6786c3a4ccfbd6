"""
Registro imutável de decisões de acesso a módulos por organização.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func

from access_control.db.base import Base, JSONType


ACCESS_GRANTED = "access_granted"
ACCESS_DENIED = "access_denied"
UPDATE_PERMISSIONS = "update_permissions"


class ModuleAccessHistory(Base):
    """Auditoria de decisões do gate de módulos (somente inserção)."""

    __tablename__ = "module_access_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Integer, nullable=True, index=True)
    module_id = Column(
        Integer,
        ForeignKey("modules.id", ondelete="SET NULL"),
        nullable=True,
    )
    action_type = Column(String(40), nullable=False)
    action_details = Column(JSONType, default=dict, nullable=False)
    performed_by = Column(Integer, nullable=True)

    performed_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index(
            "ix_module_access_history_org_action_performed_at",
            "organization_id",
            "action_type",
            "performed_at",
        ),
    )
