"""
Módulos licenciáveis, assinaturas por organização e exceções por usuário.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from access_control.db.base import Base, JSONType


class Module(Base):
    """Pacote de funcionalidades licenciável (ex.: ``billing``)."""

    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Module(id={self.id}, code={self.code})>"


class OrganizationModule(Base):
    """Assinatura de um módulo por uma organização.

    O módulo é utilizável quando ``active`` é verdadeiro e
    ``subscription_end_date`` é nulo ou futuro.
    """

    __tablename__ = "organization_modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_id = Column(
        Integer,
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
    )
    active = Column(Boolean, nullable=False, default=True)
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)
    custom_settings = Column(JSONType, default=dict, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    module = relationship("Module")

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "module_id",
            name="uq_organization_module",
        ),
    )


class UserModulePermission(Base):
    """Restrição individual de um usuário sobre um módulo da organização.

    Exemplo:
    - organization_id=3;
    - user_id=7;
    - module_id=2;
    - can_access=True;
    - permissions={"export": False}
    """

    __tablename__ = "user_modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Integer, nullable=False, index=True)
    module_id = Column(
        Integer,
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
    )
    can_access = Column(Boolean, nullable=False, default=True)
    permissions = Column(JSONType, default=dict, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    module = relationship("Module")

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "user_id",
            "module_id",
            name="uq_user_module",
        ),
    )
