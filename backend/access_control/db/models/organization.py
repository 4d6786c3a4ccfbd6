"""
Modelos SQLAlchemy para Organization e vínculo usuário-organização.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from access_control.db.base import Base


class Organization(Base):
    """
    Representa uma organização (tenant) no sistema.

    Atributos:
        id: Identificador numérico
        name: Nome da organização
        created_at: Data de criação
    """

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    memberships = relationship("OrganizationUser", back_populates="organization")

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name})>"


class OrganizationUser(Base):
    """
    Vínculo de um usuário com uma organização e sua role nela.

    Um usuário possui no máximo uma role por organização.
    """

    __tablename__ = "organization_user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Integer, nullable=False, index=True)
    role = Column(String(50), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrganizationUser(organization_id={self.organization_id}, "
            f"user_id={self.user_id}, role={self.role})>"
        )
