"""Create organization, membership and module entitlement tables.

Revisão:
  - `organizations` e `organization_user` (role por organização, única por par)
  - catálogo `modules` com código único
  - `organization_modules` (assinatura com janela de vigência)
  - `user_modules` (restrição individual, única por org/usuário/módulo)
  - `module_access_history` (somente inserção)
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "5b1e7c2a9d40"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_organizations"),
    )

    op.create_table(
        "organization_user",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_organization_user"),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_user"),
    )
    op.create_index(
        op.f("ix_organization_user_organization_id"),
        "organization_user",
        ["organization_id"],
    )
    op.create_index(op.f("ix_organization_user_user_id"), "organization_user", ["user_id"])

    op.create_table(
        "modules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_modules"),
    )
    op.create_index(op.f("ix_modules_code"), "modules", ["code"], unique=True)

    op.create_table(
        "organization_modules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("subscription_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "custom_settings",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_organization_modules"),
        sa.UniqueConstraint("organization_id", "module_id", name="uq_organization_module"),
    )
    op.create_index(
        op.f("ix_organization_modules_organization_id"),
        "organization_modules",
        ["organization_id"],
    )

    op.create_table(
        "user_modules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("can_access", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column(
            "permissions",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_user_modules"),
        sa.UniqueConstraint(
            "organization_id", "user_id", "module_id", name="uq_user_module"
        ),
    )
    op.create_index(
        op.f("ix_user_modules_organization_id"), "user_modules", ["organization_id"]
    )
    op.create_index(op.f("ix_user_modules_user_id"), "user_modules", ["user_id"])

    op.create_table(
        "module_access_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("module_id", sa.Integer(), nullable=True),
        sa.Column("action_type", sa.String(length=40), nullable=False),
        sa.Column(
            "action_details",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("performed_by", sa.Integer(), nullable=True),
        sa.Column(
            "performed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["organization_id"], ["organizations.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_module_access_history"),
    )
    op.create_index(
        op.f("ix_module_access_history_organization_id"),
        "module_access_history",
        ["organization_id"],
    )
    op.create_index(
        op.f("ix_module_access_history_user_id"), "module_access_history", ["user_id"]
    )
    op.create_index(
        op.f("ix_module_access_history_performed_at"),
        "module_access_history",
        ["performed_at"],
    )
    op.create_index(
        "ix_module_access_history_org_action_performed_at",
        "module_access_history",
        ["organization_id", "action_type", "performed_at"],
    )


def downgrade() -> None:
    op.drop_table("module_access_history")
    op.drop_table("user_modules")
    op.drop_table("organization_modules")
    op.drop_index(op.f("ix_modules_code"), table_name="modules")
    op.drop_table("modules")
    op.drop_table("organization_user")
    op.drop_table("organizations")
