"""Testes da administração de módulos por organização e por usuário."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from access_control.core.errors import ResourceNotFound
from access_control.db.models import (
    Module,
    ModuleAccessHistory,
    Organization,
    OrganizationModule,
    OrganizationUser,
)
from access_control.services.audit_service import AccessAuditService
from access_control.services.module_service import ModuleService


@pytest.fixture
def service() -> ModuleService:
    return ModuleService(AccessAuditService())


@pytest.fixture
def catalog(seed):
    seed(
        Organization(id=3, name="Clínica Norte"),
        OrganizationUser(organization_id=3, user_id=5, role="owner"),
        OrganizationUser(organization_id=3, user_id=7, role="vet"),
        Module(id=1, code="billing", name="Faturamento"),
        Module(id=2, code="reports", name="Relatórios"),
        Module(id=3, code="legacy", name="Legado", is_active=False),
    )


def test_list_modules_returns_catalog(catalog, service, run_with_session):
    modules = run_with_session(service.list_modules)
    assert [m.code for m in modules] == ["billing", "legacy", "reports"]


def test_update_organization_modules_creates_and_updates(catalog, service, run_with_session):
    end = datetime(2027, 1, 1, tzinfo=timezone.utc)

    async def _first(session):
        return await service.update_organization_modules(
            session,
            3,
            [
                {"id": 1, "active": True, "subscription_end_date": end},
                {"id": 2, "active": False},
            ],
        )

    rows = {row["code"]: row for row in run_with_session(_first)}
    assert rows["billing"]["active"] is True
    assert rows["reports"]["active"] is None  # inativo sem vínculo não é criado

    async def _second(session):
        return await service.update_organization_modules(session, 3, [{"id": 1, "active": False}])

    rows = {row["code"]: row for row in run_with_session(_second)}
    assert rows["billing"]["active"] is False
    assert rows["billing"]["subscription_end_date"] is None


def test_update_organization_modules_rejects_unknown_module(catalog, service, run_with_session):
    async def _call(session):
        return await service.update_organization_modules(session, 3, [{"id": 1}, {"id": 99}])

    with pytest.raises(ResourceNotFound):
        run_with_session(_call)

    async def _links(session):
        return (await session.execute(select(OrganizationModule))).scalars().all()

    assert run_with_session(_links) == []


def test_update_user_module_permission_records_history(catalog, seed, service, run_with_session):
    seed(OrganizationModule(organization_id=3, module_id=2, active=True))

    async def _update(session):
        return await service.update_user_module_permission(
            session,
            3,
            7,
            2,
            can_access=True,
            permissions={"export": False},
            performed_by=5,
        )

    row = run_with_session(_update)
    assert row.can_access is True
    assert row.permissions == {"export": False}

    async def _permissions(session):
        return await service.get_user_module_permissions(session, 3, 7)

    permissions = run_with_session(_permissions)
    assert permissions == [
        {
            "id": 2,
            "code": "reports",
            "name": "Relatórios",
            "can_access": True,
            "permissions": {"export": False},
        }
    ]

    async def _history(session):
        return (await session.execute(select(ModuleAccessHistory))).scalars().all()

    history = run_with_session(_history)
    assert [(h.action_type, h.user_id, h.performed_by) for h in history] == [
        ("update_permissions", 7, 5)
    ]


def test_user_permission_requires_member_and_active_module(catalog, service, run_with_session):
    async def _outsider(session):
        return await service.update_user_module_permission(
            session, 3, 99, 1, can_access=False, performed_by=5
        )

    async def _unsubscribed(session):
        return await service.update_user_module_permission(
            session, 3, 7, 1, can_access=False, performed_by=5
        )

    with pytest.raises(ResourceNotFound):
        run_with_session(_outsider)
    with pytest.raises(ResourceNotFound, match="does not have access"):
        run_with_session(_unsubscribed)


def test_activate_trial_keeps_running_subscriptions(catalog, seed, service, run_with_session):
    far_future = datetime.now(timezone.utc) + timedelta(days=200)
    seed(
        OrganizationModule(
            organization_id=3, module_id=1, active=True, subscription_end_date=far_future
        ),
    )

    trial_end = run_with_session(lambda session: service.activate_trial(session, 3))

    assert timedelta(days=13) < trial_end - datetime.now(timezone.utc) <= timedelta(days=14)

    async def _links(session):
        result = await session.execute(
            select(Module.code, OrganizationModule.active, OrganizationModule.subscription_end_date)
            .join(Module, Module.id == OrganizationModule.module_id)
        )
        return {row.code: row for row in result.all()}

    links = run_with_session(_links)
    assert set(links) == {"billing", "reports"}
    assert links["billing"].subscription_end_date.replace(tzinfo=timezone.utc) > trial_end
    assert links["reports"].active is True
