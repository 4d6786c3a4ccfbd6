"""Testes de ponta a ponta das dependencies de autorização em rotas FastAPI."""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI

from access_control.api.deps import (
    get_current_actor,
    require_module,
    require_module_feature,
    require_organization,
    require_role,
    require_role_and_module,
    verify_resource_access,
)
from access_control.core.errors import ConfigurationError, register_exception_handlers
from access_control.core.guards import AccessContext, Actor, OrganizationMembership
from access_control.core.roles import Role
from access_control.db.base import get_db
from access_control.db.models import (
    Module,
    Organization,
    OrganizationModule,
    OrganizationUser,
    UserModulePermission,
)
from access_control.tests.http_test_client import make_sync_asgi_client


VET = Actor(
    id=7,
    memberships=[
        OrganizationMembership(organization_id=3, role=Role.VET),
        OrganizationMembership(organization_id=5, role=Role.OWNER),
    ],
)


def _payload(access: AccessContext) -> dict:
    return {
        "organizationId": access.organization_id,
        "role": access.role.value if access.role else None,
        "source": access.organization_source,
        "modules": [row["code"] for row in access.organization_modules],
    }


def _build_app(session_factory, actor=VET) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/organizations/{organizationId}/users/{userId}")
    async def read_user(access: AccessContext = Depends(verify_resource_access("user"))):
        return _payload(access)

    @app.get("/animals/{animalId}")
    async def read_animal(access: AccessContext = Depends(verify_resource_access("animal"))):
        return _payload(access)

    @app.get("/dashboard")
    async def dashboard(access: AccessContext = Depends(require_organization())):
        return _payload(access)

    @app.post("/visits")
    async def create_visit(access: AccessContext = Depends(require_role("owner", "vet"))):
        return _payload(access)

    @app.get("/invoices")
    async def invoices(access: AccessContext = Depends(require_module("billing"))):
        return _payload(access)

    @app.get("/reports/export")
    async def export_report(
        access: AccessContext = Depends(require_module_feature("reports", "export")),
    ):
        return _payload(access)

    @app.get("/ledger")
    async def ledger(
        access: AccessContext = Depends(require_role_and_module(["owner"], ["billing"])),
    ):
        return _payload(access)

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    if actor is not None:
        app.dependency_overrides[get_current_actor] = lambda: actor
    return app


@pytest.fixture
def organizations(seed):
    seed(
        Organization(id=3, name="Clínica Norte"),
        Organization(id=5, name="Fazenda Boa Vista"),
        Organization(id=6, name="Outra"),
        OrganizationUser(organization_id=3, user_id=7, role="vet"),
        OrganizationUser(organization_id=3, user_id=42, role="client"),
        OrganizationUser(organization_id=3, user_id=9, role="office_staff"),
        OrganizationUser(organization_id=5, user_id=7, role="owner"),
        Module(id=1, code="billing", name="Faturamento"),
        Module(id=2, code="reports", name="Relatórios"),
        "INSERT INTO animals (id, organization_id) VALUES (11, 3)",
        "INSERT INTO animals (id, organization_id) VALUES (12, 6)",
    )


def test_staff_reads_client_in_same_organization(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/organizations/3/users/42")

    assert resp.status_code == 200
    assert resp.json() == {"organizationId": 3, "role": "vet", "source": "path", "modules": []}


def test_staff_cannot_read_other_staff(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/organizations/3/users/9")

    assert resp.status_code == 403
    assert resp.json() == {
        "status": "error",
        "message": "You do not have permission to access this resource",
    }


def test_non_member_organization_is_forbidden(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/organizations/6/users/42")

    assert resp.status_code == 403
    assert resp.json()["message"] == "You do not have access to this organization"


def test_owned_resource_of_other_organization_is_not_found(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory))

    assert client.get("/animals/11?organizationId=3").status_code == 200
    resp = client.get("/animals/12?organizationId=3")

    assert resp.status_code == 404
    assert resp.json()["status"] == "error"


def test_missing_actor_is_unauthenticated(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory, actor=None))

    resp = client.get("/dashboard?organizationId=3")

    assert resp.status_code == 401


def test_actor_without_organizations_requires_one(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory, actor=Actor(id=99)))

    resp = client.get("/dashboard")

    assert resp.status_code == 400
    assert resp.json() == {
        "status": "error",
        "code": "ORGANIZATION_REQUIRED",
        "message": "Organization ID is required",
    }


def test_default_membership_is_used_and_marked(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/dashboard")

    assert resp.json()["organizationId"] == 3
    assert resp.json()["source"] == "default_membership"


def test_organization_from_json_body(organizations, session_factory):
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.post("/visits", json={"organizationId": 5})

    assert resp.status_code == 200
    assert resp.json()["role"] == "owner"
    assert resp.json()["source"] == "body"


def test_role_not_in_allow_list(organizations, session_factory):
    actor = Actor(id=42, memberships=[OrganizationMembership(3, Role.CLIENT)])
    client = make_sync_asgi_client(_build_app(session_factory, actor=actor))

    resp = client.post("/visits", json={"organizationId": 3})

    assert resp.status_code == 403
    assert resp.json()["message"] == "Your role does not have permission to perform this action"


def test_active_module_passes_and_is_attached(organizations, seed, session_factory):
    seed(OrganizationModule(organization_id=3, module_id=1, active=True))
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/invoices?organizationId=3")

    assert resp.status_code == 200
    assert resp.json()["modules"] == ["billing"]


def test_inactive_module_lists_missing_modules(organizations, seed, session_factory):
    seed(OrganizationModule(organization_id=3, module_id=1, active=False))
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/invoices?organizationId=3")

    assert resp.status_code == 403
    assert resp.json() == {
        "status": "error",
        "code": "MODULE_ACCESS_DENIED",
        "message": "Organization does not have access to required modules",
        "missingModules": ["billing"],
    }


def test_feature_revoked_for_user(organizations, seed, session_factory):
    seed(
        OrganizationModule(organization_id=3, module_id=2, active=True),
        UserModulePermission(
            organization_id=3, user_id=7, module_id=2, can_access=True,
            permissions={"export": False},
        ),
    )
    client = make_sync_asgi_client(_build_app(session_factory))

    resp = client.get("/reports/export?organizationId=3")

    assert resp.status_code == 403
    assert resp.json()["code"] == "FEATURE_ACCESS_DENIED"
    assert resp.json()["feature"] == "export"


def test_role_is_checked_before_modules(organizations, seed, session_factory):
    seed(OrganizationModule(organization_id=5, module_id=1, active=True))
    client = make_sync_asgi_client(_build_app(session_factory))

    assert client.get("/ledger?organizationId=5").status_code == 200

    resp = client.get("/ledger?organizationId=3")
    assert resp.status_code == 403
    assert "code" not in resp.json()


def test_claims_on_request_state_are_accepted(organizations, session_factory):
    app = _build_app(session_factory, actor=None)

    @app.middleware("http")
    async def _inject_claims(request, call_next):
        request.state.actor = {"id": 7, "organizations": [{"id": 3, "role": "VET"}]}
        return await call_next(request)

    client = make_sync_asgi_client(app)
    resp = client.get("/organizations/3/users/42")

    assert resp.status_code == 200
    assert resp.json()["role"] == "vet"


def test_unmapped_resource_type_fails_at_route_definition():
    with pytest.raises(ConfigurationError):
        verify_resource_access("tractor")


@pytest.mark.parametrize("roles", [(), ("janitor",)])
def test_invalid_role_allow_list_fails_at_route_definition(roles):
    with pytest.raises(ConfigurationError):
        require_role(*roles)


def test_backing_store_failure_fails_closed(organizations, session_factory):
    app = _build_app(session_factory)

    async def _broken_db():
        from unittest.mock import AsyncMock
        from sqlalchemy.exc import OperationalError

        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        yield session

    app.dependency_overrides[get_db] = _broken_db
    client = make_sync_asgi_client(app)

    resp = client.get("/animals/11?organizationId=3")

    assert resp.status_code == 500
    assert resp.json() == {"status": "error", "message": "Error while verifying access"}


def test_connection_error_fails_closed(organizations, session_factory):
    app = _build_app(session_factory)

    async def _unreachable_db():
        from unittest.mock import AsyncMock

        session = AsyncMock()
        session.execute.side_effect = ConnectionRefusedError("db down")
        yield session

    app.dependency_overrides[get_db] = _unreachable_db
    client = make_sync_asgi_client(app)

    resp = client.get("/animals/11?organizationId=3")

    assert resp.status_code == 500
    assert resp.json() == {"status": "error", "message": "Error while verifying access"}


@pytest.mark.parametrize(
    "path",
    [
        "/animals/99999999999999999999?organizationId=3",
        "/organizations/3/users/99999999999999999999",
    ],
)
def test_oversized_resource_id_is_not_found(organizations, session_factory, path):
    client = make_sync_asgi_client(_build_app(session_factory))

    assert client.get(path).status_code == 404


def test_client_reads_only_own_user_record(organizations, session_factory):
    customer = Actor(id=42, memberships=[OrganizationMembership(organization_id=3, role=Role.CLIENT)])
    client = make_sync_asgi_client(_build_app(session_factory, actor=customer))

    own = client.get("/organizations/3/users/42")
    assert own.status_code == 200
    assert own.json()["role"] == "client"

    other = client.get("/organizations/3/users/9")
    assert other.status_code == 403
    assert other.json()["message"] == "You do not have permission to access this resource"
