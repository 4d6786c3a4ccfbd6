"""Testes de verificação de posse de recursos (SQLite em arquivo)."""

from __future__ import annotations

import pytest

from access_control.core.errors import ConfigurationError, Forbidden, ResourceNotFound
from access_control.core.guards import Allow, Deny
from access_control.core.roles import Role
from access_control.db.models import Organization, OrganizationUser
from access_control.services.ownership_verifier import ResourceOwnershipVerifier


@pytest.fixture
def populated(seed):
    seed(
        Organization(id=3, name="Clínica Norte"),
        Organization(id=4, name="Clínica Sul"),
        OrganizationUser(organization_id=3, user_id=7, role="vet"),
        OrganizationUser(organization_id=3, user_id=42, role="client"),
        OrganizationUser(organization_id=3, user_id=9, role="officestaff"),
        OrganizationUser(organization_id=4, user_id=50, role="client"),
        "INSERT INTO animals (id, organization_id) VALUES (11, 3)",
        "INSERT INTO animals (id, organization_id) VALUES (12, 4)",
        "INSERT INTO herds (id, organization_id) VALUES (1, 3)",
    )


def _verify(run_with_session, resource_type, resource_id, *, role=Role.VET, method="GET",
            organization_id=3, actor_id=7, verifier=None):
    verifier = verifier or ResourceOwnershipVerifier(["GET", "POST", "PUT", "PATCH"])

    async def _call(session):
        return await verifier.verify(
            session,
            resource_type,
            resource_id,
            organization_id=organization_id,
            actor_id=actor_id,
            role=role,
            method=method,
        )

    return run_with_session(_call)


def test_missing_resource_id_is_allowed(run_with_session):
    assert isinstance(_verify(run_with_session, "animal", None), Allow)
    assert isinstance(_verify(run_with_session, "animal", " "), Allow)


def test_owned_resource_in_active_organization(populated, run_with_session):
    assert _verify(run_with_session, "animal", "11").allowed
    assert _verify(run_with_session, "herd", 1).allowed


def test_owned_resource_of_other_organization_is_not_found(populated, run_with_session):
    decision = _verify(run_with_session, "animal", "12")

    assert isinstance(decision, Deny)
    assert isinstance(decision.error, ResourceNotFound)


def test_non_numeric_resource_id_is_not_found(populated, run_with_session):
    decision = _verify(run_with_session, "animal", "abc")
    assert isinstance(decision.error, ResourceNotFound)


@pytest.mark.parametrize("resource_type", ["animal", "user"])
@pytest.mark.parametrize("resource_id", ["99999999999999999999", 2**31, -(2**31) - 1])
def test_out_of_range_resource_id_is_not_found(populated, run_with_session, resource_type, resource_id):
    decision = _verify(run_with_session, resource_type, resource_id)

    assert isinstance(decision, Deny)
    assert isinstance(decision.error, ResourceNotFound)


def test_staff_reaches_client_but_not_other_staff(populated, run_with_session):
    assert _verify(run_with_session, "user", "42").allowed

    decision = _verify(run_with_session, "user", "9")
    assert isinstance(decision, Deny)
    assert isinstance(decision.error, Forbidden)


def test_user_outside_organization_is_not_found(populated, run_with_session):
    decision = _verify(run_with_session, "client", "50", role=Role.OWNER)
    assert isinstance(decision.error, ResourceNotFound)


@pytest.mark.parametrize(("method", "allowed"), [("GET", True), ("patch", True), ("DELETE", False)])
def test_superadmin_cross_organization_depends_on_method(
    populated, run_with_session, method, allowed
):
    decision = _verify(run_with_session, "user", "50", role=Role.SUPERADMIN, method=method)
    assert decision.allowed is allowed


def test_superadmin_does_not_bypass_owned_resources(populated, run_with_session):
    decision = _verify(run_with_session, "animal", "12", role=Role.SUPERADMIN)
    assert isinstance(decision.error, ResourceNotFound)


def test_unknown_resource_type_raises_configuration_error(run_with_session):
    with pytest.raises(ConfigurationError):
        _verify(run_with_session, "tractor", "1")
