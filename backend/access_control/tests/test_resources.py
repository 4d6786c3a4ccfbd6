"""Testes do mapeamento de tipos de recurso."""

from __future__ import annotations

import pytest

from access_control.core.errors import ConfigurationError
from access_control.core.resources import (
    RESOURCE_DESCRIPTORS,
    ResourceKind,
    ResourceType,
    descriptor_for,
    parse_resource_type,
)


def test_every_resource_type_has_a_descriptor():
    assert set(RESOURCE_DESCRIPTORS) == set(ResourceType)


def test_user_and_client_are_relationship_resources():
    for resource_type in ("user", "client"):
        descriptor = descriptor_for(resource_type)
        assert descriptor.kind is ResourceKind.RELATIONSHIP
        assert descriptor.collection == "organization_user"
        assert descriptor.id_column == "user_id"


def test_owned_resources_point_to_their_tables():
    assert descriptor_for(ResourceType.ANIMAL).collection == "animals"
    assert descriptor_for("Visit").collection == "visits"
    assert descriptor_for("herd").kind is ResourceKind.OWNED


def test_unknown_resource_type_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_resource_type("tractor")


def test_descriptor_mapping_is_read_only():
    with pytest.raises(TypeError):
        RESOURCE_DESCRIPTORS[ResourceType.BULL] = descriptor_for("animal")  # type: ignore[index]


def test_ownership_query_is_scoped_by_id_and_organization():
    query = descriptor_for("animal").ownership_query(11, 3)
    compiled = str(query.compile(compile_kwargs={"literal_binds": True}))

    assert "FROM animals" in compiled
    assert "animals.id = 11" in compiled
    assert "animals.organization_id = 3" in compiled
