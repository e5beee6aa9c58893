"""Shared fixtures for schema_graph tests."""

import pytest

from schema_graph.models import (
    Diagram,
    DiagramMetadata,
    Entity,
    Position,
    Property,
    Relationship,
)
from schema_graph.storage import DiagramStorage, MemoryKeyValueStore


@pytest.fixture
def shop_diagram():
    """
    Three entities:
    - User.address -> Address (relationship rel-address)
    - Order.customer -> User (relationship rel-customer)
    - Address has only plain properties
    """
    user = Entity(
        id="user",
        name="User",
        properties={
            "id": Property(name="id", type="string"),
            "address": Property(name="address", type="reference", reference_entity_id="address"),
        },
        required=["id"],
        position=Position(x=100, y=100),
    )
    order = Entity(
        id="order",
        name="Order",
        properties={
            "total": Property(name="total", type="number"),
            "customer": Property(name="customer", type="reference", reference_entity_id="user"),
        },
        position=Position(x=500, y=100),
    )
    address = Entity(
        id="address",
        name="Address",
        properties={"street": Property(name="street", type="string")},
        position=Position(x=100, y=500),
    )
    return Diagram(
        entities=[user, order, address],
        relationships=[
            Relationship(id="rel-address", source="user", target="address", label="address"),
            Relationship(id="rel-customer", source="order", target="user", label="customer"),
        ],
        metadata=DiagramMetadata(title="Shop", description="Shop schema", version="1.0.0"),
    )


@pytest.fixture
def openapi_document():
    """OpenAPI document with a direct $ref, an array $ref and a dangling $ref."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "Shop API", "description": "Shop", "version": "2.1.0"},
        "components": {
            "schemas": {
                "User": {
                    "type": "object",
                    "description": "A customer",
                    "required": ["id", "email"],
                    "properties": {
                        "id": {"type": "string"},
                        "email": {"type": "string", "description": "Login"},
                        "age": {"type": "integer"},
                        "address": {"$ref": "#/components/schemas/Address"},
                        "orders": {
                            "type": "array",
                            "items": {"$ref": "#/components/schemas/Order"},
                        },
                    },
                },
                "Order": {
                    "type": "object",
                    "properties": {
                        "total": {"type": "number"},
                        "coupon": {"$ref": "#/components/schemas/Coupon"},
                    },
                },
                "Address": {
                    "type": "object",
                    "properties": {
                        "street": {"type": "string"},
                        "geo": {
                            "type": "object",
                            "required": ["lat"],
                            "properties": {
                                "lat": {"type": "number"},
                                "lng": {"type": "number"},
                            },
                        },
                    },
                },
            }
        },
    }


@pytest.fixture
def memory_storage():
    """DiagramStorage backed by an in-memory store."""
    return DiagramStorage(store=MemoryKeyValueStore())


def _assert_references_consistent(diagram: Diagram):
    index = diagram.entity_index()
    pairs = {(r.source, r.target) for r in diagram.relationships if r.is_reference}

    for rel in diagram.relationships:
        assert rel.source in index, f"{rel.id} has unknown source"
        assert rel.target in index, f"{rel.id} has unknown target"

    for entity in diagram.entities:
        for key, prop in entity.properties.items():
            checked = [(key, prop)]
            if prop.items is not None:
                checked.append((f"{key}[]", prop.items))
            for label, p in checked:
                if p.reference_entity_id is not None:
                    assert p.type == "reference", f"{entity.name}.{label} carries an id"
                if p.type == "reference" and p.reference_entity_id is not None:
                    assert p.reference_entity_id in index, f"{entity.name}.{label} is dangling"
                    assert (entity.id, p.reference_entity_id) in pairs, f"{entity.name}.{label} has no edge"

    for source_id, target_id in pairs:
        source, target = index[source_id], index[target_id]
        assert (
            any(p.references(target_id) for p in source.properties.values())
            or any(p.references(source_id) for p in target.properties.values())
        ), f"edge {source.name} -> {target.name} has no property"


@pytest.fixture
def assert_consistent():
    """Check that reference properties and reference relationships agree."""
    return _assert_references_consistent
