"""Tests for schema import.

Tests cover:
- OpenAPI entity, property and relationship passes
- Dangling references
- JSON-Schema-like documents and diagram JSON
- Malformed input reported through ImportResult
"""

import json

import pytest

from schema_graph.importer import (
    COLORS,
    DocumentKind,
    SchemaParseError,
    detect_document_kind,
    extract_ref_name,
    import_schema,
    parse_document,
)


# =============================================================================
# OpenAPI import
# =============================================================================

class TestOpenApiImport:
    """Tests for importing OpenAPI-like documents."""

    def test_one_entity_per_schema(self, openapi_document):
        diagram = import_schema(openapi_document)
        assert [e.name for e in diagram.entities] == ["User", "Order", "Address"]

    def test_entity_fields(self, openapi_document):
        diagram = import_schema(openapi_document)
        user = diagram.find_entity_by_name("User")
        assert user.type == "object"
        assert user.description == "A customer"
        assert user.required == ["id", "email"]
        assert user.color == COLORS[0]
        assert diagram.find_entity_by_name("Order").color == COLORS[1]

    def test_required_flags_follow_required_list(self, openapi_document):
        user = import_schema(openapi_document).find_entity_by_name("User")
        assert user.properties["id"].required is True
        assert user.properties["age"].required is False

    def test_unknown_primitive_type_kept(self, openapi_document):
        user = import_schema(openapi_document).find_entity_by_name("User")
        assert user.properties["age"].type == "integer"

    def test_direct_ref_resolved(self, openapi_document):
        diagram = import_schema(openapi_document)
        user = diagram.find_entity_by_name("User")
        address = diagram.find_entity_by_name("Address")

        prop = user.properties["address"]
        assert prop.type == "reference"
        assert prop.ref == "Address"
        assert prop.reference_entity_id == address.id

        rel = next(r for r in diagram.relationships if r.target == address.id)
        assert rel.source == user.id
        assert rel.type == "reference"
        assert rel.label == "address"

    def test_array_items_ref_resolved(self, openapi_document):
        diagram = import_schema(openapi_document)
        user = diagram.find_entity_by_name("User")
        order = diagram.find_entity_by_name("Order")

        items = user.properties["orders"].items
        assert items.type == "reference"
        assert items.reference_entity_id == order.id
        assert any(r.label == "orders[]" and r.target == order.id for r in diagram.relationships)

    def test_dangling_ref_left_unresolved(self, openapi_document):
        diagram = import_schema(openapi_document)
        coupon = diagram.find_entity_by_name("Order").properties["coupon"]
        assert coupon.type == "reference"
        assert coupon.ref == "Coupon"
        assert coupon.reference_entity_id is None
        assert len(diagram.relationships) == 2

    def test_nested_object_properties(self, openapi_document):
        address = import_schema(openapi_document).find_entity_by_name("Address")
        geo = address.properties["geo"]
        assert geo.type == "object"
        assert set(geo.properties) == {"lat", "lng"}
        assert geo.properties["lat"].required is True
        assert geo.properties["lng"].required is False

    def test_metadata_from_info(self, openapi_document):
        metadata = import_schema(openapi_document).metadata
        assert metadata.title == "Shop API"
        assert metadata.version == "2.1.0"

    def test_metadata_defaults(self):
        metadata = import_schema({"components": {"schemas": {}}}).metadata
        assert metadata.title == "Untitled Schema"
        assert metadata.description == ""
        assert metadata.version == "1.0.0"

    def test_hierarchical_layout_applied(self, openapi_document):
        """Test that User (root) sits left of Order and Address (depth 1)."""
        diagram = import_schema(openapi_document)
        user = diagram.find_entity_by_name("User")
        order = diagram.find_entity_by_name("Order")
        address = diagram.find_entity_by_name("Address")
        assert user.position.x < order.position.x
        assert order.position.x == address.position.x

    def test_missing_type_defaults_to_any(self):
        diagram = import_schema({"components": {"schemas": {"A": {"properties": {"blob": {}}}}}})
        assert diagram.entities[0].properties["blob"].type == "any"

    def test_extract_ref_name(self):
        assert extract_ref_name("#/components/schemas/User") == "User"
        assert extract_ref_name("User") == "User"


# =============================================================================
# Structural errors
# =============================================================================

class TestSchemaParseErrors:
    """Tests for SchemaParseError paths."""

    def test_non_object_schema(self):
        with pytest.raises(SchemaParseError) as exc_info:
            import_schema({"components": {"schemas": {"User": []}}})
        assert exc_info.value.path == "#/components/schemas/User"

    def test_bad_required_entry(self):
        with pytest.raises(SchemaParseError) as exc_info:
            import_schema({"components": {"schemas": {"User": {"required": ["id", 3]}}}})
        assert exc_info.value.path == "#/components/schemas/User/required/1"

    def test_bad_property_type(self):
        with pytest.raises(SchemaParseError) as exc_info:
            import_schema({"components": {"schemas": {"User": {"properties": {"id": {"type": 5}}}}}})
        assert str(exc_info.value).startswith("#/components/schemas/User/properties/id/type:")


# =============================================================================
# parse_document
# =============================================================================

class TestParseDocument:
    """Tests for the never-raising parse_document entry point."""

    def test_openapi_text(self, openapi_document):
        result = parse_document(json.dumps(openapi_document))
        assert result.ok
        assert result.kind == DocumentKind.OPENAPI
        assert len(result.diagram.entities) == 3

    def test_bytes_input(self, openapi_document):
        result = parse_document(json.dumps(openapi_document).encode("utf-8"))
        assert result.ok

    def test_json_schema_definitions(self):
        document = {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "title": "Library",
            "definitions": {
                "Book": {"type": "object", "properties": {"author": {"$ref": "#/definitions/Author"}}},
                "Author": {"type": "object", "properties": {"name": {"type": "string"}}},
            },
        }
        result = parse_document(document)
        assert result.kind == DocumentKind.JSON_SCHEMA
        assert result.diagram.metadata.title == "Library"
        book = result.diagram.find_entity_by_name("Book")
        assert book.properties["author"].reference_entity_id == result.diagram.find_entity_by_name("Author").id

    def test_diagram_json(self, shop_diagram):
        result = parse_document(shop_diagram.to_json_dict())
        assert result.kind == DocumentKind.DIAGRAM
        assert result.diagram == shop_diagram

    def test_invalid_json(self):
        result = parse_document("{not json")
        assert not result.ok
        assert result.error.startswith("Invalid JSON")

    def test_invalid_utf8(self):
        result = parse_document(b"\xff\xfe{")
        assert not result.ok
        assert "UTF-8" in result.error

    def test_top_level_array(self):
        result = parse_document("[]")
        assert not result.ok
        assert result.error.startswith("#:")

    def test_unrecognized_document(self):
        result = parse_document({"foo": 1})
        assert result.kind is None
        assert "unrecognized" in result.error

    def test_diagram_entities_not_list(self):
        result = parse_document({"entities": {}})
        assert result.kind == DocumentKind.DIAGRAM
        assert result.error == "#/entities: expected an array"

    def test_diagram_validation_error_has_path(self):
        result = parse_document({"entities": [{"name": "A", "properties": {"x": {"type": 1}}}]})
        assert not result.ok
        assert result.error.startswith("#/entities/0/properties/x")

    def test_schema_error_reported(self):
        result = parse_document({"openapi": "3.0.0", "components": {"schemas": {"User": "nope"}}})
        assert not result.ok
        assert result.kind == DocumentKind.OPENAPI
        assert result.error.startswith("#/components/schemas/User:")

    def test_deeply_nested_text_rejected(self):
        depth = 50_000
        text = (
            '{"openapi": "3.0.0", "components": {"schemas": {"A": '
            + '{"type": "object", "properties": {"p": ' * depth
            + "{}"
            + "}}" * depth
            + "}}}"
        )
        result = parse_document(text)
        assert not result.ok
        assert "nested too deeply" in result.error

    def test_deeply_nested_schema_rejected(self):
        """Test that a decoded document too deep to walk is reported, not raised."""
        node = {"type": "string"}
        for _ in range(5_000):
            node = {"type": "object", "properties": {"p": node}}
        result = parse_document({"openapi": "3.0.0", "components": {"schemas": {"A": node}}})
        assert not result.ok
        assert result.kind == DocumentKind.OPENAPI
        assert result.error == "#: document is nested too deeply"

    def test_to_dict(self, openapi_document):
        data = parse_document(openapi_document).to_dict()
        assert data["success"] is True
        assert data["kind"] == "openapi"
        assert "diagram" in data

    @pytest.mark.parametrize("document,kind", [
        ({"openapi": "3.0.0"}, DocumentKind.OPENAPI),
        ({"components": {"schemas": {}}}, DocumentKind.OPENAPI),
        ({"definitions": {}}, DocumentKind.JSON_SCHEMA),
        ({"entities": []}, DocumentKind.DIAGRAM),
        ({}, None),
    ])
    def test_detect_document_kind(self, document, kind):
        assert detect_document_kind(document) == kind
