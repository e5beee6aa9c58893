"""
Schema export - Serialize diagrams into external schema documents.

Formats:
- internal: the Diagram JSON itself
- openapi: OpenAPI 3 document, types under `components.schemas`,
  cross-references as `$ref: #/components/schemas/<Name>`
- nosql: document-database schema, one collection per entity, cross-references
  as `{"type": "reference", "reference": <Name>}` field descriptors
- json-schema: draft-07 document, types under `definitions`,
  cross-references as `$ref: #/definitions/<Name>`

A reference whose target entity no longer exists is exported as a plain
string with a note appended to its description; export never fails on
dangling references.
"""

import json
from enum import Enum
from typing import Optional

from .models import Diagram, Entity, Property, PropertyType

MISSING_REFERENCE_NOTE = " (Reference entity not found)"

OPENAPI_VERSION = "3.0.0"
JSON_SCHEMA_DIALECT = "http://json-schema.org/draft-07/schema#"

DEFAULT_TITLE = "Generated Schema"
DEFAULT_DATABASE_NAME = "Generated Database"
DEFAULT_DESCRIPTION = "Schema generated from NoSQL diagram"
DEFAULT_DATABASE_DESCRIPTION = "Database schema generated from NoSQL diagram"
DEFAULT_VERSION = "1.0.0"


class ExportFormat(str, Enum):
    """Supported export formats."""
    INTERNAL = "internal"
    OPENAPI = "openapi"
    NOSQL = "nosql"
    JSON_SCHEMA = "json-schema"


EXPORT_FILENAMES = {
    ExportFormat.INTERNAL: "diagram-schema.json",
    ExportFormat.OPENAPI: "schema-openapi.json",
    ExportFormat.NOSQL: "schema-nosql.json",
    ExportFormat.JSON_SCHEMA: "schema-json-schema.json",
}

REFERENCE = PropertyType.REFERENCE.value
ARRAY = PropertyType.ARRAY.value
OBJECT = PropertyType.OBJECT.value
STRING = PropertyType.STRING.value


def _required_names(entity: Entity) -> list[str]:
    """Entity.required first, then properties flagged required; existing names only."""
    names = [name for name in entity.required if name in entity.properties]
    names += [name for name, prop in entity.properties.items() if prop.required]
    return list(dict.fromkeys(names))


def _with_description(result: dict, description: Optional[str]) -> dict:
    if description is not None:
        result["description"] = description
    return result


class _RefSchemaWriter:
    """Shared property conversion for the two `$ref`-based formats."""

    def __init__(self, diagram: Diagram, ref_prefix: str):
        self.index = diagram.entity_index()
        self.ref_prefix = ref_prefix

    def _ref(self, entity_id: Optional[str]) -> Optional[str]:
        entity = self.index.get(entity_id) if entity_id else None
        return f"{self.ref_prefix}{entity.name}" if entity else None

    def entity(self, entity: Entity) -> dict:
        schema = _with_description({"type": "object"}, entity.description)
        if entity.properties:
            schema["properties"] = {
                name: self.property(prop) for name, prop in entity.properties.items()
            }
            schema["required"] = _required_names(entity)
        return schema

    def property(self, prop: Property) -> dict:
        if prop.type == REFERENCE:
            ref = self._ref(prop.reference_entity_id)
            if ref:
                return _with_description({"$ref": ref}, prop.description)
            return {"type": STRING, "description": (prop.description or "") + MISSING_REFERENCE_NOTE}

        result = _with_description({}, prop.description)
        if prop.type == ARRAY:
            result["type"] = ARRAY
            result["items"] = self.items(prop.items)
        elif prop.type == OBJECT:
            result["type"] = OBJECT
            if prop.properties:
                result["properties"] = {
                    name: self.property(nested) for name, nested in prop.properties.items()
                }
                nested_required = [name for name, nested in prop.properties.items() if nested.required]
                if nested_required:
                    result["required"] = nested_required
        else:
            result["type"] = prop.type
        return result

    def items(self, items: Optional[Property]) -> dict:
        if items is None:
            return {"type": STRING}
        if items.type == REFERENCE:
            ref = self._ref(items.reference_entity_id)
            return {"$ref": ref} if ref else {"type": STRING}
        return {"type": items.type}


def export_openapi(diagram: Diagram) -> dict:
    """Export a diagram as an OpenAPI 3 document."""
    writer = _RefSchemaWriter(diagram, "#/components/schemas/")
    metadata = diagram.metadata
    return {
        "openapi": OPENAPI_VERSION,
        "info": {
            "title": metadata.title or DEFAULT_TITLE,
            "description": metadata.description or DEFAULT_DESCRIPTION,
            "version": metadata.version or DEFAULT_VERSION,
        },
        "components": {
            "schemas": {entity.name: writer.entity(entity) for entity in diagram.entities},
        },
    }


def export_json_schema(diagram: Diagram) -> dict:
    """Export a diagram as a draft-07 JSON Schema with a flat definitions map."""
    writer = _RefSchemaWriter(diagram, "#/definitions/")
    metadata = diagram.metadata
    return {
        "$schema": JSON_SCHEMA_DIALECT,
        "title": metadata.title or DEFAULT_TITLE,
        "description": metadata.description or DEFAULT_DESCRIPTION,
        "version": metadata.version or DEFAULT_VERSION,
        "definitions": {entity.name: writer.entity(entity) for entity in diagram.entities},
    }


def _nosql_field(prop: Property, index: dict[str, Entity], required: bool) -> dict:
    field = _with_description({"type": prop.type}, prop.description)
    field["required"] = required

    if prop.type == REFERENCE:
        target = index.get(prop.reference_entity_id) if prop.reference_entity_id else None
        if target is not None:
            field["reference"] = target.name
        else:
            field["type"] = STRING
            field["description"] = (prop.description or "") + MISSING_REFERENCE_NOTE

    elif prop.type == ARRAY and prop.items is not None:
        items = prop.items
        target = index.get(items.reference_entity_id) if items.reference_entity_id else None
        if items.type == REFERENCE and target is not None:
            field["items"] = {"type": REFERENCE, "reference": target.name}
        elif items.type == REFERENCE:
            field["items"] = {"type": STRING}
        else:
            field["items"] = {"type": items.type}

    elif prop.type == OBJECT and prop.properties:
        field["properties"] = {
            name: _nosql_field(nested, index, bool(nested.required))
            for name, nested in prop.properties.items()
        }

    return field


def export_nosql(diagram: Diagram) -> dict:
    """Export a diagram as a document-database schema (one collection per entity)."""
    index = diagram.entity_index()
    collections = {}
    for entity in diagram.entities:
        required = set(_required_names(entity))
        collections[entity.name] = _with_description({"collection": entity.name}, entity.description)
        collections[entity.name]["fields"] = {
            name: _nosql_field(prop, index, name in required)
            for name, prop in entity.properties.items()
        }

    metadata = diagram.metadata
    return {
        "database": {
            "name": metadata.title or DEFAULT_DATABASE_NAME,
            "description": metadata.description or DEFAULT_DATABASE_DESCRIPTION,
            "version": metadata.version or DEFAULT_VERSION,
            "collections": collections,
        }
    }


def export_diagram(diagram: Diagram, fmt: str = ExportFormat.INTERNAL.value) -> dict:
    """
    Export a diagram in the named format.

    Args:
        diagram: Diagram to export
        fmt: One of "internal", "openapi", "nosql", "json-schema"

    Returns:
        JSON-serializable document

    Raises:
        ValueError: For unknown format names
    """
    fmt = ExportFormat(fmt)
    if fmt == ExportFormat.OPENAPI:
        return export_openapi(diagram)
    elif fmt == ExportFormat.NOSQL:
        return export_nosql(diagram)
    elif fmt == ExportFormat.JSON_SCHEMA:
        return export_json_schema(diagram)
    return diagram.to_json_dict()


def render_export(diagram: Diagram, fmt: str = ExportFormat.INTERNAL.value) -> str:
    """Export a diagram as indented JSON text."""
    return json.dumps(export_diagram(diagram, fmt), indent=2)


def export_filename(fmt: str) -> str:
    """Conventional file name for an export format."""
    return EXPORT_FILENAMES[ExportFormat(fmt)]
