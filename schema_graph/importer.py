"""
Schema import - Turn external schema documents into diagrams.

Accepted inputs:
- OpenAPI-like documents (type definitions under `components.schemas`,
  or any document carrying an `openapi` marker)
- JSON-Schema-like documents (type definitions under `definitions`)
- Diagram JSON itself (`entities`, `relationships`, `metadata`)

Schema documents are imported in three passes:
1. Entities: one per named definition, properties converted recursively
2. Relationships: top-level `$ref` / array `items.$ref` that name a known
   definition get a `reference_entity_id` and a "reference" relationship
3. Layout: hierarchical layout over the result

An unresolved `$ref` stays a "reference" property without
`reference_entity_id` (a dangling reference, not an error).

The document is untrusted input. Its shape is checked as it is read and the
first mismatch is reported as a SchemaParseError with a JSON-pointer path.
parse_document() wraps everything into an ImportResult and never raises.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from .layout import hierarchical_layout
from .models import (
    Diagram,
    DiagramMetadata,
    Entity,
    Position,
    Property,
    PropertyType,
    Relationship,
    RelationshipType,
)

logger = logging.getLogger(__name__)


COLORS = [
    "#3b82f6",  # blue
    "#10b981",  # emerald
    "#f59e0b",  # amber
    "#ef4444",  # red
    "#8b5cf6",  # violet
    "#06b6d4",  # cyan
    "#84cc16",  # lime
    "#f97316",  # orange
]

DEFAULT_TITLE = "Untitled Schema"
DEFAULT_VERSION = "1.0.0"
TOO_DEEP = "document is nested too deeply"


class DocumentKind(str, Enum):
    """Shapes of document accepted by parse_document."""
    DIAGRAM = "diagram"
    OPENAPI = "openapi"
    JSON_SCHEMA = "json-schema"


class SchemaParseError(ValueError):
    """The document does not have the expected structure."""

    def __init__(self, message: str, path: str = "#"):
        self.path = path
        self.reason = message
        super().__init__(f"{path}: {message}")


def _expect_mapping(value: Any, path: str) -> dict:
    if not isinstance(value, dict):
        raise SchemaParseError(f"expected an object, got {type(value).__name__}", path)
    return value


def _optional_str(value: Any, path: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise SchemaParseError(f"expected a string, got {type(value).__name__}", path)
    return value


def _string_list(value: Any, path: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SchemaParseError(f"expected an array, got {type(value).__name__}", path)
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise SchemaParseError("expected a string", f"{path}/{i}")
    return list(dict.fromkeys(value))


def extract_ref_name(ref: str) -> str:
    """Extract the definition name from '#/components/schemas/Name' style refs."""
    return ref.rsplit("/", 1)[-1]


def detect_document_kind(data: dict) -> Optional[DocumentKind]:
    """
    Classify a decoded JSON document.

    OpenAPI markers (`openapi` or `components.schemas`) win, then a
    `definitions` map, then the diagram shape (`entities`).
    """
    components = data.get("components")
    if "openapi" in data or (isinstance(components, dict) and "schemas" in components):
        return DocumentKind.OPENAPI
    if "definitions" in data and "entities" not in data:
        return DocumentKind.JSON_SCHEMA
    if "entities" in data:
        return DocumentKind.DIAGRAM
    return None


class SchemaImporter:
    """
    Converts schema documents into diagrams.

    The importer keeps no state between calls; one instance can be reused.
    """

    def import_document(self, document: Any) -> Diagram:
        """
        Import an OpenAPI-like or JSON-Schema-like document.

        Args:
            document: Decoded JSON document

        Returns:
            New Diagram with entities, relationships and layout applied

        Raises:
            SchemaParseError: At the first structural mismatch
        """
        document = _expect_mapping(document, "#")
        definitions, base_path = self._definitions(document)

        # Pass 1: entities
        entities: list[Entity] = []
        by_name: dict[str, Entity] = {}
        for index, (name, definition) in enumerate(definitions.items()):
            entity = self._parse_entity(name, definition, f"{base_path}/{name}", index)
            entities.append(entity)
            by_name[name] = entity

        # Pass 2: relationships
        relationships: list[Relationship] = []
        entities = [self._link_entity(entity, by_name, relationships) for entity in entities]

        # Pass 3: layout
        entities = hierarchical_layout(entities, relationships)

        logger.info(
            "Imported %d entities and %d relationships",
            len(entities), len(relationships)
        )
        return Diagram(
            entities=entities,
            relationships=relationships,
            metadata=self._metadata(document),
        )

    def _definitions(self, document: dict) -> tuple[dict, str]:
        """Locate the named type definitions and their JSON-pointer path."""
        if "components" in document:
            components = _expect_mapping(document["components"], "#/components")
            schemas = components.get("schemas", {})
            return _expect_mapping(schemas, "#/components/schemas"), "#/components/schemas"
        if "definitions" in document:
            return _expect_mapping(document["definitions"], "#/definitions"), "#/definitions"
        return {}, "#/components/schemas"

    def _metadata(self, document: dict) -> DiagramMetadata:
        if "info" in document:
            info = _expect_mapping(document["info"], "#/info")
            path = "#/info"
        else:
            # JSON-Schema-like documents carry these at the top level
            info = document
            path = "#"
        return DiagramMetadata(
            title=_optional_str(info.get("title"), f"{path}/title") or DEFAULT_TITLE,
            description=_optional_str(info.get("description"), f"{path}/description") or "",
            version=_optional_str(info.get("version"), f"{path}/version") or DEFAULT_VERSION,
        )

    def _parse_entity(self, name: str, definition: Any, path: str, index: int) -> Entity:
        definition = _expect_mapping(definition, path)
        required = _string_list(definition.get("required"), f"{path}/required")
        return Entity(
            name=name,
            type=_optional_str(definition.get("type"), f"{path}/type") or PropertyType.OBJECT.value,
            description=_optional_str(definition.get("description"), f"{path}/description"),
            properties=self._parse_properties(definition.get("properties"), f"{path}/properties", required),
            required=required,
            position=Position(x=0, y=0),
            color=COLORS[index % len(COLORS)],
        )

    def _parse_properties(
        self,
        properties: Any,
        path: str,
        required: list[str]
    ) -> dict[str, Property]:
        if properties is None:
            return {}
        properties = _expect_mapping(properties, path)
        return {
            name: self._parse_property(name, definition, f"{path}/{name}", name in required)
            for name, definition in properties.items()
        }

    def _parse_property(self, name: str, definition: Any, path: str, required: bool) -> Property:
        definition = _expect_mapping(definition, path)
        prop_type = _optional_str(definition.get("type"), f"{path}/type") or PropertyType.ANY.value
        ref = _optional_str(definition.get("$ref"), f"{path}/$ref")

        fields: dict[str, Any] = {
            "name": name,
            "type": prop_type,
            "description": _optional_str(definition.get("description"), f"{path}/description"),
            "required": required,
        }

        if ref:
            fields["type"] = PropertyType.REFERENCE.value
            fields["ref"] = extract_ref_name(ref)

        elif prop_type == PropertyType.ARRAY.value and "items" in definition:
            fields["items"] = self._parse_items(definition["items"], f"{path}/items")

        elif prop_type == PropertyType.OBJECT.value and "properties" in definition:
            nested_required = _string_list(definition.get("required"), f"{path}/required")
            fields["properties"] = self._parse_properties(
                definition["properties"], f"{path}/properties", nested_required
            )

        return Property(**fields)

    def _parse_items(self, items: Any, path: str) -> Property:
        items = _expect_mapping(items, path)
        ref = _optional_str(items.get("$ref"), f"{path}/$ref")
        if ref:
            return Property(name="item", type=PropertyType.REFERENCE.value, ref=extract_ref_name(ref))
        item_type = _optional_str(items.get("type"), f"{path}/type") or PropertyType.ANY.value
        return Property(name="item", type=item_type)

    def _link_entity(
        self,
        entity: Entity,
        by_name: dict[str, Entity],
        relationships: list[Relationship]
    ) -> Entity:
        """Resolve top-level cross-references of one entity, appending relationships."""
        properties: dict[str, Property] = {}
        changed = False

        for key, prop in entity.properties.items():
            if prop.ref:
                target = by_name.get(prop.ref)
                if target is not None:
                    prop = prop.model_copy(update={"reference_entity_id": target.id})
                    relationships.append(self._relationship(entity, target, prop.name))
                    changed = True
                else:
                    logger.warning("Unresolved reference %s.%s -> %s", entity.name, key, prop.ref)

            if prop.items is not None and prop.items.ref:
                target = by_name.get(prop.items.ref)
                if target is not None:
                    items = prop.items.model_copy(update={"reference_entity_id": target.id})
                    prop = prop.model_copy(update={"items": items})
                    relationships.append(self._relationship(entity, target, f"{prop.name}[]"))
                    changed = True
                else:
                    logger.warning("Unresolved reference %s.%s[] -> %s", entity.name, key, prop.items.ref)

            properties[key] = prop

        return entity.with_properties(properties) if changed else entity

    @staticmethod
    def _relationship(source: Entity, target: Entity, label: str) -> Relationship:
        return Relationship(
            source=source.id,
            target=target.id,
            type=RelationshipType.REFERENCE.value,
            label=label,
        )


def import_schema(document: Any) -> Diagram:
    """Import an OpenAPI-like or JSON-Schema-like document (raises SchemaParseError)."""
    return SchemaImporter().import_document(document)


@dataclass
class ImportResult:
    """Outcome of parse_document: either a diagram or an error message."""
    diagram: Optional[Diagram] = None
    kind: Optional[DocumentKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.diagram is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"success": self.ok}
        if self.kind is not None:
            result["kind"] = self.kind.value
        if self.diagram is not None:
            result["diagram"] = self.diagram.to_json_dict()
        if self.error is not None:
            result["error"] = self.error
        return result


def _first_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    path = "/".join(str(part) for part in first["loc"])
    return f"#/{path}: {first['msg']}"


def parse_document(source: Union[str, bytes, dict]) -> ImportResult:
    """
    Parse an untrusted document into a Diagram.

    Args:
        source: Raw JSON text/bytes, or an already decoded JSON object

    Returns:
        ImportResult with the diagram and detected kind, or with an error
        message describing why the document was rejected
    """
    if isinstance(source, (bytes, bytearray)):
        try:
            source = source.decode("utf-8")
        except UnicodeDecodeError as e:
            return ImportResult(error=f"Document is not valid UTF-8: {e}")

    if isinstance(source, str):
        try:
            data = json.loads(source)
        except json.JSONDecodeError as e:
            return ImportResult(error=f"Invalid JSON: {e}")
        except RecursionError:
            return ImportResult(error=f"Invalid JSON: {TOO_DEEP}")
    else:
        data = source

    if not isinstance(data, dict):
        return ImportResult(error="#: expected a JSON object at the top level")

    kind = detect_document_kind(data)
    if kind is None:
        return ImportResult(
            error="#: unrecognized document, expected 'entities', 'openapi', "
                  "'components.schemas' or 'definitions'"
        )

    try:
        if kind == DocumentKind.DIAGRAM:
            if not isinstance(data["entities"], list):
                raise SchemaParseError("expected an array", "#/entities")
            if not isinstance(data.get("relationships", []), list):
                raise SchemaParseError("expected an array", "#/relationships")
            diagram = Diagram.from_json_dict(data)
        else:
            diagram = import_schema(data)
    except SchemaParseError as e:
        logger.warning("Rejected %s document: %s", kind.value, e)
        return ImportResult(kind=kind, error=str(e))
    except ValidationError as e:
        logger.warning("Rejected %s document: %s", kind.value, e)
        return ImportResult(kind=kind, error=_first_validation_error(e))
    except RecursionError:
        logger.warning("Rejected %s document: %s", kind.value, TOO_DEEP)
        return ImportResult(kind=kind, error=f"#: {TOO_DEEP}")

    return ImportResult(diagram=diagram, kind=kind)
