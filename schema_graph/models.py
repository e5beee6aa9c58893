"""
Core data models for schema diagrams.

These models define the canonical schema for diagrams:
- Entities (schema nodes) with typed properties
- Relationships connecting entities (using source/target naming convention)
- Metadata carried through to exported documents

Field Naming Convention:
- Python attributes are snake_case, JSON keys are camelCase
  (`reference_entity_id` <-> `referenceEntityId`)
- Both spellings are accepted on input
- `None` fields are omitted from JSON output

Copy-on-write:
Every engine operation builds new Entity/Diagram values with `model_copy`
and fresh dicts/lists. Nothing in the engine mutates a model it was given.
"""

import re
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PropertyType(str, Enum):
    """Known property types."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    REFERENCE = "reference"
    ANY = "any"


class RelationshipType(str, Enum):
    """Semantic kinds of relationship between two entities."""
    REFERENCE = "reference"
    COMPOSITION = "composition"
    AGGREGATION = "aggregation"
    INHERITANCE = "inheritance"


DEFAULT_ENTITY_COLOR = "#3b82f6"


def generate_entity_id() -> str:
    """Generate a unique entity ID."""
    return f"entity-{uuid.uuid4().hex[:12]}"


def generate_relationship_id() -> str:
    """Generate a unique relationship ID."""
    return f"rel-{uuid.uuid4().hex[:12]}"


_WORD_SPLIT = re.compile(r"[^A-Za-z0-9]+")


def _words(name: str) -> list[str]:
    return [w for w in _WORD_SPLIT.split(name) if w]


def to_camel_case(name: str) -> str:
    """
    Derive a lower-camel-case property key from an entity name.

    "User Profile" -> "userProfile", "OrderItem" -> "orderItem",
    "order_item" -> "orderItem".
    """
    words = _words(name)
    if not words:
        return ""
    first = words[0][0].lower() + words[0][1:]
    rest = [w[0].upper() + w[1:] for w in words[1:]]
    return first + "".join(rest)


def to_title_case(name: str) -> str:
    """
    Derive an entity name from a property key.

    "billingAddress" -> "BillingAddress", "order_item" -> "OrderItem".
    """
    return "".join(w[0].upper() + w[1:] for w in _words(name))


def _name_properties(data: Any) -> Any:
    """Property names default to their map key when omitted."""
    if isinstance(data, dict) and isinstance(data.get("properties"), dict):
        props = {}
        for key, prop in data["properties"].items():
            if isinstance(prop, dict) and "name" not in prop:
                prop = {**prop, "name": key}
            props[key] = prop
        data = {**data, "properties": props}
    return data


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Property(_CamelModel):
    """
    A named, typed field of an entity (or of a nested object property).

    `reference_entity_id` is set if and only if `type == "reference"`.
    `items` is present for arrays, `properties` for nested objects.
    """
    name: str
    type: str = PropertyType.STRING.value
    description: Optional[str] = None
    required: Optional[bool] = None
    ref: Optional[str] = None  # Raw $ref name, only meaningful during import
    reference_entity_id: Optional[str] = Field(default=None, alias="referenceEntityId")
    items: Optional["Property"] = None
    properties: Optional[dict[str, "Property"]] = None

    @model_validator(mode="before")
    @classmethod
    def fill_property_names(cls, data: Any) -> Any:
        data = _name_properties(data)
        if isinstance(data, dict) and isinstance(data.get("items"), dict) and "name" not in data["items"]:
            data = {**data, "items": {**data["items"], "name": "item"}}
        return data

    @property
    def is_reference(self) -> bool:
        return self.type == PropertyType.REFERENCE.value

    def references(self, entity_id: str) -> bool:
        """True if this property or its array items point at entity_id."""
        if self.reference_entity_id == entity_id:
            return True
        return self.items is not None and self.items.reference_entity_id == entity_id


class Position(BaseModel):
    """Canvas coordinates of an entity."""
    x: float = 0
    y: float = 0


class Entity(_CamelModel):
    """A schema node: one type/collection of the modelled database."""
    id: str = Field(default_factory=generate_entity_id)
    name: str = "NewEntity"
    type: str = PropertyType.OBJECT.value
    description: Optional[str] = None
    color: Optional[str] = DEFAULT_ENTITY_COLOR
    properties: dict[str, Property] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    position: Position = Field(default_factory=Position)

    @model_validator(mode="before")
    @classmethod
    def fill_property_names(cls, data: Any) -> Any:
        """Property names default to their map key when omitted."""
        return _name_properties(data)

    def with_position(self, x: float, y: float) -> "Entity":
        """Return a copy placed at (x, y)."""
        return self.model_copy(update={"position": Position(x=x, y=y)})

    def with_properties(self, properties: dict[str, Property], **updates) -> "Entity":
        """Return a copy with a replaced property map."""
        return self.model_copy(update={"properties": properties, **updates})


class Relationship(_CamelModel):
    """A directed edge between two entities."""
    id: str = Field(default_factory=generate_relationship_id)
    source: str  # Source entity ID
    target: str  # Target entity ID
    type: str = RelationshipType.REFERENCE.value
    label: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        return self.type == RelationshipType.REFERENCE.value

    def touches(self, entity_id: str) -> bool:
        return self.source == entity_id or self.target == entity_id


class DiagramMetadata(_CamelModel):
    """Free-form information about the diagram."""
    title: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None


class Diagram(_CamelModel):
    """
    The complete diagram structure (aggregate root).
    This is what gets saved to/loaded from persisted state.
    """
    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    metadata: DiagramMetadata = Field(default_factory=DiagramMetadata)

    @classmethod
    def from_json_dict(cls, data: dict) -> "Diagram":
        """Create a Diagram from a JSON dict (missing sections default to empty)."""
        return cls.model_validate({
            "entities": data.get("entities") or [],
            "relationships": data.get("relationships") or [],
            "metadata": data.get("metadata") or {},
        })

    def entity_index(self) -> dict[str, Entity]:
        """Build an id -> Entity lookup."""
        return {e.id: e for e in self.entities}

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get an entity by ID (O(n) - use entity_index() for repeated lookups)."""
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None

    def find_entity_by_name(self, name: str) -> Optional[Entity]:
        """Case-insensitive lookup by entity name (first match wins)."""
        wanted = name.lower()
        for entity in self.entities:
            if entity.name.lower() == wanted:
                return entity
        return None

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.id == relationship_id:
                return rel
        return None

    def replace_entity(self, entity: Entity) -> "Diagram":
        """Return a copy with the entity of the same id swapped in."""
        entities = [entity if e.id == entity.id else e for e in self.entities]
        return self.model_copy(update={"entities": entities})


Property.model_rebuild()
