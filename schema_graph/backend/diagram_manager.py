"""
Diagram Manager - Session state for the schema diagram being edited.

This module implements:
- Single diagram state management (one diagram open at a time)
- O(1) entity lookups via an index rebuilt on every change
- Routing of caller edits through the reference manager so reference
  properties and relationships stay consistent
- Import/export, layout and validation delegated to the schema_graph package
- Load/save through DiagramStorage

The engine functions are pure; the manager only swaps its current Diagram
for the value they return.
"""

import logging
from typing import Any, Optional

from schema_graph.exporter import export_diagram
from schema_graph.importer import ImportResult, parse_document
from schema_graph.layout import apply_layout
from schema_graph.models import (
    Diagram,
    DiagramMetadata,
    Entity,
    Position,
    Property,
    PropertyType,
)
from schema_graph import references
from schema_graph.storage import DiagramStorage
from schema_graph.validation import ValidationIssue, validate_diagram

logger = logging.getLogger(__name__)

REFERENCE = PropertyType.REFERENCE.value


class DiagramManager:
    """
    Manages a single diagram's state and persistence.

    Entity and property edits go through schema_graph.references, so that
    retyping, renaming and deleting keep references intact.
    """

    def __init__(self, storage: Optional[DiagramStorage] = None):
        self._storage = storage if storage is not None else DiagramStorage()
        self._diagram = Diagram()
        self._dirty = False  # True if unsaved changes exist
        self._entity_index: dict[str, Entity] = {}

    # --- State ---

    def _set_diagram(self, diagram: Diagram, dirty: bool = True):
        """Adopt a new diagram value and rebuild the index."""
        self._diagram = diagram
        self._entity_index = diagram.entity_index()
        self._dirty = dirty

    @property
    def diagram(self) -> Diagram:
        """Get the current diagram."""
        return self._diagram

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    @property
    def storage(self) -> DiagramStorage:
        return self._storage

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "diagram": self._diagram.to_json_dict(),
            "is_dirty": self._dirty,
        }

    # --- Document Operations ---

    def new_diagram(self, title: str = "New Diagram") -> Diagram:
        """Start a new empty diagram."""
        self._set_diagram(
            Diagram(metadata=DiagramMetadata(title=title, description="", version="1.0.0")),
            dirty=False,
        )
        return self._diagram

    def replace_diagram(self, data: dict) -> Diagram:
        """Replace the current diagram with a Diagram JSON dict."""
        self._set_diagram(Diagram.from_json_dict(data))
        return self._diagram

    def import_document(self, source: Any) -> ImportResult:
        """
        Import a schema document or diagram JSON.

        The current diagram is only replaced when the import succeeds.
        """
        result = parse_document(source)
        if result.ok:
            self._set_diagram(result.diagram)
        return result

    def export(self, fmt: str = "internal") -> dict:
        """Export the current diagram (raises ValueError for unknown formats)."""
        return export_diagram(self._diagram, fmt)

    def load(self) -> Optional[Diagram]:
        """Load the persisted diagram, if any."""
        diagram = self._storage.load()
        if diagram is None:
            return None
        self._set_diagram(diagram, dirty=False)
        return self._diagram

    def save(self) -> bool:
        """Persist the current diagram."""
        saved = self._storage.save(self._diagram)
        if saved:
            self._dirty = False
        return saved

    def clear(self) -> Diagram:
        """Drop the persisted diagram and start over."""
        self._storage.clear()
        return self.new_diagram()

    # --- Entity Operations ---

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get an entity by ID (O(1) lookup)."""
        return self._entity_index.get(entity_id)

    def add_entity(self, **kwargs) -> Entity:
        """Add a new entity to the diagram."""
        entity = Entity(**kwargs)
        self._set_diagram(self._diagram.model_copy(
            update={"entities": [*self._diagram.entities, entity]}
        ))
        return entity

    def update_entity(
        self,
        entity_id: str,
        name: Optional[str] = None,
        type: Optional[str] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None
    ) -> Optional[Entity]:
        """
        Update entity fields.

        A name change is propagated to referencing properties via
        references.rename_entity.
        """
        entity = self._entity_index.get(entity_id)
        if entity is None:
            return None

        diagram = self._diagram
        if name is not None and name != entity.name:
            diagram = references.rename_entity(entity_id, entity.name, name, diagram)
            entity = diagram.get_entity(entity_id)

        updates: dict[str, Any] = {}
        if type is not None:
            updates["type"] = type
        if description is not None:
            updates["description"] = description
        if color is not None:
            updates["color"] = color
        if x is not None or y is not None:
            updates["position"] = Position(
                x=x if x is not None else entity.position.x,
                y=y if y is not None else entity.position.y,
            )
        if updates:
            diagram = diagram.replace_entity(entity.model_copy(update=updates))

        self._set_diagram(diagram)
        return self._entity_index[entity_id]

    def delete_entity(self, entity_id: str) -> bool:
        """Delete an entity, cleaning up references to it."""
        if entity_id not in self._entity_index:
            return False
        self._set_diagram(references.delete_entity(entity_id, self._diagram))
        return True

    # --- Property Operations ---

    def set_property(
        self,
        entity_id: str,
        name: str,
        type: str = PropertyType.STRING.value,
        description: Optional[str] = None,
        required: Optional[bool] = None,
        items_type: Optional[str] = None
    ) -> Optional[Property]:
        """
        Create or update a property.

        Type changes to or from "reference" go through the reference
        manager, which creates or resolves the target entity and keeps the
        relationship list in step. Replacing or clearing array items drops
        the relationship the old items backed.

        Raises:
            ValueError: If an array's items_type is "reference"; items have
                no entity to resolve against
        """
        if type == PropertyType.ARRAY.value and items_type == REFERENCE:
            raise ValueError("Array items cannot be retyped to reference; connect the entities instead")

        entity = self._entity_index.get(entity_id)
        if entity is None:
            return None

        diagram = self._diagram
        current = entity.properties.get(name)
        previous = current

        if current is not None and current.is_reference and type != REFERENCE:
            diagram = references.retype_from_reference(name, entity, diagram)
            entity = diagram.get_entity(entity_id)
            current = entity.properties[name]

        base = current if current is not None else Property(name=name)
        updates: dict[str, Any] = {}
        if description is not None:
            updates["description"] = description
        if required is not None:
            updates["required"] = required

        if type != REFERENCE:
            updates["type"] = type
            if type == PropertyType.ARRAY.value:
                item = base.items if base.items is not None and items_type is None else None
                updates["items"] = item or Property(name="item", type=items_type or PropertyType.STRING.value)
            else:
                updates["items"] = None
            if type == PropertyType.OBJECT.value:
                updates["properties"] = base.properties or {}
            else:
                updates["properties"] = None

        prop = base.model_copy(update=updates)
        entity_required = list(entity.required)
        if required is True and name not in entity_required:
            entity_required.append(name)
        elif required is False:
            entity_required = [r for r in entity_required if r != name]

        entity = entity.with_properties({**entity.properties, name: prop}, required=entity_required)
        diagram = diagram.replace_entity(entity)

        if type == REFERENCE:
            diagram = references.retype_to_reference(name, entity, diagram)
        elif previous is not None:
            diagram = references.release_references(entity_id, previous, diagram)

        self._set_diagram(diagram)
        return self._entity_index[entity_id].properties[name]

    def delete_property(self, entity_id: str, name: str) -> bool:
        """Remove a property (and the relationships it backed)."""
        entity = self._entity_index.get(entity_id)
        if entity is None or name not in entity.properties:
            return False
        self._set_diagram(references.delete_property(name, entity, self._diagram))
        return True

    # --- Relationship Operations ---

    def connect(self, source_id: str, target_id: str) -> Diagram:
        """
        Connect two entities (user drew an edge source -> target).

        Raises:
            ValueError: If either entity does not exist
        """
        source = self._entity_index.get(source_id)
        target = self._entity_index.get(target_id)
        if source is None:
            raise ValueError(f"Source entity not found: {source_id}")
        if target is None:
            raise ValueError(f"Target entity not found: {target_id}")

        self._set_diagram(references.connect_entities(source, target, self._diagram))
        return self._diagram

    def delete_relationship(self, relationship_id: str) -> bool:
        """
        Delete a relationship.

        Deleting a reference relationship demotes the source properties
        (and array items) that backed it, along with any duplicate edge
        between the same pair, so no reference is left without its edge.
        """
        rel = self._diagram.get_relationship(relationship_id)
        if rel is None:
            return False

        diagram = self._diagram
        source = self._entity_index.get(rel.source)
        paired = False
        if rel.is_reference and source is not None:
            properties: dict[str, Property] = {}
            for name, prop in source.properties.items():
                if prop.is_reference and prop.reference_entity_id == rel.target:
                    prop = references.demote_property(prop)
                items = prop.items
                if items is not None and items.is_reference and items.reference_entity_id == rel.target:
                    prop = prop.model_copy(update={"items": references.demote_property(items)})
                properties[name] = prop
            diagram = diagram.replace_entity(source.with_properties(properties))
            paired = True

        relationships = [
            r for r in diagram.relationships
            if r.id != relationship_id
            and not (paired and r.source == rel.source and r.target == rel.target)
        ]
        self._set_diagram(diagram.model_copy(update={"relationships": relationships}))
        return True

    # --- Layout & Validation ---

    def auto_layout(self, strategy: str = "hierarchical") -> bool:
        """
        Automatically arrange entities.

        Strategies:
        - grid: Simple grid layout
        - force-directed: Force-directed relaxation
        - hierarchical: Columns by reference depth
        """
        if not self._diagram.entities:
            return False

        entities = apply_layout(self._diagram.entities, self._diagram.relationships, strategy)
        self._set_diagram(self._diagram.model_copy(update={"entities": entities}))
        logger.debug("Applied %s layout to %d entities", strategy, len(entities))
        return True

    def validate(self) -> list[ValidationIssue]:
        """Validate the current diagram."""
        return validate_diagram(self._diagram)


# Global instance for the application
diagram_manager = DiagramManager()
