"""
Reference management - Keep reference properties and relationships consistent.

Every `reference` property points at another entity through
`reference_entity_id`, and every `reference` relationship mirrors one such
property. The functions here are the only writers that touch both sides:

- connect_entities: user drew an edge between two entities
- retype_to_reference: a property's type was changed to "reference"
- retype_from_reference: a reference property was changed to something else
- delete_property: a property was removed
- delete_entity: an entity was removed (cascade clean-up)
- rename_entity: an entity was renamed (re-key derived property names)

All functions take a Diagram and return a new Diagram; inputs are never
mutated. When there is nothing to do the input Diagram itself is returned.

Connect policy: the new property is written into the edge's *source*
entity, keyed by the camel-cased *target* name and pointing at the target.
This keeps the relationship source -> target and the property owner aligned
with retype_from_reference, which removes (owner, referenced) relationships.
"""

import logging

from .models import (
    Diagram,
    Entity,
    Position,
    Property,
    PropertyType,
    Relationship,
    RelationshipType,
    DEFAULT_ENTITY_COLOR,
    to_camel_case,
    to_title_case,
)

logger = logging.getLogger(__name__)

# Offset of an entity synthesized by retype_to_reference from its owner
NEW_ENTITY_OFFSET_X = 400
NEW_ENTITY_OFFSET_Y = 0

REFERENCE = PropertyType.REFERENCE.value
STRING = PropertyType.STRING.value


def demote_property(prop: Property) -> Property:
    """Turn a reference property (or array items) into a plain string."""
    return prop.model_copy(update={"type": STRING, "reference_entity_id": None, "ref": None})


def _referenced_ids(prop: Property) -> set[str]:
    """Entity ids prop points at, directly or through its array items."""
    ids = {prop.reference_entity_id}
    if prop.items is not None:
        ids.add(prop.items.reference_entity_id)
    ids.discard(None)
    return ids


def _has_relationship(relationships: list[Relationship], source_id: str, target_id: str) -> bool:
    return any(r.source == source_id and r.target == target_id for r in relationships)


def _without_relationships(
    relationships: list[Relationship],
    source_id: str,
    target_id: str
) -> list[Relationship]:
    return [r for r in relationships if not (r.source == source_id and r.target == target_id)]


def release_references(owner_id: str, released: Property, diagram: Diagram) -> Diagram:
    """
    Drop owner -> target relationships that only `released` backed.

    Call after `released` was replaced or removed in the owner. A target
    still referenced by one of the owner's current properties (directly or
    through array items) keeps its relationship.
    """
    owner = diagram.get_entity(owner_id)
    if owner is None:
        return diagram

    dropped = {
        target_id for target_id in _referenced_ids(released)
        if not any(p.references(target_id) for p in owner.properties.values())
    }
    if not dropped:
        return diagram

    relationships = [
        r for r in diagram.relationships
        if not (r.source == owner_id and r.target in dropped)
    ]
    return diagram.model_copy(update={"relationships": relationships})


def _strip_reference(prop: Property, entity_id: str) -> Property:
    """
    Demote every reference to entity_id inside prop (items and nested
    object properties included). Returns prop itself when untouched.
    """
    updates = {}
    if prop.reference_entity_id == entity_id:
        updates.update(type=STRING, reference_entity_id=None, ref=None)

    if prop.items is not None:
        items = _strip_reference(prop.items, entity_id)
        if items is not prop.items:
            updates["items"] = items

    if prop.properties:
        nested = {key: _strip_reference(p, entity_id) for key, p in prop.properties.items()}
        if any(nested[key] is not prop.properties[key] for key in nested):
            updates["properties"] = nested

    return prop.model_copy(update=updates) if updates else prop


def connect_entities(source: Entity, target: Entity, diagram: Diagram) -> Diagram:
    """
    Create a reference property (and relationship) for a newly drawn edge.

    Args:
        source: Entity the edge starts from; receives the property
        target: Entity the edge points to
        diagram: Current diagram

    Returns:
        Updated diagram, or the input unchanged if the source already
        references the target under the derived property name
    """
    index = diagram.entity_index()
    source = index.get(source.id)
    target = index.get(target.id)
    if source is None or target is None:
        logger.warning("connect_entities: unknown endpoint, diagram unchanged")
        return diagram

    property_name = to_camel_case(target.name)
    existing = source.properties.get(property_name)
    if existing is not None and existing.is_reference and existing.reference_entity_id == target.id:
        return diagram

    relationships = list(diagram.relationships)

    # Overwriting a reference to some other entity drops its relationship
    if existing is not None and existing.is_reference and existing.reference_entity_id:
        relationships = _without_relationships(relationships, source.id, existing.reference_entity_id)

    prop = Property(
        name=property_name,
        type=REFERENCE,
        description=f"Reference to {target.name}",
        required=False,
        reference_entity_id=target.id,
    )
    updated_source = source.with_properties({**source.properties, property_name: prop})

    if not _has_relationship(relationships, source.id, target.id):
        relationships.append(Relationship(
            source=source.id,
            target=target.id,
            type=RelationshipType.REFERENCE.value,
            label=property_name,
        ))

    logger.debug("Connected %s.%s -> %s", source.name, property_name, target.name)
    return diagram.replace_entity(updated_source).model_copy(update={"relationships": relationships})


def retype_to_reference(property_name: str, owner: Entity, diagram: Diagram) -> Diagram:
    """
    Point a property at an entity after its type was changed to "reference".

    Resolution order:
    1. An entity whose name case-insensitively equals the title-cased
       property name is reused; a relationship owner -> entity is added
       only if none exists yet.
    2. Otherwise a new entity is synthesized next to the owner and linked
       with a new relationship.

    A property that is already a reference to an existing entity is left alone.
    """
    index = diagram.entity_index()
    owner = index.get(owner.id)
    if owner is None:
        return diagram

    current = owner.properties.get(property_name)
    if current is not None and current.is_reference and current.reference_entity_id in index:
        return diagram

    entity_name = to_title_case(property_name)
    target = diagram.find_entity_by_name(entity_name)
    entities = list(diagram.entities)
    relationships = list(diagram.relationships)

    if target is None:
        target = Entity(
            name=entity_name,
            type=PropertyType.OBJECT.value,
            description=f"Entity referenced by {owner.name}.{property_name}",
            properties={},
            required=[],
            position=Position(
                x=owner.position.x + NEW_ENTITY_OFFSET_X,
                y=owner.position.y + NEW_ENTITY_OFFSET_Y,
            ),
            color=DEFAULT_ENTITY_COLOR,
        )
        entities.append(target)
        logger.info("Created entity %s for %s.%s", entity_name, owner.name, property_name)

    if not _has_relationship(relationships, owner.id, target.id):
        relationships.append(Relationship(
            source=owner.id,
            target=target.id,
            type=RelationshipType.REFERENCE.value,
            label=property_name,
        ))

    base = current if current is not None else Property(name=property_name)
    prop = base.model_copy(update={
        "type": REFERENCE,
        "reference_entity_id": target.id,
        "items": None,
        "properties": None,
    })
    updated_owner = owner.with_properties({**owner.properties, property_name: prop})
    entities = [updated_owner if e.id == owner.id else e for e in entities]

    diagram = diagram.model_copy(update={"entities": entities, "relationships": relationships})
    # Array items pointing elsewhere are gone now
    if current is not None:
        diagram = release_references(owner.id, current, diagram)
    return diagram


def retype_from_reference(property_name: str, owner: Entity, diagram: Diagram) -> Diagram:
    """
    Demote a reference property to "string" and drop its relationship.

    Removes the relationship(s) whose (source, target) is
    (owner, previously referenced entity). No-op if the property is not
    currently a reference.
    """
    owner = diagram.get_entity(owner.id)
    if owner is None:
        return diagram

    prop = owner.properties.get(property_name)
    if prop is None or not prop.is_reference:
        return diagram

    referenced_id = prop.reference_entity_id
    updated_owner = owner.with_properties({**owner.properties, property_name: demote_property(prop)})

    relationships = diagram.relationships
    if referenced_id is not None:
        relationships = _without_relationships(relationships, owner.id, referenced_id)

    return diagram.replace_entity(updated_owner).model_copy(update={"relationships": list(relationships)})


def delete_property(property_name: str, owner: Entity, diagram: Diagram) -> Diagram:
    """
    Remove a property from its entity.

    Reference relationships that only existed because of this property
    (directly or through its array items) are removed as well. The name is
    dropped from the owner's required list.
    """
    owner = diagram.get_entity(owner.id)
    if owner is None or property_name not in owner.properties:
        return diagram

    removed = owner.properties[property_name]
    remaining = {key: p for key, p in owner.properties.items() if key != property_name}

    updated_owner = owner.with_properties(
        remaining,
        required=[name for name in owner.required if name != property_name],
    )
    return release_references(owner.id, removed, diagram.replace_entity(updated_owner))


def delete_entity(entity_id: str, diagram: Diagram) -> Diagram:
    """
    Remove an entity and clean up every reference to it.

    Args:
        entity_id: ID of the entity to remove
        diagram: Current diagram

    Returns:
        Diagram without the entity, without relationships touching it, and
        with every property (including array items and nested object
        properties) that referenced it demoted to "string"
    """
    entities = []
    for entity in diagram.entities:
        if entity.id == entity_id:
            continue
        properties = {key: _strip_reference(p, entity_id) for key, p in entity.properties.items()}
        if any(properties[key] is not entity.properties[key] for key in properties):
            entity = entity.with_properties(properties)
        entities.append(entity)

    relationships = [r for r in diagram.relationships if not r.touches(entity_id)]
    removed = len(diagram.relationships) - len(relationships)
    logger.debug("Deleted entity %s (%d relationships removed)", entity_id, removed)

    return diagram.model_copy(update={"entities": entities, "relationships": relationships})


def rename_entity(entity_id: str, old_name: str, new_name: str, diagram: Diagram) -> Diagram:
    """
    Propagate an entity rename to the properties that reference it.

    Every referencing property gets its description rewritten. A property
    keyed by the camel-cased old name is re-keyed to the camel-cased new
    name, in place, and the owner's required list follows. The renamed
    entity itself takes new_name. Relationships are untouched.
    """
    old_key = to_camel_case(old_name)
    new_key = to_camel_case(new_name)
    description = f"Reference to {new_name}"

    entities = []
    for entity in diagram.entities:
        updates = {}
        if entity.id == entity_id and entity.name != new_name:
            updates["name"] = new_name

        if any(p.reference_entity_id == entity_id for p in entity.properties.values()):
            properties: dict[str, Property] = {}
            required = list(entity.required)
            for key, prop in entity.properties.items():
                if prop.reference_entity_id != entity_id:
                    properties[key] = prop
                elif key == old_key and new_key and new_key != old_key:
                    properties[new_key] = prop.model_copy(update={"name": new_key, "description": description})
                    required = [new_key if name == key else name for name in required]
                else:
                    properties[key] = prop.model_copy(update={"description": description})
            updates["properties"] = properties
            updates["required"] = list(dict.fromkeys(required))

        entities.append(entity.model_copy(update=updates) if updates else entity)

    return diagram.model_copy(update={"entities": entities})
