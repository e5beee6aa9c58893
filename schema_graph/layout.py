"""
Layout algorithms for schema entities.

Provides three interchangeable layout strategies:
- Grid: Simple square-ish grid arrangement
- Force: Force-directed layout (repulsion between all pairs, attraction
  along relationships, linear cooling)
- Hierarchical: One column per reference depth, starting from the
  entities nothing refers to

All layout functions are pure: they return a new list of entities with
updated positions and never touch properties, ids or relationships.
None of them raise; an empty entity list is returned as-is.
"""

import logging
import math
from collections import defaultdict, deque
from enum import Enum
from typing import Optional

from .models import Entity, Relationship

logger = logging.getLogger(__name__)


class LayoutStrategy(str, Enum):
    """Available layout strategies."""
    GRID = "grid"
    FORCE_DIRECTED = "force-directed"
    HIERARCHICAL = "hierarchical"


# Default layout parameters
DEFAULT_ENTITY_SPACING = 400
DEFAULT_LEVEL_SPACING = 400
DEFAULT_START_X = 100
DEFAULT_START_Y = 100

# Force-directed parameters
DEFAULT_ITERATIONS = 100
DEFAULT_LAYOUT_AREA = 400 * 400
DEFAULT_INITIAL_TEMPERATURE = 50.0
MIN_DISTANCE = 1.0


def grid_layout(
    entities: list[Entity],
    spacing: float = DEFAULT_ENTITY_SPACING,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
    columns: Optional[int] = None
) -> list[Entity]:
    """
    Arrange entities in a grid pattern, row by row.

    Args:
        entities: Entities to arrange
        spacing: Distance between neighbouring cells (both axes)
        start_x: X coordinate of the first cell
        start_y: Y coordinate of the first cell
        columns: Number of columns (ceil(sqrt(n)) if None)

    Returns:
        New list of entities with grid positions
    """
    if not entities:
        return entities

    if columns is None:
        columns = math.ceil(math.sqrt(len(entities)))

    placed = []
    for i, entity in enumerate(entities):
        row = i // columns
        col = i % columns
        placed.append(entity.with_position(start_x + col * spacing, start_y + row * spacing))

    return placed


def force_directed_layout(
    entities: list[Entity],
    relationships: list[Relationship],
    iterations: int = DEFAULT_ITERATIONS,
    area: float = DEFAULT_LAYOUT_AREA,
    initial_temperature: float = DEFAULT_INITIAL_TEMPERATURE,
    entity_spacing: float = DEFAULT_ENTITY_SPACING,
    level_spacing: float = DEFAULT_LEVEL_SPACING,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y
) -> list[Entity]:
    """
    Arrange entities using a force-directed (Fruchterman-Reingold style) layout.

    Simulates physical forces:
    - All entity pairs repel with k^2 / distance
    - Related entities attract with distance^2 / k

    Positions are seeded on a grid, so the result is deterministic. Each
    step moves an entity by at most the current temperature, which decays
    linearly from initial_temperature to zero.

    Args:
        entities: Entities to arrange
        relationships: Relationships (endpoints attract)
        iterations: Number of relaxation iterations
        area: Target area used to derive the characteristic distance k
        initial_temperature: Maximum displacement in the first iteration
        entity_spacing: Horizontal spacing of the seeding grid
        level_spacing: Vertical spacing of the seeding grid
        start_x: X origin of the seeding grid
        start_y: Y origin of the seeding grid

    Returns:
        New list of entities with relaxed positions
    """
    if not entities:
        return entities

    ids = [e.id for e in entities]
    columns = math.ceil(math.sqrt(len(entities)))
    positions: dict[str, list[float]] = {}
    for i, entity_id in enumerate(ids):
        row = i // columns
        col = i % columns
        positions[entity_id] = [start_x + col * entity_spacing, start_y + row * level_spacing]

    # Relationships pointing outside the entity set are ignored
    edges = [(r.source, r.target) for r in relationships
             if r.source in positions and r.target in positions]

    k = math.sqrt(area / len(entities))

    for iteration in range(iterations):
        forces: dict[str, list[float]] = {entity_id: [0.0, 0.0] for entity_id in ids}

        # Repulsion between all pairs
        for i in range(len(ids)):
            for j in range(i + 1, len(ids)):
                p1 = positions[ids[i]]
                p2 = positions[ids[j]]
                dx = p1[0] - p2[0]
                dy = p1[1] - p2[1]
                distance = max(MIN_DISTANCE, math.sqrt(dx * dx + dy * dy))

                force = (k * k) / distance
                fx = dx / distance * force
                fy = dy / distance * force

                forces[ids[i]][0] += fx
                forces[ids[i]][1] += fy
                forces[ids[j]][0] -= fx
                forces[ids[j]][1] -= fy

        # Attraction along relationships
        for source_id, target_id in edges:
            p1 = positions[source_id]
            p2 = positions[target_id]
            dx = p2[0] - p1[0]
            dy = p2[1] - p1[1]
            distance = max(MIN_DISTANCE, math.sqrt(dx * dx + dy * dy))

            force = (distance * distance) / k
            fx = dx / distance * force
            fy = dy / distance * force

            forces[source_id][0] += fx
            forces[source_id][1] += fy
            forces[target_id][0] -= fx
            forces[target_id][1] -= fy

        # Apply forces, capped by the current temperature
        temperature = initial_temperature * (1 - iteration / iterations)
        for entity_id in ids:
            fx, fy = forces[entity_id]
            displacement = math.sqrt(fx * fx + fy * fy)
            if displacement > 0:
                step = min(displacement, temperature)
                positions[entity_id][0] += fx / displacement * step
                positions[entity_id][1] += fy / displacement * step

    return [e.with_position(*positions[e.id]) for e in entities]


def reference_depths(
    entities: list[Entity],
    relationships: list[Relationship]
) -> Optional[dict[str, int]]:
    """
    Assign every entity its reference depth.

    Reference relationships form a directed graph from referencing to
    referenced entity. Roots are entities that are never the target of a
    reference relationship. A BFS from all roots at once gives each
    reachable entity its distance from the nearest root. Entities that no
    root reaches share the level after the deepest one, in entity order.

    Returns:
        entity_id -> depth, or None when there are no roots at all
    """
    entity_ids = [e.id for e in entities]
    known = set(entity_ids)

    children: dict[str, list[str]] = defaultdict(list)
    referenced: set[str] = set()
    for rel in relationships:
        if not rel.is_reference:
            continue
        if rel.source in known and rel.target in known:
            children[rel.source].append(rel.target)
            referenced.add(rel.target)

    roots = [entity_id for entity_id in entity_ids if entity_id not in referenced]
    if not roots:
        return None

    depths: dict[str, int] = {root: 0 for root in roots}
    queue = deque(roots)
    while queue:
        current = queue.popleft()
        for child in children[current]:
            if child not in depths:
                depths[child] = depths[current] + 1
                queue.append(child)

    unreached = [entity_id for entity_id in entity_ids if entity_id not in depths]
    if unreached:
        overflow = max(depths.values()) + 1
        for entity_id in unreached:
            depths[entity_id] = overflow

    return depths


def hierarchical_layout(
    entities: list[Entity],
    relationships: list[Relationship],
    level_spacing: float = DEFAULT_LEVEL_SPACING,
    entity_spacing: float = DEFAULT_ENTITY_SPACING,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y
) -> list[Entity]:
    """
    Arrange entities in columns by reference depth.

    Column x = start_x + depth * level_spacing. Entities in a column are
    stacked entity_spacing apart (in entity order) and the column is
    centred vertically on start_y.

    Falls back to grid_layout when there are no relationships and to
    force_directed_layout when every entity is referenced by another one.

    Args:
        entities: Entities to arrange
        relationships: Relationships; only "reference" ones define depth
        level_spacing: Horizontal distance between depth columns
        entity_spacing: Vertical distance between entities in a column
        start_x: X coordinate of the root column
        start_y: Vertical centre of every column

    Returns:
        New list of entities with hierarchical positions
    """
    if not entities:
        return entities

    if not relationships:
        return grid_layout(entities, spacing=entity_spacing, start_x=start_x, start_y=start_y)

    depths = reference_depths(entities, relationships)
    if depths is None:
        logger.debug("No root entities, falling back to force-directed layout")
        return force_directed_layout(
            entities, relationships,
            entity_spacing=entity_spacing,
            level_spacing=level_spacing,
            start_x=start_x,
            start_y=start_y,
        )

    columns: dict[int, list[str]] = defaultdict(list)
    for entity in entities:
        columns[depths[entity.id]].append(entity.id)

    coordinates: dict[str, tuple[float, float]] = {}
    for depth, column in columns.items():
        x = start_x + depth * level_spacing
        offset = (len(column) - 1) / 2
        for index, entity_id in enumerate(column):
            coordinates[entity_id] = (x, start_y + (index - offset) * entity_spacing)

    return [e.with_position(*coordinates[e.id]) for e in entities]


def apply_layout(
    entities: list[Entity],
    relationships: list[Relationship],
    strategy: str = LayoutStrategy.HIERARCHICAL.value
) -> list[Entity]:
    """
    Lay out entities with the named strategy.

    Strategies:
    - grid: Simple grid layout
    - force-directed: Force-directed relaxation
    - hierarchical: Reference-depth columns

    Without relationships every strategy produces the grid layout.
    Unknown strategy names leave the entities where they are.
    """
    try:
        strategy = LayoutStrategy(strategy)
    except ValueError:
        logger.warning("Unknown layout strategy %r, positions unchanged", strategy)
        return entities

    if not entities:
        return entities

    if strategy == LayoutStrategy.GRID or not relationships:
        return grid_layout(entities)
    elif strategy == LayoutStrategy.FORCE_DIRECTED:
        return force_directed_layout(entities, relationships)
    else:
        return hierarchical_layout(entities, relationships)
