"""Tests for layout strategies."""

import math

import pytest

from schema_graph.layout import (
    DEFAULT_INITIAL_TEMPERATURE,
    DEFAULT_ITERATIONS,
    LayoutStrategy,
    apply_layout,
    force_directed_layout,
    grid_layout,
    hierarchical_layout,
    reference_depths,
)
from schema_graph.models import Entity, Property, Relationship


def _entities(*names):
    return [Entity(id=name.lower(), name=name) for name in names]


def _positions(entities):
    return [(e.position.x, e.position.y) for e in entities]


@pytest.fixture
def chain():
    """Root -> Mid -> Leaf."""
    entities = _entities("Root", "Mid", "Leaf")
    relationships = [
        Relationship(source="root", target="mid"),
        Relationship(source="mid", target="leaf"),
    ]
    return entities, relationships


# =============================================================================
# Grid
# =============================================================================

class TestGridLayout:
    """Tests for grid_layout."""

    def test_four_entities_make_two_by_two(self):
        result = grid_layout(_entities("A", "B", "C", "D"))
        assert _positions(result) == [(100, 100), (500, 100), (100, 500), (500, 500)]

    def test_five_entities_use_three_columns(self):
        result = grid_layout(_entities("A", "B", "C", "D", "E"))
        assert _positions(result)[3] == (100, 500)

    def test_idempotent(self):
        once = grid_layout(_entities("A", "B", "C"))
        assert grid_layout(once) == once

    def test_only_positions_change(self):
        entities = [Entity(id="a", name="A", properties={"id": Property(name="id")})]
        placed = grid_layout(entities)[0]
        assert placed.model_copy(update={"position": entities[0].position}) == entities[0]

    def test_empty(self):
        assert grid_layout([]) == []

    @pytest.mark.parametrize("strategy", [s.value for s in LayoutStrategy])
    def test_every_strategy_uses_grid_without_relationships(self, strategy):
        """Test that 4 unrelated entities end up on a 2x2 grid whatever the strategy."""
        result = apply_layout(_entities("A", "B", "C", "D"), [], strategy)
        assert _positions(result) == [(100, 100), (500, 100), (100, 500), (500, 500)]


# =============================================================================
# Hierarchical
# =============================================================================

class TestHierarchicalLayout:
    """Tests for reference_depths and hierarchical_layout."""

    def test_chain_depths(self, chain):
        entities, relationships = chain
        assert reference_depths(entities, relationships) == {"root": 0, "mid": 1, "leaf": 2}

    def test_chain_x_increases_with_depth(self, chain):
        entities, relationships = chain
        result = hierarchical_layout(entities, relationships)
        xs = [e.position.x for e in result]
        assert xs == [100, 500, 900]
        assert xs[0] < xs[1] < xs[2]

    def test_column_centred_on_start_y(self):
        entities = _entities("Root", "Left", "Right")
        relationships = [
            Relationship(source="root", target="left"),
            Relationship(source="root", target="right"),
        ]
        result = hierarchical_layout(entities, relationships)
        assert _positions(result) == [(100, 100), (500, -100), (500, 300)]

    def test_unreached_entities_go_after_deepest_level(self):
        """Test that a cycle nobody reaches lands in the overflow column."""
        entities = _entities("A", "B", "C", "D")
        relationships = [
            Relationship(source="a", target="b"),
            Relationship(source="c", target="d"),
            Relationship(source="d", target="c"),
        ]
        assert reference_depths(entities, relationships) == {"a": 0, "b": 1, "c": 2, "d": 2}

    def test_non_reference_relationships_ignored(self):
        entities = _entities("A", "B")
        relationships = [Relationship(source="a", target="b", type="composition")]
        assert reference_depths(entities, relationships) == {"a": 0, "b": 0}

    def test_no_roots_returns_none(self):
        entities = _entities("A", "B")
        relationships = [
            Relationship(source="a", target="b"),
            Relationship(source="b", target="a"),
        ]
        assert reference_depths(entities, relationships) is None

    def test_no_roots_falls_back_to_force_directed(self):
        entities = _entities("A", "B")
        relationships = [
            Relationship(source="a", target="b"),
            Relationship(source="b", target="a"),
        ]
        assert hierarchical_layout(entities, relationships) == force_directed_layout(entities, relationships)

    def test_idempotent(self, chain):
        entities, relationships = chain
        once = hierarchical_layout(entities, relationships)
        assert hierarchical_layout(once, relationships) == once

    def test_relationships_to_unknown_entities_ignored(self, chain):
        entities, relationships = chain
        extra = relationships + [Relationship(source="ghost", target="root")]
        assert reference_depths(entities, extra) == {"root": 0, "mid": 1, "leaf": 2}


# =============================================================================
# Force-directed
# =============================================================================

class TestForceDirectedLayout:
    """Tests for force_directed_layout."""

    def test_deterministic(self, chain):
        entities, relationships = chain
        assert force_directed_layout(entities, relationships) == force_directed_layout(entities, relationships)

    def test_bounded_displacement(self, chain):
        """Test that no entity travels further than the summed temperatures."""
        entities, relationships = chain
        seeded = grid_layout(entities)
        result = force_directed_layout(entities, relationships)

        max_travel = sum(
            DEFAULT_INITIAL_TEMPERATURE * (1 - i / DEFAULT_ITERATIONS)
            for i in range(DEFAULT_ITERATIONS)
        )
        for before, after in zip(seeded, result):
            assert math.isfinite(after.position.x)
            assert math.isfinite(after.position.y)
            moved = math.hypot(after.position.x - before.position.x, after.position.y - before.position.y)
            assert moved <= max_travel + 1e-6

    def test_single_entity_stays_put(self):
        result = force_directed_layout(_entities("Only"), [])
        assert _positions(result) == [(100, 100)]

    def test_ignores_unknown_endpoints(self):
        entities = _entities("A", "B")
        relationships = [Relationship(source="a", target="ghost")]
        assert force_directed_layout(entities, relationships) == force_directed_layout(entities, [])


# =============================================================================
# apply_layout
# =============================================================================

class TestApplyLayout:
    """Tests for the apply_layout dispatcher."""

    def test_default_is_hierarchical(self, chain):
        entities, relationships = chain
        assert apply_layout(entities, relationships) == hierarchical_layout(entities, relationships)

    def test_force_directed_strategy(self, chain):
        entities, relationships = chain
        assert apply_layout(entities, relationships, "force-directed") == force_directed_layout(entities, relationships)

    def test_unknown_strategy_leaves_positions(self, chain):
        entities, relationships = chain
        assert apply_layout(entities, relationships, "spiral") is entities

    def test_empty_input(self):
        assert apply_layout([], []) == []
