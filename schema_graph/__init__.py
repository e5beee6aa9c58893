"""
Schema Graph - Models, reference management, layout and schema conversion.

This package provides the schema graph engine used by both the HTTP backend
and the command line, ensuring a single source of truth for all diagram logic.
"""

__version__ = "0.1.0"

from .models import (
    # Enums
    PropertyType,
    RelationshipType,
    # Core models
    Property,
    Position,
    Entity,
    Relationship,
    DiagramMetadata,
    Diagram,
    # Naming
    to_camel_case,
    to_title_case,
)

from .references import (
    connect_entities,
    retype_to_reference,
    retype_from_reference,
    delete_property,
    delete_entity,
    rename_entity,
    release_references,
    demote_property,
)
from .layout import (
    LayoutStrategy,
    apply_layout,
    grid_layout,
    force_directed_layout,
    hierarchical_layout,
    reference_depths,
)
from .importer import (
    DocumentKind,
    ImportResult,
    SchemaImporter,
    SchemaParseError,
    import_schema,
    parse_document,
)
from .exporter import ExportFormat, export_diagram, render_export
from .validation import validate_diagram, ValidationIssue, IssueSeverity
from .storage import DiagramStorage, FileKeyValueStore, MemoryKeyValueStore

__all__ = [
    # Enums
    "PropertyType",
    "RelationshipType",
    # Models
    "Property",
    "Position",
    "Entity",
    "Relationship",
    "DiagramMetadata",
    "Diagram",
    "to_camel_case",
    "to_title_case",
    # Reference management
    "connect_entities",
    "retype_to_reference",
    "retype_from_reference",
    "delete_property",
    "delete_entity",
    "rename_entity",
    "release_references",
    "demote_property",
    # Layout
    "LayoutStrategy",
    "apply_layout",
    "grid_layout",
    "force_directed_layout",
    "hierarchical_layout",
    "reference_depths",
    # Import / export
    "DocumentKind",
    "ImportResult",
    "SchemaImporter",
    "SchemaParseError",
    "import_schema",
    "parse_document",
    "ExportFormat",
    "export_diagram",
    "render_export",
    # Validation
    "validate_diagram",
    "ValidationIssue",
    "IssueSeverity",
    # Storage
    "DiagramStorage",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
]
