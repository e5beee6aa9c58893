"""
Diagram validation - Check schema diagrams for structural and reference issues.

Used by the backend, the CLI and the tests to confirm that reference
properties and relationships agree with each other.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator

from .models import Property, PropertyType

if TYPE_CHECKING:
    from .models import Diagram


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a diagram."""
    severity: IssueSeverity
    message: str
    entity_id: str | None = None
    relationship_id: str | None = None
    property_path: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.entity_id:
            result["entity_id"] = self.entity_id
        if self.relationship_id:
            result["relationship_id"] = self.relationship_id
        if self.property_path:
            result["property"] = self.property_path
        return result


def _walk_properties(properties: dict[str, Property], prefix: str = "") -> Iterator[tuple[str, Property]]:
    """Yield (dotted path, property) for every property, items and nested ones included."""
    for key, prop in properties.items():
        path = f"{prefix}{key}"
        yield path, prop
        if prop.items is not None:
            yield f"{path}[]", prop.items
        if prop.properties:
            yield from _walk_properties(prop.properties, f"{path}.")


def validate_diagram(diagram: "Diagram") -> list[ValidationIssue]:
    """
    Validate a diagram and return a list of issues.

    Checks for:
    - Relationships to non-existent entities - ERROR
    - referenceEntityId on a non-reference property - ERROR
    - Reference properties pointing at missing entities - WARNING
    - Unresolved reference properties (no referenceEntityId) - WARNING
    - Reference relationships without a matching property - WARNING
    - Duplicate relationships (same source->target and type) - WARNING
    - Duplicate entity names - WARNING
    - Required names that are not properties - WARNING
    - Empty diagram - INFO

    Args:
        diagram: The diagram to validate

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []

    if not diagram.entities:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Diagram has no entities"
        ))
        return issues

    index = diagram.entity_index()

    # Property-level checks
    for entity in diagram.entities:
        for path, prop in _walk_properties(entity.properties):
            is_reference = prop.type == PropertyType.REFERENCE.value
            if prop.reference_entity_id and not is_reference:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Property of type '{prop.type}' carries a referenceEntityId",
                    entity_id=entity.id,
                    property_path=path
                ))
            elif is_reference and not prop.reference_entity_id:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message=f"Unresolved reference{f' to {prop.ref}' if prop.ref else ''}",
                    entity_id=entity.id,
                    property_path=path
                ))
            elif is_reference and prop.reference_entity_id not in index:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message=f"Reference to non-existent entity: {prop.reference_entity_id}",
                    entity_id=entity.id,
                    property_path=path
                ))

        for name in entity.required:
            if name not in entity.properties:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message=f"Required property '{name}' is not defined",
                    entity_id=entity.id
                ))

    # Relationship checks
    seen: set[tuple[str, str, str]] = set()
    for rel in diagram.relationships:
        missing = [end for end in (rel.source, rel.target) if end not in index]
        for end in missing:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Relationship references non-existent entity: {end}",
                relationship_id=rel.id
            ))

        key = (rel.source, rel.target, rel.type)
        if key in seen:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate {rel.type} relationship from {rel.source} to {rel.target}",
                relationship_id=rel.id
            ))
        seen.add(key)

        if rel.is_reference and not missing:
            source, target = index[rel.source], index[rel.target]
            backed = (
                any(p.references(target.id) for p in source.properties.values())
                or any(p.references(source.id) for p in target.properties.values())
            )
            if not backed:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message=f"Reference relationship {source.name} -> {target.name} has no matching property",
                    relationship_id=rel.id
                ))

    # Name collisions
    names: dict[str, str] = {}
    for entity in diagram.entities:
        lowered = entity.name.lower()
        if lowered in names:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate entity name: {entity.name}",
                entity_id=entity.id
            ))
        else:
            names[lowered] = entity.id

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    return {
        "total": len(issues),
        "errors": len([i for i in issues if i.severity == IssueSeverity.ERROR]),
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": len([i for i in issues if i.severity == IssueSeverity.ERROR]) == 0
    }
