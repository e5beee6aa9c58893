"""
Schema Graph Backend - FastAPI Application

Thin HTTP surface over the schema graph engine. It provides:
- Diagram state (get/replace/new), import and export
- Entity, property and relationship edits routed through the reference manager
- Layout and validation
- Load/save of the persisted diagram

Everything goes in and out as plain JSON.
"""
import os
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError

from schema_graph import __version__
from schema_graph.exporter import ExportFormat, export_filename
from schema_graph.layout import LayoutStrategy
from schema_graph.models import PropertyType, RelationshipType
from schema_graph.validation import validation_summary
from schema_graph.backend.diagram_manager import DiagramManager, diagram_manager

HOST = os.environ.get("SCHEMA_GRAPH_HOST", "127.0.0.1")
PORT = int(os.environ.get("SCHEMA_GRAPH_PORT", "8765"))


# --- Request Models ---

class CreateEntityRequest(BaseModel):
    """Request to create a new entity."""
    name: str = "NewEntity"
    type: str = PropertyType.OBJECT.value
    description: Optional[str] = None
    color: Optional[str] = None
    x: float = 100
    y: float = 100


class UpdateEntityRequest(BaseModel):
    """Request to update an existing entity (partial update)."""
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None


class SetPropertyRequest(BaseModel):
    """Request to create or update a property."""
    type: str = PropertyType.STRING.value
    description: Optional[str] = None
    required: Optional[bool] = None
    items_type: Optional[str] = None


class ConnectRequest(BaseModel):
    """Request to connect two entities."""
    source: str
    target: str


class LayoutRequest(BaseModel):
    strategy: LayoutStrategy = LayoutStrategy.HIERARCHICAL


class NewDiagramRequest(BaseModel):
    title: str = "New Diagram"


class ImportRequest(BaseModel):
    document: Any = Field(..., description="Schema document or diagram JSON")


def _manager() -> DiagramManager:
    return diagram_manager


# --- FastAPI App ---

app = FastAPI(
    title="Schema Graph API",
    description="Backend API for the schema diagram editor",
    version=__version__,
)


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


# --- Diagram State ---

@app.get("/api/diagram")
async def get_diagram():
    """Get the current diagram state."""
    return _manager().get_state()


@app.put("/api/diagram")
async def replace_diagram(data: dict):
    """Replace the current diagram with diagram JSON."""
    try:
        diagram = _manager().replace_diagram(data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "diagram": diagram.to_json_dict()}


@app.post("/api/diagram/new")
async def new_diagram(request: NewDiagramRequest):
    """Create a new empty diagram."""
    diagram = _manager().new_diagram(title=request.title)
    return {"success": True, "diagram": diagram.to_json_dict()}


@app.post("/api/diagram/import")
async def import_document(request: ImportRequest):
    """Import a schema document (OpenAPI / JSON Schema) or diagram JSON."""
    result = _manager().import_document(request.document)
    if not result.ok:
        raise HTTPException(status_code=400, detail=result.error)
    return result.to_dict()


@app.get("/api/diagram/export")
async def export_document(format: ExportFormat = Query(default=ExportFormat.INTERNAL)):
    """Export the current diagram in one of the supported formats."""
    return {
        "success": True,
        "format": format.value,
        "filename": export_filename(format.value),
        "document": _manager().export(format.value),
    }


@app.post("/api/diagram/save")
async def save_diagram():
    """Persist the current diagram."""
    if not _manager().save():
        raise HTTPException(status_code=500, detail="Failed to save diagram")
    return {"success": True}


@app.post("/api/diagram/load")
async def load_diagram():
    """Load the persisted diagram."""
    diagram = _manager().load()
    if diagram is None:
        raise HTTPException(status_code=404, detail="No saved diagram")
    return {"success": True, "diagram": diagram.to_json_dict()}


@app.post("/api/diagram/clear")
async def clear_diagram():
    """Drop the persisted diagram and start a new one."""
    diagram = _manager().clear()
    return {"success": True, "diagram": diagram.to_json_dict()}


@app.get("/api/diagram/validate")
async def validate_current_diagram():
    """
    Validate the current diagram for structural and reference issues.

    Returns a list of issues (errors, warnings, info) and a summary.
    """
    issues = _manager().validate()
    return {
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues)
    }


# --- Entity Operations ---

@app.post("/api/entities")
async def create_entity(request: CreateEntityRequest):
    """Create a new entity."""
    fields = {
        "name": request.name,
        "type": request.type,
        "description": request.description,
        "position": {"x": request.x, "y": request.y},
    }
    if request.color is not None:
        fields["color"] = request.color
    entity = _manager().add_entity(**fields)
    return {"success": True, "entity": entity.to_json_dict()}


@app.get("/api/entities/{entity_id}")
async def get_entity(entity_id: str):
    """Get a specific entity."""
    entity = _manager().get_entity(entity_id)
    if entity:
        return {"success": True, "entity": entity.to_json_dict()}
    raise HTTPException(status_code=404, detail="Entity not found")


@app.patch("/api/entities/{entity_id}")
async def update_entity(entity_id: str, request: UpdateEntityRequest):
    """Update an entity; renames are propagated to referencing properties."""
    entity = _manager().update_entity(
        entity_id,
        name=request.name,
        type=request.type,
        description=request.description,
        color=request.color,
        x=request.x,
        y=request.y
    )
    if entity:
        return {"success": True, "entity": entity.to_json_dict()}
    raise HTTPException(status_code=404, detail="Entity not found")


@app.delete("/api/entities/{entity_id}")
async def delete_entity(entity_id: str):
    """Delete an entity and clean up references to it."""
    if _manager().delete_entity(entity_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Entity not found")


# --- Property Operations ---

@app.put("/api/entities/{entity_id}/properties/{name}")
async def set_property(entity_id: str, name: str, request: SetPropertyRequest):
    """Create or update a property (type changes keep references consistent)."""
    try:
        prop = _manager().set_property(
            entity_id,
            name,
            type=request.type,
            description=request.description,
            required=request.required,
            items_type=request.items_type
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if prop:
        return {"success": True, "property": prop.to_json_dict()}
    raise HTTPException(status_code=404, detail="Entity not found")


@app.delete("/api/entities/{entity_id}/properties/{name}")
async def delete_property(entity_id: str, name: str):
    """Delete a property."""
    if _manager().delete_property(entity_id, name):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Property not found")


# --- Relationship Operations ---

@app.post("/api/relationships")
async def connect_entities(request: ConnectRequest):
    """Connect two entities, creating a reference property on the source."""
    try:
        diagram = _manager().connect(request.source, request.target)
        return {"success": True, "diagram": diagram.to_json_dict()}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/relationships/{relationship_id}")
async def delete_relationship(relationship_id: str):
    """Delete a relationship (and demote the property behind it)."""
    if _manager().delete_relationship(relationship_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Relationship not found")


# --- Layout ---

@app.post("/api/layout")
async def auto_layout(request: LayoutRequest):
    """Automatically arrange entities."""
    if _manager().auto_layout(strategy=request.strategy.value):
        return {"success": True, "strategy": request.strategy.value}
    raise HTTPException(status_code=400, detail="No entities to layout")


# --- Enums for Frontend ---

@app.get("/api/enums/property-types")
async def get_property_types():
    """Get available property types."""
    return {"types": [t.value for t in PropertyType]}


@app.get("/api/enums/relationship-types")
async def get_relationship_types():
    """Get available relationship types."""
    return {"types": [t.value for t in RelationshipType]}


@app.get("/api/enums/layouts")
async def get_layouts():
    """Get available layout strategies."""
    return {"strategies": [s.value for s in LayoutStrategy]}


@app.get("/api/enums/export-formats")
async def get_export_formats():
    """Get available export formats."""
    return {"formats": [f.value for f in ExportFormat]}


def run(host: str = HOST, port: int = PORT):
    """Serve the API with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
