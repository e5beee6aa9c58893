#!/usr/bin/env python3
"""Schema graph CLI - import, export, lay out and validate schema diagrams."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from .exporter import ExportFormat, render_export
from .importer import parse_document
from .layout import LayoutStrategy, apply_layout
from .models import Diagram
from .validation import validate_diagram, validation_summary

LOG_LEVEL = os.environ.get("SCHEMA_GRAPH_LOG_LEVEL", "WARNING")

logger = logging.getLogger(__name__)


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _error_out(message):
    _json_out({"status": "error", "error": message}, code=1)


def _read_diagram(path) -> Diagram:
    """Read a diagram or schema document from disk, exiting on failure."""
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        _error_out(f"Cannot read {path}: {e.strerror or e}")

    result = parse_document(raw)
    if not result.ok:
        _error_out(result.error)
    logger.debug("Read %s as %s document", path, result.kind.value)
    return result.diagram


def _write_text(path, text):
    try:
        Path(path).write_text(text + "\n", encoding="utf-8")
    except OSError as e:
        _error_out(f"Cannot write {path}: {e.strerror or e}")


def _counts(diagram: Diagram) -> dict:
    return {"entities": len(diagram.entities), "relationships": len(diagram.relationships)}


# ── Documents ────────────────────────────────────────────────────────────────

def cmd_import(args):
    diagram = _read_diagram(args.input)
    if args.output:
        _write_text(args.output, render_export(diagram))
        _json_out({"status": "ok", "output": args.output, **_counts(diagram)})
    _json_out({"status": "ok", **_counts(diagram), "diagram": diagram.to_json_dict()})


def cmd_export(args):
    diagram = _read_diagram(args.input)
    text = render_export(diagram, args.format)
    if args.output:
        _write_text(args.output, text)
        _json_out({"status": "ok", "format": args.format, "output": args.output})
    print(text)
    sys.exit(0)


# ── Layout ───────────────────────────────────────────────────────────────────

def cmd_layout(args):
    diagram = _read_diagram(args.input)
    entities = apply_layout(diagram.entities, diagram.relationships, args.strategy)
    diagram = diagram.model_copy(update={"entities": entities})
    output = args.output or args.input
    _write_text(output, render_export(diagram))
    _json_out({
        "status": "ok",
        "strategy": args.strategy,
        "output": output,
        "positions": {e.id: {"x": e.position.x, "y": e.position.y} for e in entities},
    })


# ── Analysis ─────────────────────────────────────────────────────────────────

def cmd_validate(args):
    diagram = _read_diagram(args.input)
    issues = validate_diagram(diagram)
    summary = validation_summary(issues)
    _json_out({
        "status": "ok" if summary["valid"] else "invalid",
        "issues": [issue.to_dict() for issue in issues],
        "summary": summary,
    }, code=0 if summary["valid"] else 1)


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    from .backend.main import HOST, PORT, run
    run(
        host=args.host if args.host is not None else HOST,
        port=args.port if args.port is not None else PORT,
    )


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Schema graph CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # Documents
    p = sub.add_parser("import", help="Import an OpenAPI / JSON Schema document")
    p.add_argument("input")
    p.add_argument("-o", "--output", default=None)

    p = sub.add_parser("export", help="Export a diagram")
    p.add_argument("input")
    p.add_argument("--format", default=ExportFormat.OPENAPI.value,
                   choices=[f.value for f in ExportFormat])
    p.add_argument("-o", "--output", default=None)

    # Layout
    p = sub.add_parser("layout", help="Re-arrange entities")
    p.add_argument("input")
    p.add_argument("--strategy", default=LayoutStrategy.HIERARCHICAL.value,
                   choices=[s.value for s in LayoutStrategy])
    p.add_argument("-o", "--output", default=None)

    # Analysis
    p = sub.add_parser("validate", help="Check references and relationships")
    p.add_argument("input")

    # Service
    p = sub.add_parser("serve", help="Run the HTTP backend")
    p.add_argument("--host", default=None, help="Default: $SCHEMA_GRAPH_HOST or 127.0.0.1")
    p.add_argument("--port", type=int, default=None, help="Default: $SCHEMA_GRAPH_PORT or 8765")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cmd_map = {
        "import": cmd_import,
        "export": cmd_export,
        "layout": cmd_layout,
        "validate": cmd_validate,
        "serve": cmd_serve,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
