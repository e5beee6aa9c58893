"""FastAPI backend for the schema diagram editor."""
