"""
API package for cinema-explorer FastAPI backend.

This package provides the REST API endpoints for:
- System health and info (system.py)
- Database registry, ingestion and the loaded dataset (databases.py)
- Brushing, axis reordering, charts and picks (selection.py)
- Index-color hit testing (hit_test.py)

The data model and selection engine live in ``explorer.shared``; the
process-wide session (session.py) ties them together.
"""

from .app_config import AppConfig, DatabaseEntry, DatabaseRegistry

__all__ = [
    "AppConfig",
    "DatabaseEntry",
    "DatabaseRegistry",
]
