"""
System API routes for cinema-explorer.

Health, versions of the serving stack, and the settings the process runs
with (where databases.json came from, fetch timeout, registry size).
"""

import platform
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Dict

from fastapi import APIRouter, Depends

from .session import Session, get_session

router = APIRouter()

# Distribution names, as installed
STACK = ("numpy", "fastapi", "pydantic", "uvicorn", "httpx", "orjson", "platformdirs")


def _stack_versions() -> Dict[str, str]:
    versions = {}
    for name in STACK:
        try:
            versions[name] = version(name)
        except PackageNotFoundError:
            versions[name] = "not installed"
    return versions


@router.get("/health")
async def health_check(session: Session = Depends(get_session)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "message": "cinema-explorer is running",
        "session_state": session.state.value,
    }


@router.get("/system/info")
async def system_info(session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Interpreter, stack versions and active settings."""
    config = session.config
    return {
        "python": {
            "version": sys.version,
            "platform": sys.platform,
        },
        "system": {
            "os": platform.system(),
            "machine": platform.machine(),
        },
        "packages": _stack_versions(),
        "settings": {
            "databases_path": str(config.databases_path),
            "fetch_timeout": config.fetch_timeout,
            "log_level": config.log_level,
            "database_count": len(session.registry),
            "active_database": session.entry_index,
        },
    }
