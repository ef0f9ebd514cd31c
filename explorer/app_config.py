"""
Configuration for cinema-explorer.

Settings come from environment variables:
- CINEMA_EXPLORER_DATABASES: path to databases.json
- CINEMA_EXPLORER_HOST / CINEMA_EXPLORER_PORT: server bind address
- CINEMA_EXPLORER_LOG_LEVEL: logging level name
- CINEMA_EXPLORER_FETCH_TIMEOUT: timeout (seconds) for remote CSV fetches

databases.json lists the Cinema databases the viewer can switch between.
Each entry names a database directory (local path or URL) and optional view
settings. When CINEMA_EXPLORER_DATABASES is not set the file is looked up in
the platform user config directory.
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import platformdirs

from .shared.logger import get_logger

logger = get_logger(__name__)

APP_NAME = "cinema-explorer"
APP_AUTHOR = "cinema"

DEFAULT_FILTER = "^FILE"
DEFAULT_LOGSCALE = "^$"


def is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


@dataclass
class DatabaseEntry:
    """One database of databases.json with its view settings."""

    name: str
    directory: str
    filter: Optional[str] = None
    logscale: Optional[str] = None
    smooth_lines: Optional[bool] = None
    line_opacity: Optional[float] = None
    picked: List[int] = field(default_factory=list)

    @property
    def effective_filter(self) -> str:
        return DEFAULT_FILTER if self.filter is None else self.filter

    @property
    def effective_logscale(self) -> str:
        return DEFAULT_LOGSCALE if self.logscale is None else self.logscale

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the databases.json key names, omitting unset settings."""
        data: Dict[str, Any] = {"name": self.name, "directory": self.directory}
        if self.filter is not None:
            data["filter"] = self.filter
        if self.logscale is not None:
            data["logscale"] = self.logscale
        if self.smooth_lines is not None:
            data["smoothLines"] = self.smooth_lines
        if self.line_opacity is not None:
            data["lineOpacity"] = self.line_opacity
        data["picked"] = list(self.picked)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DatabaseEntry":
        if "directory" not in data:
            raise ValueError(f"Database entry {data.get('name', '?')!r} has no directory")
        return cls(
            name=str(data.get("name", data["directory"])),
            directory=str(data["directory"]),
            filter=data.get("filter"),
            logscale=data.get("logscale"),
            smooth_lines=data.get("smoothLines", data.get("smooth_lines")),
            line_opacity=data.get("lineOpacity", data.get("line_opacity")),
            picked=[int(i) for i in data.get("picked") or []],
        )


@dataclass
class AppConfig:
    """Process-wide settings read from the environment."""

    databases_path: Path
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    fetch_timeout: float = 10.0

    @staticmethod
    def default_databases_path() -> Path:
        return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR)) / "databases.json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        databases = env.get("CINEMA_EXPLORER_DATABASES")
        return cls(
            databases_path=Path(databases) if databases else cls.default_databases_path(),
            host=env.get("CINEMA_EXPLORER_HOST", "127.0.0.1"),
            port=int(env.get("CINEMA_EXPLORER_PORT", 8000)),
            log_level=env.get("CINEMA_EXPLORER_LOG_LEVEL", "INFO"),
            fetch_timeout=float(env.get("CINEMA_EXPLORER_FETCH_TIMEOUT", 10.0)),
        )


class DatabaseRegistry:
    """In-memory list of databases, loaded from databases.json.

    Changes (saved view settings) are kept in memory only; :meth:`to_json`
    produces an updated databases.json for the client to download.
    """

    def __init__(self, entries: Optional[List[DatabaseEntry]] = None, base_dir: Optional[Path] = None):
        self._entries: List[DatabaseEntry] = list(entries or [])
        self.base_dir = base_dir

    @classmethod
    def load(cls, path: Path) -> "DatabaseRegistry":
        """Read databases.json. A missing file gives an empty registry."""
        path = Path(path)
        if not path.exists():
            logger.info("No databases file at %s", path)
            return cls(base_dir=path.parent)

        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"{path} must contain a JSON list of databases")
        entries = [DatabaseEntry.from_dict(item) for item in data]
        logger.info("Loaded %d database(s) from %s", len(entries), path)
        return cls(entries, base_dir=path.parent)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[DatabaseEntry]:
        return list(self._entries)

    def get(self, index: int) -> DatabaseEntry:
        """Entry at ``index`` (IndexError if out of range)."""
        if not 0 <= index < len(self._entries):
            raise IndexError(f"Database index {index} out of range")
        return self._entries[index]

    def index_of(self, name: str) -> Optional[int]:
        for i, entry in enumerate(self._entries):
            if entry.name == name:
                return i
        return None

    def update(self, index: int, **settings: Any) -> DatabaseEntry:
        """Replace the settings of one entry."""
        entry = replace(self.get(index), **settings)
        self._entries[index] = entry
        return entry

    def resolve_directory(self, entry: DatabaseEntry) -> str:
        """Database location, with relative paths taken from databases.json's folder."""
        if is_url(entry.directory) or self.base_dir is None:
            return entry.directory
        directory = Path(entry.directory)
        if directory.is_absolute():
            return str(directory)
        return str(self.base_dir / directory)

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    def to_json(self) -> str:
        return json.dumps(self.to_list(), indent=4)
