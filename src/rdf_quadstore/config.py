"""
Store configuration.

Provides:
- The recognized store options with their defaults
- Engine variant selection
- Validation at the construction boundary
- JSON persistence for engines that keep their own configuration
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TREE_ORDER = 15
DEFAULT_NAME = "rdfstore_py"
DEFAULT_MAX_CACHE_SIZE = 5000


class EngineKind(Enum):
    """Storage engine variants. Fixed for the lifetime of a store."""
    EMBEDDED = "embedded"   # Lexicon + indexed quad backend
    DOCUMENT = "document"   # rdflib in-memory dataset saved as one document


class ConfigValidationError(Exception):
    """Configuration validation error."""
    pass


@dataclass
class StoreConfig:
    """
    Configuration for a store instance.

    Attributes:
        persistent: Keep data on disk under ``path / name``
        tree_order: Page order of the backend indexes (embedded engine)
        name: Name of the store, used for its persistent directory
        overwrite: Wipe any persisted state on start
        max_cache_size: Size of the lexicon decode cache
        engine: Engine variant
        path: Base directory for persistent data
        engine_options: Extra options for the document-store engine
    """
    persistent: bool = False
    tree_order: int = DEFAULT_TREE_ORDER
    name: str = DEFAULT_NAME
    overwrite: bool = False
    max_cache_size: int = DEFAULT_MAX_CACHE_SIZE
    engine: EngineKind = EngineKind.EMBEDDED
    path: Optional[Path] = None
    engine_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.engine, str):
            try:
                self.engine = EngineKind(self.engine)
            except ValueError:
                raise ConfigValidationError(f"Unknown engine: {self.engine!r}")
        if self.tree_order is None:
            self.tree_order = DEFAULT_TREE_ORDER
        if not isinstance(self.tree_order, int) or self.tree_order < 2:
            raise ConfigValidationError(f"tree_order must be an integer >= 2, got {self.tree_order!r}")
        if not isinstance(self.max_cache_size, int) or self.max_cache_size < 1:
            raise ConfigValidationError(f"max_cache_size must be a positive integer, got {self.max_cache_size!r}")
        if not self.name:
            raise ConfigValidationError("Store name cannot be empty")
        if self.path is not None:
            self.path = Path(self.path)

    @property
    def data_dir(self) -> Path:
        """Directory holding this store's persistent files."""
        base = self.path if self.path is not None else Path.cwd()
        return base / self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "persistent": self.persistent,
            "tree_order": self.tree_order,
            "name": self.name,
            "overwrite": self.overwrite,
            "max_cache_size": self.max_cache_size,
            "engine": self.engine.value,
            "path": str(self.path) if self.path is not None else None,
            "engine_options": dict(self.engine_options),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StoreConfig":
        """Build a config from a mapping, rejecting unknown options."""
        data = dict(data or {})
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigValidationError(f"Unknown store options: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def coerce(cls, config: "StoreConfig | Dict[str, Any] | None") -> "StoreConfig":
        if isinstance(config, cls):
            return config
        if config is None or isinstance(config, dict):
            return cls.from_dict(config)
        raise TypeError(f"config must be a StoreConfig or a dict, got {type(config).__name__}")


def read_json_config(path: Path) -> Dict[str, Any]:
    """Read a persisted JSON configuration, empty when missing."""
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable configuration {path}: {e}")
        return {}


def write_json_config(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
