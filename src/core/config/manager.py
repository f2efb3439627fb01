"""
ConfigManager: YAML-backed balance configuration access for Apex (2025).

Purpose
-------
- Provide hierarchical, dot-notation access to progression balance values
  (per-tier reward table, per-rank sublevel cost table, default rules).
- Back configuration with coded defaults overlaid by YAML files.

Responsibilities
----------------
- Load and deep-merge every YAML file in the configured directory.
- Serve configuration reads from an in-memory snapshot.
- Track simple read metrics for health snapshots.

Non-Responsibilities
--------------------
- Runtime mutation: balance tables are deployment-time configuration,
  read once at startup. No `set()`.
- Validation of individual tables (owned by the consumer, e.g.
  `src.modules.progression.constants.ProgressionTables`).

Key Design Decisions
--------------------
- Coded defaults are the base layer; YAML files override them key by key.
- Files are merged in sorted path order so composition is deterministic.
- A malformed YAML file aborts loading with `ConfigInitializationError`
  rather than silently running with partial balance data.

Dependencies
------------
- PyYAML (`yaml.safe_load`)
- `src.core.logging.logger.get_logger` – structured logging interface.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.config.errors import ConfigInitializationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class ConfigReadMetrics:
    gets: int = 0
    hits: int = 0
    misses: int = 0


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Balance configuration with dot-notation lookup.

    Examples
    --------
    >>> manager = ConfigManager(config_dir=Path("config"))
    >>> manager.load()
    >>> manager.get("progression.xp_per_tier.C")
    100
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._config_dir = Path(config_dir) if config_dir is not None else None
        self._defaults: Dict[str, Any] = copy.deepcopy(dict(defaults or {}))
        self._values: Dict[str, Any] = copy.deepcopy(self._defaults)
        self._loaded_files: List[str] = []
        self._loaded = False
        self._metrics = ConfigReadMetrics()

    @classmethod
    def from_config(cls) -> "ConfigManager":
        """Unloaded manager over `Config.PROGRESSION_CONFIG_DIR`."""
        return cls(config_dir=Config.PROGRESSION_CONFIG_DIR)

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    def load(self) -> "ConfigManager":
        """
        Load every `*.yaml` / `*.yml` file under the config directory.

        Missing directories are not an error: the coded defaults are used.

        Raises
        ------
        ConfigInitializationError
            If a YAML file cannot be parsed.
        """
        values = copy.deepcopy(self._defaults)
        loaded: List[str] = []

        config_dir = self._config_dir
        if config_dir is None or not config_dir.exists():
            logger.info(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir) if config_dir else None},
            )
        else:
            yaml_files = sorted(
                list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
            )
            for yaml_file in yaml_files:
                relative = str(yaml_file.relative_to(config_dir))
                try:
                    with yaml_file.open("r", encoding="utf-8") as handle:
                        data = yaml.safe_load(handle)
                except (OSError, yaml.YAMLError) as exc:
                    logger.error(
                        "Failed to load YAML config",
                        extra={
                            "file": relative,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise ConfigInitializationError(
                        f"Could not load configuration file {relative}: {exc}"
                    ) from exc

                if isinstance(data, dict):
                    self._deep_merge_dict(values, data)
                    loaded.append(relative)
                    logger.debug("Loaded YAML config", extra={"file": relative})
                elif data is not None:
                    logger.warning(
                        "Ignoring non-dict YAML root object",
                        extra={"file": relative, "root_type": type(data).__name__},
                    )

        self._values = values
        self._loaded_files = loaded
        self._loaded = True

        logger.info(
            "Configuration loaded",
            extra={
                "yaml_file_count": len(loaded),
                "top_level_keys": sorted(values.keys()),
            },
        )
        return self

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Returns a deep copy for container values so callers cannot mutate the
        shared snapshot.
        """
        if not self._loaded:
            logger.warning(
                "ConfigManager accessed before explicit load; using defaults only"
            )
            self._loaded = True

        self._metrics.gets += 1
        value: Any = self._values
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                self._metrics.misses += 1
                return default

        self._metrics.hits += 1
        if value is None:
            return default
        return copy.deepcopy(value) if isinstance(value, (dict, list)) else value

    def get_all_keys(self) -> List[str]:
        """Return all top-level configuration keys."""
        return sorted(self._values.keys())

    @property
    def loaded_files(self) -> List[str]:
        return list(self._loaded_files)

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "loaded": self._loaded,
            "yaml_file_count": len(self._loaded_files),
            "gets": self._metrics.gets,
            "hits": self._metrics.hits,
            "misses": self._metrics.misses,
        }


__all__ = ["ConfigManager", "ConfigReadMetrics"]
