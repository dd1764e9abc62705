"""
ConfigManager: YAML-backed tunable configuration access for Questline.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values
  (level threshold, cache TTLs, board sizes, the quest catalog).
- Back configuration with YAML files discovered under ``Config.CONFIG_DIR``.
- Allow in-process overrides for operators and tests without touching YAML.

Responsibilities
----------------
- Load and deep-merge every ``*.yaml``/``*.yml`` file in the config directory.
- Serve reads from an in-memory cache, falling back to YAML defaults.
- Track hit/miss counts for diagnostics.

Key Design Decisions
--------------------
- YAML is the single source of **defaults**; ``set()`` layers **overrides**
  on top that live only for the lifetime of the process.
- Top-level keys map to YAML root keys; nested keys are nested dictionaries.
- Accessing the manager before ``initialize()`` lazily loads YAML once.

Dependencies
------------
- PyYAML for parsing configuration files.
- ``src.core.logging.logger.get_logger`` for structured logs.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManager:
    """
    Tunable configuration with YAML defaults and in-process overrides.

    Examples
    --------
    >>> ConfigManager.initialize()
    >>> ConfigManager.get("progression.level_xp_threshold", 300)
    300
    >>> ConfigManager.set("progression.level_xp_threshold", 500)
    """

    _defaults: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None

    _metrics: Dict[str, int] = {
        "gets": 0,
        "cache_hits": 0,
        "cache_misses": 0,
        "sets": 0,
        "yaml_files_loaded": 0,
    }

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> None:
        """
        Recursively load all YAML config files from `config_dir` into `_defaults`.

        Files are merged in sorted path order so composition is deterministic.
        A malformed file is logged and skipped; the rest still load.
        """
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        loaded_count = 0
        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        cls._metrics["yaml_files_loaded"] = loaded_count
        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "total_keys": len(cls._defaults),
            },
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML defaults (idempotent unless a different directory is given).
        """
        target = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR
        if cls._initialized and cls._config_dir == target:
            return

        cls._defaults = {}
        cls._load_yaml_configs(target)
        cls._cache = copy.deepcopy(cls._defaults)
        cls._config_dir = target
        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop all loaded values and overrides."""
        cls._defaults = {}
        cls._cache = {}
        cls._initialized = False
        cls._config_dir = None
        for name in cls._metrics:
            cls._metrics[name] = 0

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def _lookup(cls, source: Dict[str, Any], key: str) -> Any:
        value: Any = source
        for part in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
            if value is None:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Returns `default` when the key is absent from both overrides and
        YAML defaults.
        """
        if not cls._initialized:
            cls.initialize()

        cls._metrics["gets"] += 1
        value = cls._lookup(cls._cache, key)
        if value is None:
            value = cls._lookup(cls._defaults, key)
        if value is None:
            cls._metrics["cache_misses"] += 1
            return default

        cls._metrics["cache_hits"] += 1
        return value

    @classmethod
    def get_int(
        cls, key: str, default: int, min_val: Optional[int] = None
    ) -> int:
        """
        Retrieve an integer tunable, falling back to `default` when the stored
        value is missing, not an integer, or below `min_val`.
        """
        value = cls.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning(
                "Configuration value is not an integer; using default",
                extra={"config_key": key, "value": value, "default": default},
            )
            return default
        if min_val is not None and value < min_val:
            logger.warning(
                "Configuration value below minimum; using default",
                extra={"config_key": key, "value": value, "min_val": min_val},
            )
            return default
        return value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Return all top-level configuration keys currently loaded."""
        if not cls._initialized:
            cls.initialize()
        return list(cls._cache.keys())

    # =========================================================================
    # WRITES
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """
        Override a configuration value in-process by dot-notation path.

        Intermediate dictionaries are created as needed.
        """
        if not cls._initialized:
            cls.initialize()

        parts = key.split(".")
        node: Dict[str, Any] = cls._cache
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        old_value = node.get(parts[-1])
        node[parts[-1]] = value
        cls._metrics["sets"] += 1

        logger.info(
            "Configuration override applied",
            extra={"config_key": key, "old_value": old_value, "new_value": value},
        )

    @classmethod
    def clear_overrides(cls) -> None:
        """Restore the cache to the loaded YAML defaults."""
        cls._cache = copy.deepcopy(cls._defaults)

    # =========================================================================
    # DIAGNOSTICS
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        gets = cls._metrics["gets"]
        hit_rate = (cls._metrics["cache_hits"] / gets * 100) if gets else 0.0
        return {**cls._metrics, "hit_rate": round(hit_rate, 2)}

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._initialized,
            "config_dir": str(cls._config_dir) if cls._config_dir else None,
            "top_level_keys": len(cls._cache),
        }
