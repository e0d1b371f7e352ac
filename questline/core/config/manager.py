"""
ConfigManager: dot-notation access to tunable engine configuration.

Purpose
-------
- Serve quest-generation limits, streak milestone schedules and the quest
  template catalog from YAML defaults under ``Config.CONFIG_DIR``.
- Allow in-process overrides (``set``) so operators and tests can change
  balance values without touching the files.

Key Design Decisions
--------------------
- YAML is the single source for defaults; overrides are layered on top and
  never written back to disk.
- All ``*.yaml`` / ``*.yml`` files under the config directory are
  deep-merged into one tree, so the catalog can be split per cadence.
- Reads never raise: a missing key returns the caller's default.
"""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional

import yaml

from questline.core.config.config import Config
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManagerError(RuntimeError):
    """Base error type for ConfigManager-related failures."""


class ConfigWriteError(ConfigManagerError):
    """Raised when a configuration override fails validation."""


_MISSING = object()


@dataclass
class ConfigMetrics:
    gets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    sets: int = 0
    errors: int = 0
    total_get_time_ms: float = 0.0


class ConfigManager:
    """
    Layered configuration: YAML defaults plus in-memory overrides.

    Examples
    --------
    >>> ConfigManager.get("quests.daily.max_worlds", 3)
    3
    >>> ConfigManager.set("streaks.milestones", [3, 7])
    """

    _defaults: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None
    _lock = threading.RLock()

    _validators: Dict[str, Callable[[Any], Any]] = {}
    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(target: MutableMapping[str, Any], source: MutableMapping[str, Any]) -> None:
        """Recursively merge ``source`` into ``target`` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        yaml_files = sorted(list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml")))
        loaded_count = 0

        for yaml_file in yaml_files:
            with yaml_file.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle)
                except yaml.YAMLError as exc:
                    logger.error(
                        "Failed to parse YAML config",
                        extra={"file": str(yaml_file), "error": str(exc)},
                    )
                    raise ConfigManagerError(f"Invalid YAML in {yaml_file}") from exc

            if isinstance(data, dict):
                cls._deep_merge_dict(merged, data)
                loaded_count += 1
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={"config_dir": str(config_dir), "yaml_file_count": loaded_count},
        )
        return merged

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None, *, force: bool = False) -> None:
        """Load YAML defaults (idempotent unless ``force``)."""
        with cls._lock:
            if cls._initialized and not force:
                return

            cls._config_dir = Path(config_dir) if config_dir else Path(Config.CONFIG_DIR)
            cls._defaults = cls._load_yaml_configs(cls._config_dir)
            cls._cache = copy.deepcopy(cls._defaults)
            cls._initialized = True

    @classmethod
    def reload(cls) -> None:
        """Re-read YAML from disk, discarding in-memory overrides."""
        cls.initialize(cls._config_dir, force=True)

    @classmethod
    def reset(cls) -> None:
        """Drop all state; the next read re-initializes from disk."""
        with cls._lock:
            cls._defaults = {}
            cls._cache = {}
            cls._initialized = False
            cls._config_dir = None
            cls._validators = {}
            cls._metrics = ConfigMetrics()

    # =========================================================================
    # VALIDATION HOOKS
    # =========================================================================

    @classmethod
    def register_validator(cls, key: str, validator: Callable[[Any], Any]) -> None:
        """
        Register a validator invoked on ``set`` for an exact dot key.

        The validator returns the (possibly transformed) value to store or
        raises to block the write.
        """
        cls._validators[key] = validator

    @classmethod
    def _apply_validator(cls, key: str, value: Any) -> Any:
        validator = cls._validators.get(key)
        if not validator:
            return value
        try:
            return validator(value)
        except Exception as exc:
            cls._metrics.errors += 1
            logger.error(
                "Config validation failed",
                extra={"config_key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            raise ConfigWriteError(f"Validation failed for config key '{key}'") from exc

    # =========================================================================
    # READ API
    # =========================================================================

    @staticmethod
    def _traverse(tree: Dict[str, Any], key: str) -> Any:
        value: Any = tree
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return _MISSING
            value = value[part]
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Returns ``default`` when the key (or any parent) is missing or null.
        """
        start_time = time.perf_counter()
        cls._metrics.gets += 1

        if not cls._initialized:
            cls.initialize()

        try:
            value = cls._traverse(cls._cache, key)
            if value is _MISSING or value is None:
                cls._metrics.cache_misses += 1
                return default
            cls._metrics.cache_hits += 1
            return value
        finally:
            cls._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    @classmethod
    def get_defaults(cls, key: str, default: Any = None) -> Any:
        """Read a value from the YAML layer, ignoring overrides."""
        if not cls._initialized:
            cls.initialize()
        value = cls._traverse(cls._defaults, key)
        return default if value is _MISSING or value is None else value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        if not cls._initialized:
            cls.initialize()
        return list(cls._cache.keys())

    # =========================================================================
    # WRITE API
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Override a value in memory. Intermediate mappings are created."""
        if not cls._initialized:
            cls.initialize()

        final_value = cls._apply_validator(key, value)

        with cls._lock:
            parts = key.split(".")
            node = cls._cache
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            node[parts[-1]] = copy.deepcopy(final_value)
            cls._metrics.sets += 1

        logger.info("Config override applied", extra={"config_key": key})

    # =========================================================================
    # METRICS
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        snapshot = asdict(cls._metrics)
        snapshot["initialized"] = cls._initialized
        snapshot["config_dir"] = str(cls._config_dir) if cls._config_dir else None
        return snapshot


__all__ = ["ConfigManager", "ConfigManagerError", "ConfigWriteError"]
