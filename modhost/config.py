"""
Modhost - Configuration.

============================================================
RESPONSIBILITY
============================================================
Engine settings and raw module configuration input.

- OrchestratorConfig: timeouts, cleanup policy, logging, plugin
  directories; loaded from the environment (and a .env file)
- load_module_config: reads the YAML document holding every
  module's raw key/value pairs

Module configuration is only read here, never validated; each
module's schema is applied by the lifecycle orchestrator just
before that module starts.

============================================================
ENVIRONMENT
============================================================
    MODHOST_START_TIMEOUT_SECONDS   float, unset = no timeout
    MODHOST_STOP_TIMEOUT_SECONDS    float, unset = no timeout
    MODHOST_CLEANUP_ON_FAILURE      true/false (default true)
    MODHOST_LOG_LEVEL               DEBUG..CRITICAL (default INFO)
    MODHOST_LOG_FORMAT              json/text (default json)
    MODHOST_PLUGIN_DIRS             os.pathsep separated
    MODHOST_MODULE_CONFIG           path of the YAML module config

============================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import find_dotenv, load_dotenv

from hostcore.exceptions import ConfigurationError


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}",
            config_key=name,
            source="environment",
        ) from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ============================================================
# ORCHESTRATOR CONFIG
# ============================================================

@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator."""

    # Lifecycle
    start_timeout_seconds: Optional[float] = None
    """Per-module start timeout (None = unbounded)."""

    stop_timeout_seconds: Optional[float] = None
    """Per-module stop timeout (None = unbounded)."""

    cleanup_on_failure: bool = True
    """Stop already-started modules when startup fails."""

    # Logging
    log_level: str = "INFO"
    """Logging level."""

    log_format: str = "json"
    """Log line format (json or text)."""

    correlation_id_prefix: str = "run"
    """Prefix for correlation IDs."""

    # Inputs
    plugin_dirs: List[str] = field(default_factory=list)
    """Directories scanned for plugin modules."""

    module_config_path: Optional[str] = None
    """YAML file with raw module configuration."""

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Load configuration from environment variables (and .env)."""
        load_dotenv(find_dotenv(usecwd=True))

        plugin_dirs = os.getenv("MODHOST_PLUGIN_DIRS", "")
        return cls(
            start_timeout_seconds=_env_float("MODHOST_START_TIMEOUT_SECONDS"),
            stop_timeout_seconds=_env_float("MODHOST_STOP_TIMEOUT_SECONDS"),
            cleanup_on_failure=_env_bool("MODHOST_CLEANUP_ON_FAILURE", True),
            log_level=os.getenv("MODHOST_LOG_LEVEL", "INFO"),
            log_format=os.getenv("MODHOST_LOG_FORMAT", "json"),
            plugin_dirs=[p for p in plugin_dirs.split(os.pathsep) if p],
            module_config_path=os.getenv("MODHOST_MODULE_CONFIG") or None,
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        for name in ("start_timeout_seconds", "stop_timeout_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                errors.append(f"{name} must be positive")

        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if self.log_format not in LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(LOG_FORMATS)}")

        if not self.correlation_id_prefix:
            errors.append("correlation_id_prefix must not be empty")

        return errors


# ============================================================
# MODULE CONFIG FILE
# ============================================================

def load_module_config(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """
    Load raw module configuration from a YAML file.

    Expected layout:

        db:
          url: postgres://localhost/app
          password: s3cret
        api:
          port: 8080

    Returns:
        module identity -> raw key/value pairs

    Raises:
        ConfigurationError: file missing, unreadable or malformed
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Module config file not found: {path}", source=str(path))

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Module config file is not valid YAML: {path}", source=str(path), cause=e,
        ) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(
            f"Module config file could not be read: {path}: {e}", source=str(path), cause=e,
        ) from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Module config must be a mapping of module -> settings, got {type(data).__name__}",
            source=str(path),
        )

    config: Dict[str, Dict[str, Any]] = {}
    for module, section in data.items():
        if section is None:
            section = {}
        if not isinstance(section, Mapping):
            raise ConfigurationError(
                f"Settings for module {module} must be a mapping",
                config_key=str(module),
                source=str(path),
            )
        config[str(module)] = dict(section)
    return config


__all__ = [
    "LOG_LEVELS",
    "LOG_FORMATS",
    "OrchestratorConfig",
    "load_module_config",
]
