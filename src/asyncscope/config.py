"""
asyncscope Configuration

Loads configuration from a YAML file, then applies environment overrides.

Search order for the config file:
    1. explicit path passed to get_config()
    2. ~/.asyncscope/config.yaml
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


CONFIG_SEARCH_PATHS = [
    Path.home() / ".asyncscope" / "config.yaml",
]

# Written by the instrumentation hook into the target's working directory
DEFAULT_TRACE_SOURCE = "asyncscope_trace.1.log"

DEFAULT_CONFIG = {
    "trace_source": DEFAULT_TRACE_SOURCE,
    "sample_stack_limit": 32,       # Frames kept per task-creation stack
    "chunk_size": 64 * 1024,        # Bytes per read when decoding/assembling
    "separator": ",\n",             # Between serialized analysis records
    "title": "asyncscope",
    "journal": False,
    "journal_dir": str(Path.home() / ".asyncscope" / "logs"),
}

_TRUTHY = {"1", "true", "yes", "on"}


class ScopeConfig:
    """Configuration for collect and visualize."""

    def __init__(self, config_path: Optional[Path] = None):
        self._config: Dict[str, Any] = dict(DEFAULT_CONFIG)
        self._config_path: Optional[Path] = None

        self._load_config(config_path)
        self._apply_env_overrides()

    def _load_config(self, explicit_path: Optional[Path] = None) -> None:
        """Load configuration from the first YAML file found."""
        search_paths = [Path(explicit_path)] if explicit_path else CONFIG_SEARCH_PATHS

        for config_path in search_paths:
            if config_path.exists():
                try:
                    with open(config_path, "r", encoding="utf-8") as f:
                        user_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning(f"Failed to load config from {config_path}: {e}")
                    continue
                if not isinstance(user_config, dict):
                    logger.warning(f"Ignoring config {config_path}: expected a mapping")
                    continue
                self._config.update(user_config)
                self._config_path = config_path
                return

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        env_mappings = {
            "ASYNCSCOPE_TRACE_SOURCE": ("trace_source", str),
            "ASYNCSCOPE_SAMPLE_STACK_LIMIT": ("sample_stack_limit", int),
            "ASYNCSCOPE_CHUNK_SIZE": ("chunk_size", int),
            "ASYNCSCOPE_JOURNAL": ("journal", lambda v: v.strip().lower() in _TRUTHY),
            "ASYNCSCOPE_JOURNAL_DIR": ("journal_dir", str),
        }

        for env_var, (config_key, convert) in env_mappings.items():
            if env_var in os.environ:
                try:
                    self._config[config_key] = convert(os.environ[env_var])
                except ValueError:
                    logger.warning(f"Ignoring {env_var}={os.environ[env_var]!r}: invalid value")

    @property
    def config_path(self) -> Optional[Path]:
        """Path to loaded config file, or None if using defaults."""
        return self._config_path

    @property
    def trace_source(self) -> Path:
        """Raw trace file the hook writes in the target's working directory."""
        return Path(self._config["trace_source"])

    @property
    def sample_stack_limit(self) -> int:
        return int(self._config["sample_stack_limit"])

    @property
    def chunk_size(self) -> int:
        return int(self._config["chunk_size"])

    @property
    def separator(self) -> str:
        return str(self._config["separator"])

    @property
    def title(self) -> str:
        return str(self._config["title"])

    @property
    def journal_enabled(self) -> bool:
        return bool(self._config["journal"])

    @property
    def journal_dir(self) -> Path:
        return Path(self._config["journal_dir"]).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dict."""
        return {
            "trace_source": str(self.trace_source),
            "sample_stack_limit": self.sample_stack_limit,
            "chunk_size": self.chunk_size,
            "separator": self.separator,
            "title": self.title,
            "journal": self.journal_enabled,
            "journal_dir": str(self.journal_dir),
            "config_file": str(self._config_path) if self._config_path else None,
        }


# Global config instance (lazy-loaded)
_config: Optional[ScopeConfig] = None


def get_config(config_path: Optional[Path] = None) -> ScopeConfig:
    """Get the global config instance, loading if needed."""
    global _config
    if _config is None or config_path is not None:
        _config = ScopeConfig(config_path)
    return _config


def write_default_config(path: Optional[Path] = None) -> Path:
    """
    Write a default configuration file.

    Returns the path where config was written.
    """
    if path is None:
        path = Path.home() / ".asyncscope" / "config.yaml"

    path.parent.mkdir(parents=True, exist_ok=True)

    config_content = """# asyncscope configuration
#
# Every setting can also be overridden with an ASYNCSCOPE_* environment variable.

# Raw trace file written by the instrumentation hook in the target's cwd
trace_source: "asyncscope_trace.1.log"

# Frames recorded for each task-creation stack
sample_stack_limit: 32

# Read size in bytes for decoding and assembling
chunk_size: 65536

# Artifact title
title: "asyncscope"

# JSONL run journal
journal: false
# journal_dir: "~/.asyncscope/logs"
"""

    with open(path, "w", encoding="utf-8") as f:
        f.write(config_content)

    return path
