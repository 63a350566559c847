"""
Configuration management for the FrameLink node.
"""
import json
import os
from pathlib import Path
from typing import Dict, Any, List

from utils.constants import (CONFIGS_DIR, ENV_CONNECT_ADDRESS, ENV_BIND_ADDRESS,
                             ENV_MODEL_PATH, ENV_INPUT_SHAPE, ENV_LOG_LEVEL)
from utils.failures import ConfigError
from utils.logger import Logger


class Config:
    """Configuration manager that merges multiple domain-specific JSON files."""

    def __init__(self, configs_dir: str = None, environ: Dict[str, str] = None):
        """
        Initialize configuration by loading all JSON files in the configs directory.

        Args:
            configs_dir: Path to directory containing JSON configs (defaults to ./configs)
            environ: Environment mapping used for overrides (defaults to os.environ)
        """
        self.config = {}
        self.logger = Logger("Config")

        configs_dir = Path(configs_dir) if configs_dir else CONFIGS_DIR

        # 1. Load all JSON files if directory exists
        if configs_dir.exists() and configs_dir.is_dir():
            for config_file in sorted(configs_dir.glob("*.json")):
                self.load_from_file(str(config_file))

        # 2. Override from environment variables if present
        self._load_from_env(os.environ if environ is None else environ)

    def _load_from_env(self, environ: Dict[str, str]):
        """Load configuration from environment variables."""
        if environ.get(ENV_CONNECT_ADDRESS):
            self.config.setdefault('channel', {})['connect_address'] = environ[ENV_CONNECT_ADDRESS]
        if environ.get(ENV_BIND_ADDRESS):
            self.config.setdefault('channel', {})['bind_address'] = environ[ENV_BIND_ADDRESS]
        if environ.get(ENV_MODEL_PATH):
            self.config.setdefault('model', {})['path'] = environ[ENV_MODEL_PATH]
        if environ.get(ENV_INPUT_SHAPE):
            self.config.setdefault('model', {})['input_shape'] = environ[ENV_INPUT_SHAPE]
        if environ.get(ENV_LOG_LEVEL):
            self.config.setdefault('logging', {})['level'] = environ[ENV_LOG_LEVEL]

    def load_from_file(self, path: str):
        """
        Load configuration from JSON file.

        Raises:
            ConfigError: If the file exists but is not valid JSON.
        """
        try:
            with open(path, 'r') as f:
                user_config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}")
        except OSError as e:
            self.logger.warning(f"Failed to load config from {path}: {e}")
            return

        if not isinstance(user_config, dict):
            raise ConfigError(f"Top level of {path} must be an object")
        self._merge_config(user_config)

    def _merge_config(self, user_config: Dict[str, Any]):
        """Merge user config with defaults recursively."""
        def update(d, u):
            for k, v in u.items():
                if isinstance(v, dict):
                    d[k] = update(d.get(k, {}), v)
                else:
                    d[k] = v
            return d

        update(self.config, user_config)

    def get_int(self, key: str, default: int = 0) -> int:
        """Get config value as integer."""
        val = self.get(key, default)
        try:
            return int(val)
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get config value as float."""
        val = self.get(key, default)
        try:
            return float(val)
        except (ValueError, TypeError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get config value as boolean."""
        val = self.get(key, default)
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ('true', '1', 'yes', 'on')
        return bool(val)

    def get_list(self, key: str, default: List[Any] = None) -> List[Any]:
        """
        Get config value as a list.

        Comma-separated strings (as set from the environment) are split.
        """
        val = self.get(key, default)
        if val is None:
            return []
        if isinstance(val, str):
            return [part.strip() for part in val.split(',') if part.strip()]
        if isinstance(val, (list, tuple)):
            return list(val)
        return [val]

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
