"""
Configuration Manager for gifclip
Handles loading and managing configuration from YAML files and CLI arguments
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

CONFIG_FILES = [
    'gif_settings.yaml',
    'pipeline.yaml',
    'logging.yaml',
]


def get_packaged_config_dir() -> str:
    """Directory holding the YAML defaults shipped with the package."""
    return os.path.join(os.path.abspath(os.path.dirname(__file__)), 'config')


class ConfigManager:
    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir or get_packaged_config_dir()
        self.config: Dict[str, Any] = {}
        self.loaded_files: List[str] = []
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files, preferring the explicit config dir over packaged defaults"""
        packaged_dir = get_packaged_config_dir()
        for config_file in CONFIG_FILES:
            candidates = [os.path.join(self.config_dir, config_file)]
            if os.path.abspath(self.config_dir) != packaged_dir:
                candidates.append(os.path.join(packaged_dir, config_file))

            for config_path in candidates:
                if not os.path.exists(config_path):
                    continue
                with open(config_path, 'r', encoding='utf-8') as file:
                    config_data = yaml.safe_load(file)
                if config_data:
                    self._merge(self.config, config_data)
                self.loaded_files.append(config_path)
                logger.debug(f"Loaded config from {config_path}")
                break
            else:
                logger.warning(f"Config file not found in '{self.config_dir}' or packaged defaults: {config_file}")

    @classmethod
    def _merge(cls, target: Dict[str, Any], incoming: Dict[str, Any]):
        for key, value in incoming.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                cls._merge(target[key], value)
            else:
                target[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: get('pipeline.limits.max_upload_bytes')
        """
        keys = key_path.split('.')
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            logger.debug(f"Configuration key '{key_path}' not found, using default: {default}")
            return default

    def update_from_args(self, args_dict: Dict[str, Any]):
        """Update configuration with command line arguments"""
        applied = 0
        for key, value in args_dict.items():
            if value is not None:
                old_value = self.get(key)
                self._set_nested_value(key, value)
                applied += 1
                logger.info(f"Configuration override applied: {key} = {value} (was: {old_value})")

        if not applied:
            logger.debug("No CLI configuration overrides to apply")

    def _set_nested_value(self, key_path: str, value: Any):
        """Set nested configuration value using dot notation"""
        keys = key_path.split('.')
        config_section = self.config

        for key in keys[:-1]:
            if key not in config_section or not isinstance(config_section[key], dict):
                config_section[key] = {}
            config_section = config_section[key]

        config_section[keys[-1]] = value

    def get_storage_root(self) -> Path:
        return Path(self.get('pipeline.storage_root', './storage')).expanduser()

    def resolve_storage_dir(self, key: str, default: str) -> Path:
        """Resolve a pipeline directory setting relative to the storage root."""
        configured = Path(str(self.get(f'pipeline.{key}', default))).expanduser()
        if configured.is_absolute():
            return configured
        return self.get_storage_root() / configured

    def get_temp_dir(self) -> Path:
        return self.resolve_storage_dir('scratch_dir', 'scratch')

    def validate_config(self) -> bool:
        """Validate that required configuration values are present and sane"""
        required_keys = [
            'gif_settings.fps',
            'gif_settings.width',
            'pipeline.storage_root',
            'pipeline.limits.max_duration_seconds',
            'pipeline.limits.max_upload_bytes',
        ]

        for key in required_keys:
            if self.get(key) is None:
                logger.error(f"Required configuration key missing: {key}")
                return False

        positive_numbers = [
            'gif_settings.fps',
            'gif_settings.width',
            'pipeline.limits.min_duration_seconds',
            'pipeline.limits.max_duration_seconds',
            'pipeline.limits.max_upload_bytes',
            'pipeline.limits.max_source_duration_seconds',
            'pipeline.retention.interval_seconds',
            'pipeline.retention.upload_max_age_seconds',
            'pipeline.retention.cache_max_age_seconds',
            'pipeline.retention.output_max_age_seconds',
        ]
        for key in positive_numbers:
            value = self.get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                logger.error(f"Invalid value for {key}: {value} (must be positive number)")
                return False

        min_duration = self.get('pipeline.limits.min_duration_seconds', 1)
        max_duration = self.get('pipeline.limits.max_duration_seconds')
        if min_duration > max_duration:
            logger.error(f"min_duration_seconds ({min_duration}) exceeds max_duration_seconds ({max_duration})")
            return False

        for key in ('pipeline.limits.allowed_extensions', 'pipeline.limits.allowed_mime_types'):
            value = self.get(key)
            if value is not None and not isinstance(value, list):
                logger.error(f"{key} must be a list")
                return False

        quality = self.get('gif_settings.gifski.quality')
        if quality is not None and not (1 <= int(quality) <= 100):
            logger.error(f"Invalid gifski quality: {quality} (must be 1-100)")
            return False

        logger.info("Configuration validation passed")
        return True
