"""
Configuration loader for ftp_session.

This module handles loading configuration from configuration files and
environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .models import GlobalConfig


class ConfigLoader:
    """Configuration loader with support for multiple sources."""

    def __init__(self) -> None:
        """Initialize configuration loader."""
        self.config_paths = [
            Path("ftp_session.yaml"),
            Path("ftp_session.yml"),
            Path("ftp_session.json"),
            Path("config/ftp_session.yaml"),
            Path("config/ftp_session.yml"),
            Path("config/ftp_session.json"),
            Path.home() / ".ftp_session" / "config.yaml",
            Path.home() / ".ftp_session" / "config.yml",
            Path.home() / ".ftp_session" / "config.json",
        ]

        # Environment variable prefix
        self.env_prefix = "FTP_SESSION_"

    def load_config(self, config_file: Optional[Union[str, Path]] = None) -> GlobalConfig:
        """
        Load configuration from all available sources.

        Environment variables override values from the file.

        Args:
            config_file: Specific config file to load

        Returns:
            GlobalConfig instance with merged configuration
        """
        config_data: Dict[str, Any] = {}

        file_config = self._load_from_file(config_file)
        if file_config:
            config_data.update(file_config)

        env_config = self._load_from_environment()
        if env_config:
            config_data = self._deep_merge(config_data, env_config)

        return GlobalConfig(**config_data)

    def _load_from_file(
        self, config_file: Optional[Union[str, Path]] = None
    ) -> Optional[Dict[str, Any]]:
        """Load configuration from file."""
        if config_file:
            config_path = Path(config_file)
            if config_path.exists():
                return self._parse_config_file(config_path)
        else:
            for config_path in self.config_paths:
                if config_path.exists():
                    return self._parse_config_file(config_path)

        return None

    def _parse_config_file(self, config_path: Path) -> Dict[str, Any]:
        """Parse configuration file based on extension."""
        suffix = config_path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ValueError(f"Unsupported config file format: {config_path.suffix}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if suffix == ".json":
                    return json.load(f) or {}
                return yaml.safe_load(f) or {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to parse config file {config_path}: {e}")

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # Map environment variables to config structure
        env_mappings = {
            # Logging
            f"{self.env_prefix}LOG_LEVEL": ("logging", "level"),
            f"{self.env_prefix}LOG_FILE": ("logging", "file_path"),
            f"{self.env_prefix}LOG_FORMAT": ("logging", "format"),
            # Client
            f"{self.env_prefix}HOST": ("client", "host"),
            f"{self.env_prefix}PORT": ("client", "port"),
            f"{self.env_prefix}USERNAME": ("client", "username"),
            f"{self.env_prefix}PASSWORD": ("client", "password"),
            f"{self.env_prefix}TIMEOUT": ("client", "timeout"),
            f"{self.env_prefix}TLS_MODE": ("client", "tls_mode"),
            f"{self.env_prefix}CA_FILE": ("client", "ca_file"),
            f"{self.env_prefix}VERIFY_TLS": ("client", "verify_tls"),
            f"{self.env_prefix}DISABLE_EPSV": ("client", "disable_epsv"),
            f"{self.env_prefix}DISABLE_UTF8": ("client", "disable_utf8"),
            f"{self.env_prefix}DISABLE_MLSD": ("client", "disable_mlsd"),
            f"{self.env_prefix}TIMEZONE": ("client", "timezone"),
        }

        # Values that must stay strings even when they look like numbers
        raw_values = {f"{self.env_prefix}PASSWORD", f"{self.env_prefix}USERNAME"}

        for env_var, config_path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                converted_value = value if env_var in raw_values else self._convert_env_value(value)

                current = config
                for key in config_path[:-1]:
                    current = current.setdefault(key, {})
                current[config_path[-1]] = converted_value

        return config

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type."""
        lower = value.lower()
        if lower in ("true", "yes", "on"):
            return True
        if lower in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def _deep_merge(
        self, base: Dict[str, Any], override: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def save_config(self, config: GlobalConfig, config_file: Union[str, Path]) -> None:
        """Save configuration to file."""
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        config_data = config.model_dump(mode="json")

        with open(config_path, "w", encoding="utf-8") as f:
            suffix = config_path.suffix.lower()
            if suffix in (".yaml", ".yml"):
                yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
            elif suffix == ".json":
                json.dump(config_data, f, indent=2)
            else:
                raise ValueError(
                    f"Unsupported config file format: {config_path.suffix}"
                )
