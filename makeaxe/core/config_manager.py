from __future__ import annotations

import json
import os
import pathlib
import re
from copy import deepcopy
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from makeaxe.core.base import AxeManager
from makeaxe.core.logging_manager import DEFAULT_LOGGING_CONFIG
from makeaxe.utils.exceptions import ConfigurationError, ManagerInitializationError


class DatabaseSettings(BaseModel):
    """Connection settings for the Relaxe catalog database."""

    connection_string: str = Field(description='MongoDB connection URI')
    name: str = Field(default='relaxe', description='Database name')
    collection: str = Field(default='axes', description='Collection holding published axes')

    @field_validator('connection_string', 'name', 'collection')
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('must not be empty')
        return v


class RelaxeConfig(BaseModel):
    """Schema for a Relaxe deployment configuration file.

    ``cache_directory`` is the staging location archives are built into
    before they are renamed to their published names.
    """

    database: DatabaseSettings
    cache_directory: pathlib.Path = Field(description='Staging directory for built axes')
    logging: Dict[str, Any] = Field(
        default_factory=lambda: deepcopy(DEFAULT_LOGGING_CONFIG),
        description='Logging settings',
    )


_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def _to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', key).lower()


class ConfigManager(AxeManager):
    """Loads and validates the Relaxe configuration file.

    Configuration is read from a YAML or JSON file, then overridden by
    environment variables. A variable such as ``MAKEAXE_DATABASE__NAME``
    sets ``database.name``; double underscores separate nesting levels.
    Keys in the file may be camelCase (``cacheDirectory``) as written by
    older deployments.

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The validated configuration
    """

    def __init__(
            self,
            config_path: Union[str, pathlib.Path],
            env_prefix: str = 'MAKEAXE_'
    ) -> None:
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path)
        self._env_prefix = env_prefix
        self._config: Optional[RelaxeConfig] = None
        self._env_vars_applied: List[str] = []

    def initialize(self) -> None:
        """Load configuration from file and environment variables.

        Raises:
            ManagerInitializationError: If the configuration cannot be loaded
        """
        try:
            raw = self._normalize_keys(self._load_from_file())
            self._apply_env_vars(raw)
            self._config = self._validate_config(raw)

            self._initialized = True
            self._healthy = True
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize ConfigManager: {str(e)}',
                manager_name=self.name
            ) from e

    def shutdown(self) -> None:
        self._config = None
        self._initialized = False
        self._healthy = False

    def _load_from_file(self) -> Dict[str, Any]:
        """Read and parse the configuration file.

        Raises:
            ConfigurationError: If the file is missing, unsupported or cannot be parsed
        """
        if not self._config_path.is_file():
            raise ConfigurationError(
                f'Config file not found: {self._config_path}',
                config_key='config_path'
            )

        suffix = self._config_path.suffix.lower()
        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                content = f.read()

            if suffix in ('.yaml', '.yml'):
                file_config = yaml.safe_load(content)
            elif suffix == '.json':
                file_config = json.loads(content)
            else:
                raise ConfigurationError(
                    f'Unsupported config file format: {self._config_path.suffix}',
                    config_key='config_path'
                )
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f'Cannot read config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if file_config is None:
            return {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f'Config file {self._config_path} must contain a mapping',
                config_key='config_path'
            )
        return file_config

    @classmethod
    def _normalize_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {_to_snake(str(k)): cls._normalize_keys(v) for k, v in value.items()}
        return value

    def _apply_env_vars(self, config: Dict[str, Any]) -> None:
        """Override configuration values with environment variables."""
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            config_path = env_name[len(self._env_prefix):].lower().split('__')
            self._set_nested_value(config, config_path, self._parse_env_value(env_value))
            self._env_vars_applied.append(env_name)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            return float(value)
        except ValueError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if not isinstance(config.get(key), dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _validate_config(self, raw: Dict[str, Any]) -> RelaxeConfig:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            return RelaxeConfig(**raw)
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                details={'validation_errors': errors}
            ) from e

    @property
    def config(self) -> RelaxeConfig:
        """The validated configuration.

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized or self._config is None:
            raise ConfigurationError('Cannot access configuration before initialization')
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated key.

        Args:
            key: The configuration key (dot-separated for nested values)
            default: Default value if the key doesn't exist

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized or self._config is None:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config.model_dump()
        try:
            for part in key.split('.'):
                result = result[part]
            return result
        except (KeyError, TypeError):
            return default

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'config_path': str(self._config_path),
            'env_vars_applied': list(self._env_vars_applied),
        })
        return status
