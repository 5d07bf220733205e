"""
Raw key/value configuration.

Keys are dotted paths (``db.type``). A key resolves either as a flat key or
by walking nested mappings, so both of these YAML files configure the same
value:

    db.type: postgresql

    db:
      type: postgresql
"""
import logging
import pathlib
from collections.abc import Mapping
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ['Config']

logger = logging.getLogger(__name__)

_TRUE = {'1', 'true', 'yes', 'on'}


class PoolSettings(BaseModel):
    enabled: bool | None = None
    max_connections: int | None = None
    max_idle_time: int | None = None
    wait_timeout: int | None = None


class DatabaseSettings(BaseModel):
    """``db.*`` keys read from the environment."""

    type: str | None = None
    host: str | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    port: int | None = None
    timeout: int | None = None
    appname: str | None = None
    echo_sql: bool | None = None
    unbind_on_begin_failure: bool | None = None
    pool: PoolSettings = Field(default_factory=PoolSettings)


class EnvSettings(BaseSettings):
    """Environment source, nested keys separated by ``__``."""

    model_config = SettingsConfigDict(
        env_prefix='ENTITYDB_',
        env_nested_delimiter='__',
        case_sensitive=False,
        extra='ignore',
    )

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)


class Config:
    """Read-only configuration lookup."""

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data = dict(data or {})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'Config':
        return cls(data)

    @classmethod
    def from_file(cls, path: str | pathlib.Path) -> 'Config':
        """Load a YAML configuration file. An empty file is an empty config.
        """
        path = pathlib.Path(path)
        with path.open(encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise ValueError(f'Configuration file {path} must contain a mapping')
        logger.debug(f'Loaded configuration from {path}')
        return cls(data)

    @classmethod
    def from_env(cls, prefix: str = 'ENTITYDB_') -> 'Config':
        """Build a config from environment variables.

        ``ENTITYDB_DB__TYPE=sqlite`` becomes ``db.type``; unset keys stay absent.
        """
        settings = EnvSettings(_env_prefix=prefix)
        data = settings.model_dump(exclude_none=True)
        logger.debug(f'Loaded configuration from environment prefix {prefix}')
        return cls(data)

    def _lookup(self, key: str) -> Any:
        if key in self._data:
            return self._data[key]
        node: Any = self._data
        parts = key.split('.')
        for i, part in enumerate(parts):
            if not isinstance(node, Mapping):
                return None
            rest = '.'.join(parts[i:])
            if rest in node:
                return node[rest]
            if part not in node:
                return None
            node = node[part]
        return node

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is None else value

    def get_string(self, key: str, default: str = '') -> str:
        """Value as a string, default when absent."""
        value = self._lookup(key)
        if value is None or isinstance(value, Mapping):
            return default
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get_string(key)
        return int(value) if value else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._lookup(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE

    def __contains__(self, key: str) -> bool:
        return self._lookup(key) is not None

    def __repr__(self) -> str:
        return f'Config({sorted(self._data)})'
