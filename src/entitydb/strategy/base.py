"""
Base strategy interface for dialect-specific behaviour.

The strategy pattern keeps URL building, connection setup, placeholder
style and generated-key retrieval out of the execution path, which only
ever talks to :class:`DatabaseStrategy`.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from entitydb.sql import prepare_query

if TYPE_CHECKING:
    from entitydb.options import DatabaseOptions

# Registry of dialect name -> strategy class
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL."""

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return extra create_engine kwargs for the dialect."""
        return {}

    def configure_connection(self, dbapi_connection: Any) -> None:
        """Apply per-connection settings right after the connection is opened."""

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Raise ValueError when options are unusable for the dialect."""

    def prepare(self, sql: str, args: tuple | list | None) -> tuple[str, tuple]:
        """Rewrite a statement and parameters into the driver paramstyle."""
        return prepare_query(sql, args, self.dialect_name)

    def prepare_insert_returning(self, sql: str) -> str:
        """Rewrite an insert so that its generated key can be read back."""
        return sql

    @abstractmethod
    def generated_key(self, result: Any) -> Any:
        """Read the generated key from the result of a single-row insert.

        Returns None when the driver reports no key.
        """
